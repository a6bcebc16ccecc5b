# autoecole/core/config.py
import logging
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Runtime configuration for the scheduling engine."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Literal["development", "test", "production"] = Field(
        default="development", description="Deployment environment name"
    )
    log_level: str = Field(default="INFO", description="Root log level for the API process")

    database_url: str = Field(
        default="sqlite:///./autoecole.db",
        description="SQLAlchemy URL of the transactional store",
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    redis_url: Optional[str] = Field(
        default=None,
        description="Redis URL used for the instructor-day mutex (lock is skipped when unset)",
    )
    redis_namespace: str = Field(default="autoecole", description="Prefix for Redis lock keys")
    slot_lock_ttl_seconds: int = Field(default=30, ge=1, description="Mutex expiry in seconds")

    school_timezone: str = Field(
        default="Africa/Algiers",
        description="Timezone in which slot dates and times are expressed",
    )

    default_theory_capacity: int = Field(default=10, ge=1)
    default_practical_capacity: int = Field(default=1, ge=1, le=1)
    default_exam_prep_capacity: int = Field(default=1, ge=1)

    min_hours_for_exam: float = Field(
        default=20, ge=0, description="Driving hours required before exam readiness"
    )
    min_rating_for_exam: float = Field(
        default=3.5, ge=0, le=5, description="Average lesson rating required before exam readiness"
    )

    attendance_history_record_limit: int = Field(default=300, ge=1)
    attendance_history_max_dates: int = Field(default=30, ge=1)

    dispatch_events_inline: bool = Field(
        default=True,
        description="Deliver outbox events right after each successful operation",
    )
    outbox_batch_size: int = Field(default=200, ge=1)
    outbox_max_attempts: int = Field(default=5, ge=1)
    outbox_backoff_seconds: int = Field(default=30, ge=1)

    allow_admin_phase_override: bool = Field(
        default=False,
        description="Let administrators set any pre-exam phase, including regressions",
    )

    @field_validator("school_timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        if v not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()


settings = Settings()

"""
Base schemas shared by request and response models.
"""
import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict


class StandardizedModel(BaseModel):
    """Base model for responses built from ORM objects."""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True, from_attributes=True)


class StrictModel(BaseModel):
    """Strict base for request payloads: forbid extras, validate defaults and assignments."""

    model_config = ConfigDict(
        extra="forbid",
        validate_default=True,
        validate_assignment=True,
    )


def ensure_minute_resolution(value: Optional[dt.time]) -> Optional[dt.time]:
    """Reject times carrying seconds; slots are expressed in whole minutes."""
    if value is None:
        return value
    if value.second or value.microsecond:
        raise ValueError("Times must be given in whole minutes (HH:MM)")
    return value.replace(tzinfo=None)

"""
Cross-process mutex around an instructor's day.

Serializes slot creation and edits for one (instructor, date) pair before the
database transaction starts. Fails open: when Redis is not configured or
unreachable the database-level locks remain the guard.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import date
import logging
import threading
import time
from typing import Iterator, Optional

from redis import Redis

from ..monitoring.prometheus_metrics import prometheus_metrics
from .config import settings

logger = logging.getLogger(__name__)

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()


def _lock_key(owner_id: str, day: date) -> str:
    return f"schedule:{owner_id}:{day.isoformat()}:mutex"


def _namespaced_key(key: str) -> str:
    return f"{settings.redis_namespace}:lock:{key}"


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    if not settings.redis_url:
        return None
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        try:
            client = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            client.ping()
        except Exception as exc:
            logger.warning("schedule_lock_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        return _SYNC_REDIS


def acquire_schedule_lock(owner_id: str, day: date, ttl_s: Optional[int] = None) -> bool:
    client = _get_sync_redis()
    if client is None:
        prometheus_metrics.record_schedule_lock("acquire", "redis_unavailable")
        return True
    ttl = ttl_s or settings.slot_lock_ttl_seconds
    try:
        acquired = bool(
            client.set(_namespaced_key(_lock_key(owner_id, day)), str(time.time()), nx=True, ex=ttl)
        )
        if acquired:
            prometheus_metrics.record_schedule_lock("acquire", "success")
        else:
            prometheus_metrics.record_schedule_lock("acquire", "blocked")
        return acquired
    except Exception as exc:
        prometheus_metrics.record_schedule_lock("acquire", "error")
        logger.warning(
            "schedule_lock_acquire_failed",
            extra={
                "owner_id": owner_id,
                "date": day.isoformat(),
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )
        return True


def release_schedule_lock(owner_id: str, day: date) -> None:
    client = _get_sync_redis()
    if client is None:
        return
    try:
        deleted = client.delete(_namespaced_key(_lock_key(owner_id, day)))
        if deleted:
            prometheus_metrics.record_schedule_lock("release", "success")
        else:
            prometheus_metrics.record_schedule_lock("release", "not_found")
    except Exception as exc:
        prometheus_metrics.record_schedule_lock("release", "error")
        logger.warning(
            "schedule_lock_release_failed",
            extra={
                "owner_id": owner_id,
                "date": day.isoformat(),
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )


@contextmanager
def schedule_lock(owner_id: str, day: date, ttl_s: Optional[int] = None) -> Iterator[bool]:
    acquired = acquire_schedule_lock(owner_id, day, ttl_s=ttl_s)
    try:
        yield acquired
    finally:
        if acquired:
            release_schedule_lock(owner_id, day)

# autoecole/repositories/event_outbox_repository.py
"""
Outbox queue access.

Enqueueing is idempotent on the event key. Delivery state is written on the
loaded row so the dispatcher's batch and the session never disagree.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session
import ulid

from ..models.event_outbox import EventOutbox, EventOutboxStatus
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class EventOutboxRepository(BaseRepository[EventOutbox]):
    def __init__(self, db: Session):
        super().__init__(db, EventOutbox)

    def get_by_key(self, idempotency_key: str) -> Optional[EventOutbox]:
        return self.db.query(EventOutbox).filter(EventOutbox.idempotency_key == idempotency_key).first()

    def enqueue(
        self,
        event_type: str,
        aggregate_id: str,
        payload: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> EventOutbox:
        """
        Queue an event in the current transaction.

        A second event with the same key returns the first row unchanged.
        Without a key every call queues a new row.
        """
        key = idempotency_key or f"{event_type}:{aggregate_id}:{ulid.ULID()}"
        existing = self.get_by_key(key)
        if existing is not None:
            logger.debug("Outbox already holds %s", key)
            return existing
        return self.create(
            event_type=event_type,
            aggregate_id=aggregate_id,
            payload=payload or {},
            idempotency_key=key,
            status=EventOutboxStatus.PENDING.value,
            attempt_count=0,
            next_attempt_at=utc_now(),
        )

    def fetch_pending(self, limit: int = 200) -> List[EventOutbox]:
        """Due PENDING rows, oldest first. Concurrent dispatchers skip each other's rows."""
        query = (
            self.db.query(EventOutbox)
            .filter(
                EventOutbox.status == EventOutboxStatus.PENDING.value,
                EventOutbox.next_attempt_at <= utc_now(),
            )
            .order_by(EventOutbox.next_attempt_at.asc(), EventOutbox.id.asc())
            .limit(limit)
        )
        if self.dialect_name != "sqlite":
            query = query.with_for_update(skip_locked=True)
        return query.all()

    def mark_sent(self, event: EventOutbox, attempt_count: int) -> None:
        now = utc_now()
        event.status = EventOutboxStatus.SENT.value
        event.attempt_count = attempt_count
        event.last_error = None
        event.sent_at = now
        self.flush()

    def mark_failed(
        self,
        event: EventOutbox,
        attempt_count: int,
        error: str,
        retry_in: Optional[timedelta] = None,
    ) -> None:
        """Record a failed attempt; without ``retry_in`` the row is parked as FAILED."""
        event.attempt_count = attempt_count
        event.last_error = error[:1000]
        if retry_in is None:
            event.status = EventOutboxStatus.FAILED.value
        else:
            event.status = EventOutboxStatus.PENDING.value
            event.next_attempt_at = utc_now() + retry_in
        self.flush()

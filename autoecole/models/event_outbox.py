# autoecole/models/event_outbox.py
"""
Outbox rows for scheduling events.

A row is inserted by the same transaction that changed the slot, booking,
attendance sheet or membership it describes, and is later handed to the
notifier by the dispatcher.
"""

from __future__ import annotations

from enum import Enum

from sqlalchemy import Column, DateTime, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from ..database import Base


class EventOutboxStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class EventOutbox(Base):
    """One queued domain event and its delivery bookkeeping."""

    __tablename__ = "event_outbox"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    event_type = Column(String(100), nullable=False)
    aggregate_id = Column(String(64), nullable=False, index=True)
    # Unique; events without a natural key get a generated one
    idempotency_key = Column(String(255), nullable=False, unique=True)
    payload = Column(JSONB().with_variant(JSON(), "sqlite"), nullable=False, default=dict)

    status = Column(String(20), nullable=False, default=EventOutboxStatus.PENDING.value)
    attempt_count = Column(Integer, nullable=False, default=0)
    next_attempt_at = Column(DateTime(timezone=True), nullable=False)
    last_error = Column(Text, nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (Index("ix_event_outbox_status_next_attempt", "status", "next_attempt_at"),)

    def __repr__(self) -> str:
        return f"<EventOutbox {self.event_type} {self.status} attempts={self.attempt_count}>"

"""Event publisher - writes events to the transactional outbox."""
from datetime import date, datetime, time
import logging
from typing import Any, Dict

from ..repositories.event_outbox_repository import EventOutboxRepository
from .scheduling_events import DomainEvent

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


class EventPublisher:
    """Publishes domain events into the outbox of the current transaction."""

    def __init__(self, outbox_repository: EventOutboxRepository):
        self.outbox_repo = outbox_repository

    def publish(self, event: DomainEvent) -> None:
        """
        Queue an event for delivery.

        The row is flushed with the caller's transaction, so it only becomes
        visible to the dispatcher if the state change commits.
        """
        event_type = f"event:{type(event).__name__}"
        payload: Dict[str, Any] = {key: _jsonable(value) for key, value in event.to_dict().items()}
        self.outbox_repo.enqueue(
            event_type=event_type,
            aggregate_id=event.aggregate_id,
            payload=payload,
            idempotency_key=event.idempotency_key(),
        )
        logger.debug("Queued %s for %s", event_type, event.aggregate_id)

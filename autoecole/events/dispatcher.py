"""
Outbox dispatcher.

Delivers pending outbox rows through the notifier. Runs in its own
transaction after the producing operation committed, so a delivery failure
can never undo the state change that raised the event.
"""

from datetime import timedelta
import logging
import time
from typing import Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..notifications.notifier import Notifier
from ..repositories.factory import RepositoryFactory
from .handlers import process_event

logger = logging.getLogger(__name__)


class OutboxDispatcher:
    """Moves PENDING outbox events to SENT or, after repeated errors, FAILED."""

    def __init__(self, db: Session, notifier: Notifier):
        self.db = db
        self.notifier = notifier
        self.outbox_repo = RepositoryFactory.create_event_outbox_repository(db)

    def dispatch_pending(self, limit: Optional[int] = None) -> Dict[str, int]:
        """Deliver due events. Returns counts per outcome."""
        counts = {"sent": 0, "retry": 0, "failed": 0}
        events = self.outbox_repo.fetch_pending(limit=limit or settings.outbox_batch_size)
        for event in events:
            attempt = int(event.attempt_count or 0) + 1
            prometheus_metrics.record_outbox_attempt(event.event_type)
            start = time.monotonic()
            try:
                process_event(event.event_type, dict(event.payload or {}), self.notifier)
            except Exception as exc:
                terminal = attempt >= settings.outbox_max_attempts
                logger.error(
                    "Outbox delivery failed for %s (%s), attempt %s: %s",
                    event.id,
                    event.event_type,
                    attempt,
                    exc,
                )
                retry_in: Optional[timedelta] = (
                    None if terminal else timedelta(seconds=settings.outbox_backoff_seconds * attempt)
                )
                self.outbox_repo.mark_failed(event, attempt, str(exc), retry_in=retry_in)
                if terminal:
                    counts["failed"] += 1
                    prometheus_metrics.record_outbox_outcome(event.event_type, "failed")
                else:
                    counts["retry"] += 1
                continue
            finally:
                prometheus_metrics.observe_outbox_dispatch(
                    event.event_type, time.monotonic() - start
                )
            self.outbox_repo.mark_sent(event, attempt)
            counts["sent"] += 1
            prometheus_metrics.record_outbox_outcome(event.event_type, "sent")

        self.db.commit()
        if events:
            logger.info("Outbox dispatch finished: %s", counts)
        return counts

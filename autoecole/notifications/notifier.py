"""
Notification port.

Delivery and formatting belong to the portal's messaging service; the engine
only hands over a Notification addressed to a user or to every holder of a role.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
import logging
from typing import Any, Dict, Optional

from ..core.enums import NotificationPriority, RoleName

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    title: str
    message: str
    category: str
    recipient_id: Optional[str] = None
    audience: Optional[RoleName] = None
    priority: NotificationPriority = NotificationPriority.NORMAL
    data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.recipient_id and self.audience is None:
            raise ValueError("Notification needs a recipient or an audience")


class Notifier(ABC):
    """Interface for notification delivery backends."""

    @abstractmethod
    def send(self, notification: Notification) -> None:
        """Deliver one notification; raising leaves the outbox row for retry."""


class LoggingNotifier(Notifier):
    """Default backend: writes notifications to the application log."""

    def send(self, notification: Notification) -> None:
        target = notification.recipient_id or f"role:{notification.audience.value}"  # type: ignore[union-attr]
        logger.info(
            "notification",
            extra={
                "target": target,
                "category": notification.category,
                "priority": notification.priority.value,
                "title": notification.title,
            },
        )

"""Domain events, their outbox publisher and notification handlers."""

from .publisher import EventPublisher

__all__ = ["EventPublisher"]

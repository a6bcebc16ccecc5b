from .notifier import LoggingNotifier, Notification, Notifier

__all__ = ["LoggingNotifier", "Notification", "Notifier"]

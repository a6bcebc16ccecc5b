# autoecole/services/base.py
"""
Shared plumbing for the scheduling services.

Every service gets the request's session, the school clock and an event
publisher bound to the same session, so domain events commit or roll back
with the change that produced them.
"""

from contextlib import contextmanager
from functools import wraps
import logging
import time
from typing import Any, Callable, Iterator, Optional, TypeVar, cast

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..core.clock import Clock, SystemClock
from ..core.exceptions import ConcurrentModificationException, ForbiddenException, ServiceException
from ..core.principal import Principal
from ..events.publisher import EventPublisher
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

SLOW_OPERATION_SECONDS = 1.0


class BaseService:
    """Base class for services that mutate or read scheduling aggregates."""

    def __init__(self, db: Session, clock: Optional[Clock] = None):
        self.db = db
        self.clock = clock or SystemClock()
        self.logger = logging.getLogger(self.__class__.__name__)
        self.event_publisher = EventPublisher(RepositoryFactory.create_event_outbox_repository(db))

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Run a block as one unit of work: commit on exit, roll back on any error.

        A lost version check (StaleDataError) or a unique index rejecting a
        racing insert (IntegrityError) both mean another request won, and are
        raised as ConcurrentModificationException. Other database errors
        become ServiceException. Domain exceptions pass through unchanged.
        """
        try:
            yield self.db
            self.db.commit()
        except (StaleDataError, IntegrityError) as e:
            self.db.rollback()
            self.logger.warning(f"Concurrent write rejected: {e.__class__.__name__}: {e}")
            raise ConcurrentModificationException() from e
        except SQLAlchemyError as e:
            self.db.rollback()
            self.logger.error(f"Transaction failed: {str(e)}")
            raise ServiceException(f"Database operation failed: {str(e)}") from e
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def measure_operation(operation_name: str) -> Callable[[F], F]:
        """Record duration and outcome of a service method, warning when it is slow."""

        def decorator(func: F) -> F:
            @wraps(func)
            def wrapper(self, *args, **kwargs):
                started = time.monotonic()
                error_type = None
                try:
                    return func(self, *args, **kwargs)
                except Exception as e:
                    error_type = type(e).__name__
                    raise
                finally:
                    elapsed = time.monotonic() - started
                    if elapsed > SLOW_OPERATION_SECONDS:
                        self.logger.warning(f"Slow operation: {operation_name} took {elapsed:.2f}s")
                    try:
                        prometheus_metrics.record_service_operation(
                            service=self.__class__.__name__,
                            operation=operation_name,
                            duration=elapsed,
                            status="error" if error_type else "success",
                            error_type=error_type,
                        )
                    except Exception as metrics_error:
                        self.logger.debug(f"Metrics recording failed: {metrics_error}")

            return cast(F, wrapper)

        return decorator

    def log_operation(self, operation: str, **context: Any) -> None:
        self.logger.info(f"Operation: {operation}", extra={"operation": operation, "context": context})

    @staticmethod
    def require_admin(actor: Principal, action: str) -> None:
        if not actor.is_admin:
            raise ForbiddenException(
                f"Only administrators can {action}",
                code="ADMIN_REQUIRED",
                details={"user_id": actor.user_id, "role": actor.role.value},
            )

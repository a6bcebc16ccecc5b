"""
Prometheus metrics for the scheduling engine.

Service timings are fed by the @BaseService.measure_operation decorator; the
domain counters are incremented by the services and the outbox dispatcher.
"""

from threading import Lock
from time import monotonic
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Own registry so /metrics only exposes this package's series
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "autoecole_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "autoecole_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "autoecole_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

schedule_lock_total = Counter(
    "autoecole_schedule_lock_total",
    "Instructor-day mutex operations by outcome",
    ["action", "outcome"],
    registry=REGISTRY,
)

booking_events_total = Counter(
    "autoecole_booking_events_total",
    "Booking lifecycle transitions",
    ["transition", "lesson_type"],
    registry=REGISTRY,
)

absence_escalations_total = Counter(
    "autoecole_absence_escalations_total",
    "Administrator escalations raised for repeated absences",
    registry=REGISTRY,
)

outbox_total = Counter(
    "autoecole_outbox_total",
    "Outbox events by terminal status",
    ["status", "event_type"],
    registry=REGISTRY,
)

outbox_attempt_total = Counter(
    "autoecole_outbox_attempt_total",
    "Number of outbox delivery attempts",
    ["event_type"],
    registry=REGISTRY,
)

outbox_dispatch_seconds = Histogram(
    "autoecole_outbox_dispatch_seconds",
    "Notifier dispatch duration in seconds",
    ["event_type"],
    registry=REGISTRY,
    buckets=(0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)


class PrometheusMetrics:
    """Manages Prometheus metrics collection and exposure."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None
    _cache_ttl_seconds: float = 1.0

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """Fed by BaseService.measure_operation for every decorated service call."""
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_schedule_lock(action: str, outcome: str) -> None:
        schedule_lock_total.labels(action=action, outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_booking_transition(transition: str, lesson_type: str) -> None:
        booking_events_total.labels(transition=transition, lesson_type=lesson_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def inc_absence_escalation() -> None:
        absence_escalations_total.inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_outbox_attempt(event_type: str) -> None:
        outbox_attempt_total.labels(event_type=event_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_outbox_outcome(event_type: str, status: str) -> None:
        outbox_total.labels(status=status, event_type=event_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def observe_outbox_dispatch(event_type: str, duration: float) -> None:
        outbox_dispatch_seconds.labels(event_type=event_type).observe(max(duration, 0.0))
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format, cached briefly."""
        now = monotonic()
        payload = PrometheusMetrics._cache_payload
        ts = PrometheusMetrics._cache_ts
        if payload is not None and ts is not None and (now - ts) <= PrometheusMetrics._cache_ttl_seconds:
            return payload

        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
            PrometheusMetrics._cache_ts = monotonic()
            return PrometheusMetrics._cache_payload

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None


prometheus_metrics = PrometheusMetrics()

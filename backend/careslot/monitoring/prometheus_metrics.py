"""
Prometheus metrics for the booking engine.

Service timings come from ``@BaseService.measure_operation``; the domain
counters below track reservation conflicts, expiry-sweep outcomes and
notification dispatch.
"""

from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Create a custom registry to avoid conflicts with default metrics
REGISTRY = CollectorRegistry()

service_operation_duration_seconds = Histogram(
    "careslot_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

service_operations_total = Counter(
    "careslot_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "careslot_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

booking_transitions_total = Counter(
    "careslot_booking_transitions_total",
    "Committed booking status transitions",
    ["from_status", "to_status"],
    registry=REGISTRY,
)

reservation_conflicts_total = Counter(
    "careslot_reservation_conflicts_total",
    "Compare-and-set updates that lost a race",
    ["kind"],  # slot | booking
    registry=REGISTRY,
)

expiry_sweep_bookings_total = Counter(
    "careslot_expiry_sweep_bookings_total",
    "Bookings handled by the expiry sweep by outcome",
    ["outcome"],  # rejected | skipped | failed
    registry=REGISTRY,
)

expiry_sweep_duration_seconds = Histogram(
    "careslot_expiry_sweep_duration_seconds",
    "Expiry sweep run duration in seconds",
    registry=REGISTRY,
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

notifications_total = Counter(
    "careslot_notifications_total",
    "Notification dispatch attempts by outcome",
    ["event_type", "status"],  # sent | failed
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Records metrics and renders the exposition payload."""

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'BookingService')
            operation: Operation/method name (e.g., 'confirm_booking')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Type of error if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()

    @staticmethod
    def record_transition(from_status: str, to_status: str) -> None:
        booking_transitions_total.labels(from_status=from_status, to_status=to_status).inc()

    @staticmethod
    def record_conflict(kind: str) -> None:
        reservation_conflicts_total.labels(kind=kind).inc()

    @staticmethod
    def record_sweep(rejected: int, skipped: int, failed: int, duration: float) -> None:
        expiry_sweep_bookings_total.labels(outcome="rejected").inc(rejected)
        expiry_sweep_bookings_total.labels(outcome="skipped").inc(skipped)
        expiry_sweep_bookings_total.labels(outcome="failed").inc(failed)
        expiry_sweep_duration_seconds.observe(max(duration, 0.0))

    @staticmethod
    def record_notification(event_type: str, status: str) -> None:
        notifications_total.labels(event_type=event_type, status=status).inc()

    @staticmethod
    def get_metrics() -> bytes:
        """Generate Prometheus metrics in exposition format."""
        return cast(bytes, generate_latest(REGISTRY))

    @staticmethod
    def get_content_type() -> str:
        """Get the content type for Prometheus metrics."""
        return cast(str, CONTENT_TYPE_LATEST)


# Singleton instance
prometheus_metrics = PrometheusMetrics()

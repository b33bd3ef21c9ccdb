"""
Prometheus metrics for MoneyFusion payment monitoring.

Tracks:
- Payment creations and amounts
- State transitions by source (webhook, gateway, operator)
- Gateway call counts, durations, errors and TLS mode
- Webhook deliveries by outcome
- Status checks served from local fallback
- Conflicting late events and lost optimistic writes
"""
import time

from prometheus_client import Counter, Gauge, Histogram

# Payment metrics
payments_created_total = Counter(
    "fusion_payments_created_total",
    "Total number of payment creation attempts",
    ["status"],  # created, rejected, gateway_error
)

payment_amount = Histogram(
    "fusion_payment_amount",
    "Amounts of created payments",
    buckets=(100, 500, 1000, 5000, 10000, 50000, 100000, 500000, 1000000),
)

payment_transitions_total = Counter(
    "fusion_payment_transitions_total",
    "Total payment state transitions",
    ["from_state", "to_state", "source"],
)

# Gateway metrics
gateway_requests_total = Counter(
    "fusion_gateway_requests_total",
    "Total gateway API requests",
    ["operation", "status"],  # operation: create, check
)

gateway_errors_total = Counter(
    "fusion_gateway_errors_total",
    "Total gateway API errors",
    ["operation", "error_type"],  # transient, rejected, malformed
)

gateway_duration_seconds = Histogram(
    "fusion_gateway_duration_seconds",
    "Gateway API call duration in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 10.0, 30.0),
)

gateway_tls_verification_enabled = Gauge(
    "fusion_gateway_tls_verification_enabled",
    "Gateway TLS verification mode (1=verified, 0=disabled)",
)

# Webhook metrics
webhook_events_total = Counter(
    "fusion_webhook_events_total",
    "Total webhook deliveries",
    ["event_kind", "outcome"],  # processed, duplicate, rejected, not_found
)

webhook_processing_duration_seconds = Histogram(
    "fusion_webhook_processing_duration_seconds",
    "Webhook processing duration in seconds",
    ["event_kind"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

# Reconciliation metrics
status_check_fallbacks_total = Counter(
    "fusion_status_check_fallbacks_total",
    "Status checks answered from the local record because the gateway failed",
)

conflicting_events_total = Counter(
    "fusion_conflicting_events_total",
    "Terminal payments that received a contradicting terminal event",
    ["current_state", "event_kind"],
)

write_conflicts_total = Counter(
    "fusion_write_conflicts_total",
    "Optimistic writes that lost to a concurrent writer",
)

pending_sweep_last_run_timestamp = Gauge(
    "fusion_pending_sweep_last_run_timestamp",
    "Timestamp of last pending payment sweep",
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_payment_created(status: str, amount: float = 0) -> None:
        """Record a payment creation attempt."""
        payments_created_total.labels(status=status).inc()
        if amount:
            payment_amount.observe(amount)

    @staticmethod
    def record_transition(from_state: str, to_state: str, source: str) -> None:
        """Record a state transition."""
        payment_transitions_total.labels(
            from_state=from_state, to_state=to_state, source=source
        ).inc()

    @staticmethod
    def record_gateway_call(operation: str, status: str, duration_seconds: float) -> None:
        """Record a gateway API call."""
        gateway_requests_total.labels(operation=operation, status=status).inc()
        gateway_duration_seconds.labels(operation=operation).observe(duration_seconds)

    @staticmethod
    def record_gateway_error(operation: str, error_type: str) -> None:
        """Record a gateway API error."""
        gateway_errors_total.labels(operation=operation, error_type=error_type).inc()

    @staticmethod
    def set_gateway_tls_mode(verified: bool) -> None:
        """Expose whether TLS verification is on."""
        gateway_tls_verification_enabled.set(1 if verified else 0)

    @staticmethod
    def record_webhook_event(event_kind: str, outcome: str, duration_seconds: float) -> None:
        """Record webhook event processing."""
        webhook_events_total.labels(event_kind=event_kind, outcome=outcome).inc()
        webhook_processing_duration_seconds.labels(event_kind=event_kind).observe(
            duration_seconds
        )

    @staticmethod
    def record_status_fallback() -> None:
        status_check_fallbacks_total.inc()

    @staticmethod
    def record_conflicting_event(current_state: str, event_kind: str) -> None:
        conflicting_events_total.labels(current_state=current_state, event_kind=event_kind).inc()

    @staticmethod
    def record_write_conflict() -> None:
        write_conflicts_total.inc()

    @staticmethod
    def mark_pending_sweep() -> None:
        pending_sweep_last_run_timestamp.set(time.time())


# Export singleton instance
metrics = MetricsCollector()

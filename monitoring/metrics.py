"""
Prometheus metrics for unclaimed balance collection monitoring.

Tracks:
- Merchant accounts processed by outcome
- Amounts collected
- Collection run duration and last run time
- Stripe API requests, errors and latency
- Circuit breaker state
"""
import time

from prometheus_client import Counter, Gauge, Histogram

# Collection metrics
unclaimed_balance_accounts_total = Counter(
    "unclaimed_balance_accounts_total",
    "Merchant accounts processed by the unclaimed balance collector",
    ["outcome", "reason"],  # outcome: collected, skipped, failed
)

unclaimed_balance_collected_cents_total = Counter(
    "unclaimed_balance_collected_cents_total",
    "Total unclaimed balance collected, in cents",
    ["currency"],
)

unclaimed_balance_run_duration_seconds = Histogram(
    "unclaimed_balance_run_duration_seconds",
    "Unclaimed balance collection run duration in seconds",
    buckets=(1, 10, 30, 60, 120, 300, 600, 1800, 3600),
)

unclaimed_balance_last_run_timestamp = Gauge(
    "unclaimed_balance_last_run_timestamp",
    "Timestamp of last unclaimed balance collection run",
)

unclaimed_balance_runs_total = Counter(
    "unclaimed_balance_runs_total",
    "Total unclaimed balance collection runs",
    ["status"],
)

# Stripe API metrics
stripe_api_requests_total = Counter(
    "stripe_api_requests_total",
    "Total Stripe API requests",
    ["operation", "status"],  # operation: retrieve_account, create_transfer, etc.
)

stripe_api_errors_total = Counter(
    "stripe_api_errors_total",
    "Total Stripe API errors",
    ["error_type"],  # transient, permanent, rate_limit
)

stripe_api_duration_seconds = Histogram(
    "stripe_api_duration_seconds",
    "Stripe API call duration in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
)

# Circuit breaker metrics
stripe_circuit_breaker_state = Gauge(
    "stripe_circuit_breaker_state",
    "Stripe circuit breaker state (0=closed, 1=open, 2=half_open)",
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_account_outcome(outcome: str, reason: str = "") -> None:
        """Record the outcome of processing one merchant account."""
        unclaimed_balance_accounts_total.labels(outcome=outcome, reason=reason).inc()

    @staticmethod
    def record_collection(amount_cents: int, currency: str) -> None:
        """Record a collected balance."""
        unclaimed_balance_collected_cents_total.labels(currency=currency).inc(amount_cents)

    @staticmethod
    def record_run(status: str, duration_seconds: float) -> None:
        """Record a finished collection run."""
        unclaimed_balance_runs_total.labels(status=status).inc()
        unclaimed_balance_run_duration_seconds.observe(duration_seconds)
        unclaimed_balance_last_run_timestamp.set(time.time())

    @staticmethod
    def record_stripe_api_call(
        operation: str, status: str, duration_seconds: float
    ) -> None:
        """Record Stripe API call."""
        stripe_api_requests_total.labels(operation=operation, status=status).inc()
        stripe_api_duration_seconds.labels(operation=operation).observe(duration_seconds)

    @staticmethod
    def record_stripe_api_error(error_type: str) -> None:
        """Record Stripe API error."""
        stripe_api_errors_total.labels(error_type=error_type).inc()

    @staticmethod
    def set_circuit_breaker_state(state: str) -> None:
        """Set circuit breaker state."""
        state_map = {"closed": 0, "open": 1, "half_open": 2}
        stripe_circuit_breaker_state.set(state_map.get(state, 0))


# Export singleton instance
metrics = MetricsCollector()

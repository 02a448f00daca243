"""Prometheus metrics for marketplace activity, money flow and webhook performance"""

from prometheus_client import Counter, Histogram

# Operation metrics
operation_counter = Counter(
    "peerlend_operation_total",
    "Marketplace operations processed",
    ["action", "outcome"],  # outcome: ok | error kind
)

# Money flow
funded_volume_counter = Counter(
    "peerlend_funded_amount_total",
    "Principal moved from lenders at funding time",
)

platform_fee_counter = Counter(
    "peerlend_platform_fees_total",
    "Platform fees withheld from funded principal",
)

repayment_volume_counter = Counter(
    "peerlend_repayment_amount_total",
    "Installment payments moved from borrowers to lenders",
)

loans_paid_off_counter = Counter(
    "peerlend_loans_paid_off_total",
    "Funded loans repaid in full",
)

# Webhook metrics
webhook_latency_histogram = Histogram(
    "webhook_latency_seconds",
    "Notifier webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_failure_counter = Counter(
    "webhook_failures_total",
    "Failed webhook deliveries",
)

# Activity store
activity_store_failures_counter = Counter(
    "peerlend_activity_store_failures_total",
    "History and notification writes that failed after the operation was applied",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_operation(action: str, outcome: str = "ok") -> None:
    operation_counter.labels(action=action, outcome=outcome).inc()


def record_funding(amount: float, fee: float) -> None:
    """Record principal and the fee sink share for one funding event"""
    funded_volume_counter.inc(amount)
    platform_fee_counter.inc(fee)


def record_payment(amount: float, paid_off: bool) -> None:
    repayment_volume_counter.inc(amount)
    if paid_off:
        loans_paid_off_counter.inc()

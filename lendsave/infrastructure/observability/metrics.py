"""Prometheus metrics for credit decisions, money movement and event delivery"""

from prometheus_client import Counter, Histogram

# Credit decision metrics
credit_decision_counter = Counter(
    "lendsave_credit_decision_total",
    "Credit request decisions made",
    ["outcome", "mode"],  # approved | rejected | pending, auto | manual
)

credit_amount_bucket_counter = Counter(
    "lendsave_credit_amount_bucket",
    "Approved credit amounts by bucket",
    ["bucket"],  # <$1k, $1k-$5k, $5k-$25k, $25k+
)

# Money movement metrics
money_movement_counter = Counter(
    "lendsave_money_movement_total",
    "Committed balance and repayment mutations",
    ["kind"],  # deposit | withdrawal | credit_repayment | interest
)

money_movement_cents_counter = Counter(
    "lendsave_money_movement_cents_total",
    "Committed money moved, in cents",
    ["kind"],
)

uow_rollback_counter = Counter(
    "lendsave_uow_rollbacks_total",
    "Units of work rolled back",
    ["reason"],
)

# Event delivery metrics
event_handler_failure_counter = Counter(
    "lendsave_event_handler_failures_total",
    "Domain event handlers that raised",
    ["event_type"],
)

webhook_latency_histogram = Histogram(
    "lendsave_webhook_latency_seconds",
    "Event webhook response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

webhook_failure_counter = Counter(
    "lendsave_webhook_failures_total",
    "Failed event webhook deliveries",
)


def amount_bucket(amount_cents: int) -> str:
    if amount_cents < 100_000:
        return "<$1k"
    if amount_cents < 500_000:
        return "$1k-$5k"
    if amount_cents < 2_500_000:
        return "$5k-$25k"
    return "$25k+"


def record_credit_decision(outcome: str, automatic: bool, approved_cents: int = 0) -> None:
    """Record decision metrics for monitoring approval rates and amount distribution"""
    credit_decision_counter.labels(outcome=outcome, mode="auto" if automatic else "manual").inc()
    if outcome == "approved":
        credit_amount_bucket_counter.labels(bucket=amount_bucket(approved_cents)).inc()


def record_money_movement(kind: str, amount_cents: int) -> None:
    money_movement_counter.labels(kind=kind).inc()
    money_movement_cents_counter.labels(kind=kind).inc(amount_cents)

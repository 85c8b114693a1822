"""
Prometheus Metrics for the Credit Oracle service.

This module defines all metrics exposed at the /metrics endpoint.
Metrics are categorized into:

1. Business Impact Metrics - scores published, score distribution, batch outcomes
2. Technical Metrics - stage latencies, upstream and chain failures, oracle health
"""
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram, Info

# =============================================================================
# SERVICE INFO
# =============================================================================

SERVICE_INFO = Info(
    "credit_oracle_service",
    "Service information"
)
SERVICE_INFO.info({
    "version": "0.1.0",
    "service": "credit-oracle",
})

# =============================================================================
# BUSINESS IMPACT METRICS
# =============================================================================

# Counter: Score update attempts by outcome
SCORE_UPDATE_TOTAL = Counter(
    "credit_oracle_score_update_total",
    "Total score update attempts",
    ["outcome"]  # confirmed, or the error kind that failed the update
)

# Histogram: Published score distribution
SCORE_DISTRIBUTION = Histogram(
    "credit_oracle_score",
    "Distribution of published credit scores",
    buckets=[300, 400, 500, 550, 600, 650, 700, 750, 800, 850]
)

# Counter: Batch items by outcome
BATCH_ITEMS = Counter(
    "credit_oracle_batch_items_total",
    "Batch items processed",
    ["outcome"]  # succeeded, failed
)

# Gauge: Batches currently running
BATCHES_RUNNING = Gauge(
    "credit_oracle_batches_running",
    "Number of batch jobs currently running"
)

# =============================================================================
# TECHNICAL METRICS
# =============================================================================

# Histogram: End-to-end score update latency
SCORE_UPDATE_LATENCY = Histogram(
    "credit_oracle_score_update_latency_seconds",
    "Time to score and publish one address (end-to-end)",
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0]
)

# Histogram: Activity fetch latency
ACTIVITY_FETCH_LATENCY = Histogram(
    "credit_oracle_activity_fetch_latency_seconds",
    "Time to fetch wallet activity",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0]
)

# Counter: Activity fetch failures
ACTIVITY_FETCH_FAILURES = Counter(
    "credit_oracle_activity_fetch_failures_total",
    "Total wallet activity fetch failures",
    ["error_type"]  # timeout, connection_error, http_error, invalid_payload
)

# Histogram: Transaction submission latency
SUBMISSION_LATENCY = Histogram(
    "credit_oracle_submission_latency_seconds",
    "Time to build, sign and send a score transaction",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Histogram: Confirmation latency
CONFIRMATION_LATENCY = Histogram(
    "credit_oracle_confirmation_latency_seconds",
    "Time from submission to mined receipt",
    buckets=[1.0, 5.0, 10.0, 15.0, 30.0, 60.0, 120.0]
)

# Counter: Registry read failures
REGISTRY_QUERY_FAILURES = Counter(
    "credit_oracle_registry_query_failures_total",
    "Failed read-only registry queries",
    ["query"]  # has_score, oracle, balance
)

# Gauge: Oracle account balance
ORACLE_BALANCE = Gauge(
    "credit_oracle_balance_eth",
    "Native balance of the oracle signing account"
)

# Gauge: Whether the registry's oracle() matches our identity
ORACLE_AUTHORIZED = Gauge(
    "credit_oracle_authorized",
    "1 if the registry authorizes this oracle identity, else 0"
)

# =============================================================================
# HTTP METRICS (Standard)
# =============================================================================

HTTP_REQUESTS = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

HTTP_REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 30.0, 120.0]
)

# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def record_score_update(
    outcome: str,
    latency_seconds: float,
    score: Optional[int] = None,
) -> None:
    """
    Record all metrics for a single score update attempt.

    Args:
        outcome: "confirmed" or the error kind that ended the update
        latency_seconds: Time taken for the whole update
        score: The computed score, when one was produced
    """
    SCORE_UPDATE_TOTAL.labels(outcome=outcome).inc()
    SCORE_UPDATE_LATENCY.observe(latency_seconds)

    if outcome == "confirmed" and score is not None:
        SCORE_DISTRIBUTION.observe(score)


def record_activity_fetch(success: bool, latency_seconds: float, error_type: str = None) -> None:
    """Record wallet activity fetch metrics."""
    ACTIVITY_FETCH_LATENCY.observe(latency_seconds)

    if not success:
        ACTIVITY_FETCH_FAILURES.labels(error_type=error_type or "unknown").inc()


def record_submission(latency_seconds: float) -> None:
    """Record transaction submission latency."""
    SUBMISSION_LATENCY.observe(latency_seconds)


def record_confirmation(latency_seconds: float) -> None:
    """Record transaction confirmation latency."""
    CONFIRMATION_LATENCY.observe(latency_seconds)


def record_registry_query_failure(query: str) -> None:
    """Record a failed read-only registry query."""
    REGISTRY_QUERY_FAILURES.labels(query=query).inc()


def record_batch_item(success: bool) -> None:
    """Record the outcome of one batch item."""
    BATCH_ITEMS.labels(outcome="succeeded" if success else "failed").inc()


def set_oracle_health(balance_eth: Optional[float] = None, authorized: Optional[bool] = None) -> None:
    """Update the oracle balance and authorization gauges."""
    if balance_eth is not None:
        ORACLE_BALANCE.set(balance_eth)
    if authorized is not None:
        ORACLE_AUTHORIZED.set(1 if authorized else 0)

"""Prometheus metrics for the Azure operator."""

from prometheus_client import Counter, Histogram, Gauge, Info

# Reconciliation metrics
RECONCILE_TOTAL = Counter(
    "azure_operator_reconcile_total",
    "Total number of reconciliations",
    ["resource", "operation", "status"],
)

RECONCILE_DURATION = Histogram(
    "azure_operator_reconcile_duration_seconds",
    "Time spent in reconciliation",
    ["resource", "operation"],
    buckets=(0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 900.0, 1800.0),
)

RECONCILE_IN_PROGRESS = Gauge(
    "azure_operator_reconcile_in_progress",
    "Number of reconciliations currently in progress",
    ["resource"],
)

# Azure API metrics
AZURE_API_CALLS = Counter(
    "azure_operator_azure_api_calls_total",
    "Total number of Azure Resource Manager API calls",
    ["service", "operation", "status"],
)

AZURE_API_DURATION = Histogram(
    "azure_operator_azure_api_duration_seconds",
    "Time spent in Azure Resource Manager API calls",
    ["service", "operation"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

RATE_LIMIT_WAIT_SECONDS = Histogram(
    "azure_operator_rate_limit_wait_seconds",
    "Time spent waiting for rate limit slot",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

THROTTLED_RESPONSES = Counter(
    "azure_operator_throttled_responses_total",
    "Total number of 429 responses from Azure Resource Manager",
)

LOCK_WAIT_SECONDS = Histogram(
    "azure_operator_lock_wait_seconds",
    "Time spent waiting for a named parent-resource lock",
    ["resource_type"],
    buckets=(0.001, 0.01, 0.1, 1.0, 5.0, 30.0, 120.0, 600.0),
)

DELETE_CONFIRMATION_POLLS = Counter(
    "azure_operator_delete_confirmation_polls_total",
    "Total number of refreshes made while confirming eventually consistent deletes",
    ["state"],
)

# Operator info
OPERATOR_INFO = Info(
    "azure_operator",
    "Information about the Azure operator",
)


def set_operator_info(version: str, subscription_id: str) -> None:
    """Set operator info labels."""
    OPERATOR_INFO.info({"version": version, "subscription": subscription_id})


def init_metrics(resources: list[str]) -> None:
    """Initialize all metrics with zero values.

    Prometheus metrics with labels don't appear until used.
    This ensures all metrics are visible immediately at startup.
    """
    operations = ["create", "update", "delete"]
    statuses = ["success", "error"]

    for resource in resources:
        RECONCILE_IN_PROGRESS.labels(resource=resource).set(0)
        for operation in operations:
            RECONCILE_DURATION.labels(resource=resource, operation=operation)
            for status in statuses:
                RECONCILE_TOTAL.labels(
                    resource=resource, operation=operation, status=status
                )

    for state in ("pending", "target"):
        DELETE_CONFIRMATION_POLLS.labels(state=state)

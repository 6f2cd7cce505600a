"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

# Reconciliation metrics
reconcile_requests = Counter(
    "schola_reconcile_requests_total",
    "Total reconcile calls",
    ["kind", "outcome"],
)

reconcile_duration = Histogram(
    "schola_reconcile_duration_seconds",
    "Reconcile transaction duration",
    ["kind"],
)

record_writes = Counter(
    "schola_record_writes_total",
    "Records created or updated by reconciliation and sheet opening",
    ["kind", "action"],
)

# Lifecycle metrics
lifecycle_transitions = Counter(
    "schola_lifecycle_transitions_total",
    "Sheet lifecycle transitions",
    ["kind", "action"],
)

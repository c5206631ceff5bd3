"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

# Ledger write path
ledger_events_appended = Counter(
    "servicevault_ledger_events_appended_total",
    "Total asset events appended to a chain",
    ["event_type"],
)

ledger_append_duration = Histogram(
    "servicevault_ledger_append_duration_seconds",
    "Time spent inside the per-asset append section",
)

ledger_append_failures = Counter(
    "servicevault_ledger_append_failures_total",
    "Asset event appends that did not persist",
    ["reason"],
)

# Chain validation
chain_validations = Counter(
    "servicevault_chain_validations_total",
    "Total asset chain validations",
    ["result"],
)

# Rate limiting
rate_limited_requests = Counter(
    "servicevault_rate_limited_total",
    "Requests rejected by the rate limiter",
)

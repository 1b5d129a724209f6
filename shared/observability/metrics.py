from prometheus_client import Counter

# Dual-write metrics
dual_write_mirror_total = Counter(
    "dual_write_mirror_total",
    "Secondary-schema mirror writes by outcome",
    ["domain", "operation", "outcome"]  # outcome: 'succeeded', 'failed', 'skipped'
)

dual_write_mirror_failures_total = Counter(
    "dual_write_mirror_failures_total",
    "Secondary-schema mirror writes that failed and were suppressed",
    ["domain", "operation"]
)

# Cross-service metrics
upstream_request_failures_total = Counter(
    "upstream_request_failures_total",
    "Outbound calls that never got a response from an upstream service",
    ["upstream"]  # Labels: 'user_service', 'auth_service'
)

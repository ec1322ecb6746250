from prometheus_client import Counter, Histogram

# Labels stay low-cardinality: object paths are never used as label values.
OPERATIONS = Counter(
    "s3bridge_operations_total",
    "Total storage operations",
    ["operation", "backend", "outcome"],
)

LATENCY = Histogram(
    "s3bridge_operation_duration_seconds",
    "Storage operation latency in seconds",
    ["operation", "backend"],
)

APPEND_STRATEGIES = Counter(
    "s3bridge_append_strategy_total",
    "Append calls by selected strategy",
    ["strategy"],
)

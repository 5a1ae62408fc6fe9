"""Prometheus metrics definitions for spinup.

Tracks the provisioning core:
- Request outcomes and rollback results
- Port probe latency
- Container runtime call latency
- Persistence failures
"""

from prometheus_client import Counter, Histogram

# =============================================================================
# Histogram Buckets
# =============================================================================
# Probes are bounded by the probe timeout (~3s)
_BUCKETS_FAST = (0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1, 2, 3, 5)

# Docker operations (image pull dominates the tail)
_BUCKETS_SLOW = (
    0.1, 0.2, 0.4, 0.8, 1.5,
    3, 6, 12, 24, 48,
    96, 180,
)

# =============================================================================
# Provisioning Metrics
# =============================================================================

PROVISION_TOTAL = Counter(
    "spinup_provision_total",
    "Total provisioning requests by outcome",
    ["result"],
)

ROLLBACK_TOTAL = Counter(
    "spinup_rollback_total",
    "Total compensation passes by outcome",
    ["status"],  # clean, partial, failed
)

PORT_PROBE_DURATION = Histogram(
    "spinup_port_probe_duration_seconds",
    "Duration of a single port liveness probe",
    buckets=_BUCKETS_FAST,
)

RUNTIME_DURATION = Histogram(
    "spinup_runtime_duration_seconds",
    "Duration of container runtime operations",
    ["operation"],
    buckets=_BUCKETS_SLOW,
)

PERSISTENCE_ERRORS = Counter(
    "spinup_persistence_errors_total",
    "Total metadata persistence failures",
    ["operation"],
)

PROVISION_RESULTS = (
    "success",
    "validation_error",
    "allocation_exhausted",
    "provisioning_error",
    "persistence_error",
    "timeout",
)

RUNTIME_OPERATIONS = (
    "volume_create",
    "volume_remove",
    "network_create",
    "network_remove",
    "container_create",
    "container_start",
    "container_stop",
    "container_remove",
    "container_exec",
)


# =============================================================================
# Metric Initialization
# =============================================================================

def _init_metrics() -> None:
    """Initialize labeled metrics with zero values."""
    for result in PROVISION_RESULTS:
        PROVISION_TOTAL.labels(result=result)
    for status in ("clean", "partial", "failed"):
        ROLLBACK_TOTAL.labels(status=status)
    for op in RUNTIME_OPERATIONS:
        RUNTIME_DURATION.labels(operation=op)
    for op in ("ensure_schema", "record_instance", "register_schedule"):
        PERSISTENCE_ERRORS.labels(operation=op)


_init_metrics()

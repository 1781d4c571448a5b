"""
Prometheus metrics for monitoring and observability.

Provides counters and histograms for tracking:
- Storage backend operations (store/retrieve/rename/delete)
- Version processing
- Cache staging and renames
"""

import time
from functools import wraps
from typing import Callable

from prometheus_client import (
    Counter,
    Histogram,
    generate_latest,
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
)

# Create a global registry
REGISTRY = CollectorRegistry()

# ========== Counters ==========

storage_operations_total = Counter(
    "storage_operations_total",
    "Total number of storage backend operations",
    ["backend", "operation", "status"],  # file/s3, store/read/..., success/failure
    registry=REGISTRY,
)

versions_processed_total = Counter(
    "versions_processed_total",
    "Total number of version derivations",
    ["version", "status"],
    registry=REGISTRY,
)

uploads_cached_total = Counter(
    "uploads_cached_total",
    "Total number of files staged in the cache",
    registry=REGISTRY,
)

renames_total = Counter(
    "renames_total",
    "Total number of rename attempts on stored files",
    ["status"],
    registry=REGISTRY,
)

# ========== Histograms ==========

storage_operation_duration_seconds = Histogram(
    "storage_operation_duration_seconds",
    "Time spent in a storage backend operation",
    ["backend", "operation"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0),
    registry=REGISTRY,
)


# ========== Metric Decorators ==========

def track_storage_operation(operation: str):
    """
    Decorator to track a storage backend method.

    The wrapped method's instance must expose a ``backend_name`` attribute.

    Args:
        operation: Operation label (store/read/rename/delete/...)
    """
    def decorator(func: Callable):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            start_time = time.time()
            status = "success"
            backend = getattr(self, "backend_name", "unknown")
            try:
                return func(self, *args, **kwargs)
            except Exception:
                status = "failure"
                raise
            finally:
                duration = time.time() - start_time
                storage_operation_duration_seconds.labels(
                    backend=backend, operation=operation).observe(duration)
                storage_operations_total.labels(
                    backend=backend, operation=operation, status=status).inc()

        return wrapper
    return decorator


def get_metrics() -> bytes:
    """
    Get current metrics in Prometheus format.

    Returns:
        Metrics as bytes
    """
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get content type for metrics response."""
    return CONTENT_TYPE_LATEST

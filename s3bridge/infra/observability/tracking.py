import logging
import time
from contextlib import contextmanager
from typing import Iterator

from s3bridge.infra.observability.metrics import LATENCY, OPERATIONS

logger = logging.getLogger("s3bridge.storage")


@contextmanager
def track_operation(
    operation: str,
    *,
    path: str | None,
    backend: str,
    metrics_enabled: bool = True,
) -> Iterator[None]:
    """Log and measure one storage operation.

    Exceptions are re-raised unchanged after being recorded.
    """
    start = time.perf_counter()
    try:
        yield
    except Exception as exc:
        elapsed = time.perf_counter() - start
        if metrics_enabled:
            OPERATIONS.labels(operation, backend, "error").inc()
            LATENCY.labels(operation, backend).observe(elapsed)
        logger.warning(
            "storage_op operation=%s path=%s backend=%s outcome=error duration_ms=%.3f error=%s",
            operation,
            path or "-",
            backend,
            round(elapsed * 1000, 3),
            exc,
            extra={
                "extra": {
                    "operation": operation,
                    "path": path,
                    "backend": backend,
                    "outcome": "error",
                    "duration_ms": round(elapsed * 1000, 3),
                    "exception": repr(exc),
                }
            },
        )
        raise

    elapsed = time.perf_counter() - start
    if metrics_enabled:
        OPERATIONS.labels(operation, backend, "success").inc()
        LATENCY.labels(operation, backend).observe(elapsed)
    logger.debug(
        "storage_op operation=%s path=%s backend=%s outcome=success duration_ms=%.3f",
        operation,
        path or "-",
        backend,
        round(elapsed * 1000, 3),
        extra={
            "extra": {
                "operation": operation,
                "path": path,
                "backend": backend,
                "outcome": "success",
                "duration_ms": round(elapsed * 1000, 3),
            }
        },
    )

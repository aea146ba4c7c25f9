"""
Prometheus Metrics for Observability

Tracks provider calls, job polling and image operation latency.
Exposes /api/v1/metrics endpoint for Prometheus scraping.
"""

import time
from contextlib import contextmanager

from prometheus_client import (
    Counter,
    Histogram,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY
)

# =============================================================================
# Metrics Definitions
# =============================================================================

# Provider generation calls, labelled by outcome (success or error code)
provider_requests_total = Counter(
    "provider_requests_total",
    "Total number of generation requests dispatched to providers",
    labelnames=["provider", "outcome"]
)

provider_latency_seconds = Histogram(
    "provider_latency_seconds",
    "End-to-end time of a provider generation call",
    labelnames=["provider"],
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0]
)

# Async job polling
poll_iterations_total = Counter(
    "provider_poll_iterations_total",
    "Status checks issued while waiting for asynchronous jobs",
    labelnames=["provider", "status"]
)

# Image operations (matting, extension, resize, crop)
image_operation_latency_seconds = Histogram(
    "image_operation_latency_seconds",
    "Time spent in each image post-processing operation",
    labelnames=["operation", "status"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)

# API Request Metrics
http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    labelnames=["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration",
    labelnames=["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 60.0, 120.0]
)

# Application Info
app_info = Info(
    "image_gateway",
    "Application information"
)


# =============================================================================
# Helper Functions
# =============================================================================

def set_app_info(version: str, environment: str):
    """Set application info metric."""
    app_info.info({
        "version": version,
        "environment": environment
    })


@contextmanager
def track_stage_latency(operation: str):
    """
    Context manager to track image operation latency.

    Usage:
        with track_stage_latency("matting"):
            # do work
    """
    start = time.time()
    status = "success"
    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        image_operation_latency_seconds.labels(
            operation=operation, status=status
        ).observe(time.time() - start)


def record_provider_call(provider: str, outcome: str, duration_seconds: float):
    """Record a provider call and how it ended."""
    provider_requests_total.labels(provider=provider, outcome=outcome).inc()
    provider_latency_seconds.labels(provider=provider).observe(duration_seconds)


def record_poll_iteration(provider: str, status: str):
    """Record one status check of an asynchronous job."""
    poll_iterations_total.labels(provider=provider, status=status).inc()


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST

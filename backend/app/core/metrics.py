"""Prometheus metrics for the transcode pipeline.

Tracks job throughput, per-target outcomes and job duration.
"""

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    CollectorRegistry,
    generate_latest,
    CONTENT_TYPE_LATEST,
    multiprocess,
)
import os

# Create a custom registry for our metrics
REGISTRY = CollectorRegistry()

# Check if running in multiprocess mode (e.g., with gunicorn)
if "prometheus_multiproc_dir" in os.environ:
    multiprocess.MultiProcessCollector(REGISTRY)


# ============================================
# Application Info
# ============================================
APP_INFO = Info(
    "video_transcode_app",
    "Application information",
    registry=REGISTRY,
)


# ============================================
# Transcode Job Metrics
# ============================================
TRANSCODE_JOBS_TOTAL = Counter(
    "transcode_jobs_total",
    "Total number of finished transcode jobs by status",
    ["status"],
    registry=REGISTRY,
)

TRANSCODE_JOBS_IN_PROGRESS = Gauge(
    "transcode_jobs_in_progress",
    "Number of transcode jobs currently running",
    registry=REGISTRY,
)

TRANSCODE_JOB_DURATION_SECONDS = Histogram(
    "transcode_job_duration_seconds",
    "Wall-clock duration of a transcode job in seconds",
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0],
    registry=REGISTRY,
)

# error_kind separates encoder failures from storage failures
TRANSCODE_TARGETS_TOTAL = Counter(
    "transcode_targets_total",
    "Total number of finished transcode targets",
    ["resolution", "outcome", "error_kind"],
    registry=REGISTRY,
)


def record_target_outcome(resolution: str, outcome: str, error_kind: str = "none") -> None:
    """Count one finished target."""
    TRANSCODE_TARGETS_TOTAL.labels(
        resolution=resolution,
        outcome=outcome,
        error_kind=error_kind,
    ).inc()


def record_job_finished(status: str, duration_seconds: float) -> None:
    """Count one finished job and observe its duration."""
    TRANSCODE_JOBS_TOTAL.labels(status=status).inc()
    TRANSCODE_JOB_DURATION_SECONDS.observe(duration_seconds)


def get_metrics() -> bytes:
    """Generate latest metrics in Prometheus format.

    Returns:
        bytes: Prometheus-formatted metrics
    """
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Get the content type for Prometheus metrics.

    Returns:
        str: Content type string
    """
    return CONTENT_TYPE_LATEST


def set_app_info(version: str, environment: str) -> None:
    """Set application info metrics.

    Args:
        version: Application version
        environment: Deployment environment
    """
    APP_INFO.info({
        "version": version,
        "environment": environment,
    })

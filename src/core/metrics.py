"""
Prometheus Metrics for Observability

Tracks perception stage latency, fusion outcomes and reasoning engine calls.
Exposes /metrics endpoint for Prometheus scraping.
"""

import time
from contextlib import contextmanager

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY
)

# =============================================================================
# Metrics Definitions
# =============================================================================

# Perception Latency - Per Stage
perception_stage_latency_seconds = Histogram(
    "perception_stage_latency_seconds",
    "Time spent in each perception stage",
    labelnames=["stage", "status"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 4.0, 8.0]
)

perception_runs_total = Counter(
    "perception_runs_total",
    "Total perception runs by outcome",
    labelnames=["status"]  # success, timeout, error
)

perception_detections = Histogram(
    "perception_detections",
    "Ingredients produced per successful perception run",
    buckets=[0, 1, 2, 4, 6, 8, 12, 16, 24, 32]
)

perception_hybrid_fallback_total = Counter(
    "perception_hybrid_fallback_total",
    "Number of scans that triggered the low-threshold hybrid pass"
)

# Fusion
fusion_outcomes_total = Counter(
    "fusion_outcomes_total",
    "Fusion passes by outcome",
    labelnames=["outcome"]  # fused, sanity_fallback, error_fallback, already_fused
)

fusion_hallucinations_total = Counter(
    "fusion_hallucinations_total",
    "Protocol ingredients not confirmed by perception"
)

fusion_substitution_risk_total = Counter(
    "fusion_substitution_risk_total",
    "Reconciled protocols by substitution risk",
    labelnames=["risk"]
)

# Reasoning Engine API Calls
reasoning_engine_calls_total = Counter(
    "reasoning_engine_calls_total",
    "Total number of reasoning engine calls",
    labelnames=["status", "http_status"]
)

# Model Registry
registered_models_gauge = Gauge(
    "registered_models",
    "Models in the registry by capability type",
    labelnames=["type"]
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
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Application Info
app_info = Info(
    "culinary_lens_app",
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
def track_stage_latency(stage: str):
    """
    Context manager to track perception stage latency.

    Usage:
        with track_stage_latency("segmentation"):
            # do work
    """
    start = time.time()
    status = "success"
    try:
        yield
    except BaseException:
        # CancelledError on deadline lands here too
        status = "error"
        raise
    finally:
        perception_stage_latency_seconds.labels(stage=stage, status=status).observe(time.time() - start)


def record_perception_run(status: str, ingredient_count: int = 0):
    """Record the outcome of one perception run."""
    perception_runs_total.labels(status=status).inc()
    if status == "success":
        perception_detections.observe(ingredient_count)


def record_fusion_outcome(outcome: str, hallucinations: int = 0, risk: str = None):
    """Record the outcome of one fusion pass."""
    fusion_outcomes_total.labels(outcome=outcome).inc()
    if hallucinations:
        fusion_hallucinations_total.inc(hallucinations)
    if risk:
        fusion_substitution_risk_total.labels(risk=risk).inc()


def record_reasoning_engine_call(status: str, http_status: int = 200):
    """Record a reasoning engine API call."""
    reasoning_engine_calls_total.labels(
        status=status,
        http_status=str(http_status)
    ).inc()


def set_registered_models(model_type: str, count: int):
    registered_models_gauge.labels(type=model_type).set(count)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST


# Initialize app info on module load
set_app_info(version="1.0.0", environment="development")

"""
Metrics Endpoint

GET /api/v1/metrics - Prometheus metrics endpoint
"""

from fastapi import APIRouter, Response

from src.core.metrics import get_metrics, get_metrics_content_type

router = APIRouter()


@router.get("/metrics")
async def metrics():
    """
    Prometheus metrics endpoint.

    Exposes:
    - perception_stage_latency_seconds (per stage)
    - perception_runs_total / perception_hybrid_fallback_total
    - fusion_outcomes_total / fusion_substitution_risk_total
    - reasoning_engine_calls_total
    - registered_models
    - http_requests_total
    """
    return Response(
        content=get_metrics(),
        media_type=get_metrics_content_type()
    )

"""
FastAPI Dependencies for the Perception & Fusion Service

Provides dependency injection for:
- Model Registry (process-wide, read-mostly)
- Perception Pipeline (singleton; backends load lazily on first scan)
- Fusion Service (stateless singleton)
- Protocol Service (reasoning engine client + offline fallback + fusion)

Tests swap any of these through ``app.dependency_overrides``.
"""

import asyncio
from typing import Optional

from src.core.config import settings
from src.core.logging import get_logger
from src.engines.fusion.services import FusionService
from src.engines.perception.backends import ClipCoverageScorer, YoloDetector
from src.engines.perception.services import PerceptionPipeline
from src.engines.perception.stages import DetectionStage, HybridFallbackStage
from src.engines.reasoning.client import ReasoningEngineClient
from src.engines.reasoning.offline import OfflineProtocolSynthesizer
from src.engines.reasoning.services import ProtocolService
from src.engines.registry.repositories import ModelRegistry

logger = get_logger(__name__)


# =============================================================================
# Builders
# =============================================================================

def build_perception_pipeline(registry: ModelRegistry) -> PerceptionPipeline:
    """Wire the reference YOLO/CLIP backends into the staged pipeline."""
    detector = YoloDetector(settings.DETECTION_MODEL, cache_dir=settings.ML_MODEL_CACHE_DIR)

    coverage_scorer = None
    if settings.ENABLE_ENSEMBLE_SWEEP:
        coverage_scorer = ClipCoverageScorer(
            settings.CLIP_MODEL,
            settings.CLIP_PRETRAINED,
            cache_dir=settings.ML_MODEL_CACHE_DIR
        )

    # Without dedicated fallback weights the primary detector reruns lower
    fallback_detector = detector
    if settings.FALLBACK_DETECTION_MODEL:
        fallback_detector = YoloDetector(
            settings.FALLBACK_DETECTION_MODEL,
            cache_dir=settings.ML_MODEL_CACHE_DIR
        )

    return PerceptionPipeline(
        detection_stage=DetectionStage(
            detector,
            registry,
            coverage_scorer=coverage_scorer,
            tolerance=settings.DETECTION_THRESHOLD_TOLERANCE,
            sweep_limit=settings.ENSEMBLE_SWEEP_LIMIT
        ),
        fallback_stage=HybridFallbackStage(
            fallback_detector,
            tolerance=settings.DETECTION_THRESHOLD_TOLERANCE
        ),
        baseline_threshold=settings.PERCEPTION_BASELINE_THRESHOLD,
        fallback_threshold=settings.PERCEPTION_FALLBACK_THRESHOLD,
        min_detections=settings.PERCEPTION_MIN_DETECTIONS,
        deadline_ms=settings.PERCEPTION_DEADLINE_MS
    )


def build_reasoning_client() -> Optional[ReasoningEngineClient]:
    if not settings.REASONING_ENGINE_URL:
        logger.info("reasoning_engine_not_configured", mode="offline")
        return None
    return ReasoningEngineClient(
        settings.REASONING_ENGINE_URL,
        api_key=settings.REASONING_ENGINE_API_KEY,
        timeout=settings.REASONING_ENGINE_TIMEOUT_SECONDS
    )


# =============================================================================
# Global Singletons - one per process
# =============================================================================

_registry = ModelRegistry()
_fusion_service = FusionService()
_perception_pipeline = build_perception_pipeline(_registry)
_protocol_service = ProtocolService(
    synthesizer=OfflineProtocolSynthesizer(_registry),
    fusion=_fusion_service,
    client=build_reasoning_client()
)


def get_registry() -> ModelRegistry:
    """Returns the process-wide model registry."""
    return _registry


def get_perception_pipeline() -> PerceptionPipeline:
    return _perception_pipeline


def get_fusion_service() -> FusionService:
    return _fusion_service


def get_protocol_service() -> ProtocolService:
    return _protocol_service


# =============================================================================
# Model Preloading
# =============================================================================

def preload_models() -> bool:
    """Load detector and scorer weights now instead of on the first scan."""
    stage = _perception_pipeline.detection_stage
    backends = [stage.detector, stage.coverage_scorer]
    if _perception_pipeline.fallback_stage is not None:
        backends.append(_perception_pipeline.fallback_stage.detector)

    try:
        for backend in backends:
            loader = getattr(backend, "get_model", None)
            if loader is not None:
                loader()
    except Exception as e:
        logger.warning("model_preload_failed", error=str(e), error_type=type(e).__name__)
        return False

    logger.info("models_preloaded", backends=len([b for b in backends if b is not None]))
    return True


async def preload_models_async() -> bool:
    return await asyncio.to_thread(preload_models)

"""
Perception Stages

Capability interfaces the orchestrator sequences, plus the reference
implementations used when no learned model is plugged in:

- Detector / CoverageScorer: model backends (see ``backends.py``)
- DetectionStage: primary pass + registry-driven ensemble sweep
- HybridFallbackStage: lower-threshold pass, appended after the primary set
- EnrichmentStage: given prior-stage output, returns the same list with one
  more attribute populated. Never reorders, drops or adds items.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from src.core.logging import get_logger
from src.engines.fusion.validator import normalize_name
from src.engines.perception.class_map import (
    BASE_VITALITY,
    DEFAULT_PORTION_GRAMS,
    DENSITY_FACTOR,
    SHELF_LIFE_DAYS,
    group_prior,
    resolve_food_group,
    resolve_scientific_name,
)
from src.engines.perception.schemas import Detection
from src.engines.registry.repositories import ModelRegistry
from src.engines.registry.schemas import ModelType

logger = get_logger(__name__)

ENSEMBLE_MODEL_ID = "ensemble_classification_pass"

# YOLO default input resolution; a box covering it is a full plate
MODEL_INPUT_AREA_PX = 640 * 640
PLATE_GRAMS = 350


# =============================================================================
# Capability Interfaces
# =============================================================================

class Detector(ABC):
    """Produces raw label/bbox/confidence triples from an image."""

    model_id: str = "unknown"

    @abstractmethod
    async def detect(self, image: bytes, threshold: float) -> List[Detection]:
        ...


class CoverageScorer(ABC):
    """Scores how likely each label is present in an image (zero-shot)."""

    @abstractmethod
    async def score(self, image: bytes, labels: Sequence[str]) -> Dict[str, float]:
        ...


class EnrichmentStage(ABC):
    name: str = "enrichment"
    status_message: str = ""

    @abstractmethod
    async def run(self, detections: List[Detection]) -> List[Detection]:
        ...


# =============================================================================
# Detection
# =============================================================================

class DetectionStage:
    """Primary detection pass augmented by the registry's classification coverage."""

    name = "detection"
    status_message = "Inference Cycle: Initializing YOLOv11 Intelligence Engine..."

    def __init__(
        self,
        detector: Detector,
        registry: ModelRegistry,
        coverage_scorer: Optional[CoverageScorer] = None,
        tolerance: float = 0.8,
        sweep_limit: int = 3
    ):
        self.detector = detector
        self.registry = registry
        self.coverage_scorer = coverage_scorer
        self.tolerance = tolerance
        self.sweep_limit = sweep_limit

    async def run(self, image: bytes, threshold: float) -> List[Detection]:
        primary = await self.detector.detect(image, threshold)
        sweep = await self._ensemble_sweep(image, primary)

        floor = threshold * self.tolerance
        kept = [d for d in primary + sweep if d.confidence >= floor]

        logger.info(
            "detection_pass_completed",
            threshold=threshold,
            primary=len(primary),
            sweep=len(sweep),
            kept=len(kept)
        )
        return kept

    async def _ensemble_sweep(self, image: bytes, primary: List[Detection]) -> List[Detection]:
        if self.coverage_scorer is None or self.sweep_limit <= 0:
            return []

        seen = {normalize_name(d.label) for d in primary}
        labels = [
            label for label in self.registry.get_aggregate_coverage(ModelType.CLASSIFICATION)
            if normalize_name(label) not in seen
        ]
        if not labels:
            return []

        try:
            scores = await self.coverage_scorer.score(image, labels)
        except Exception as e:
            # A sweep is supplementary; the primary pass stands on its own
            logger.warning("ensemble_sweep_failed", error=str(e), error_type=type(e).__name__)
            return []

        ranked = sorted(labels, key=lambda label: scores.get(label, 0.0), reverse=True)
        return [
            Detection(
                label=label,
                confidence=min(1.0, max(0.0, float(scores.get(label, 0.0)))),
                model=ENSEMBLE_MODEL_ID
            )
            for label in ranked[:self.sweep_limit]
        ]


class HybridFallbackStage:
    """Secondary lower-threshold pass for low-yield scans.

    Candidates are appended after the primary set; labels already present
    (after normalization) are skipped.
    """

    name = "hybrid_fallback"
    status_message = "Compensating for lighting: Triggering Hybrid ResNet Pass..."

    def __init__(self, detector: Detector, tolerance: float = 0.8):
        self.detector = detector
        self.tolerance = tolerance

    async def run(self, image: bytes, primary: List[Detection], threshold: float) -> List[Detection]:
        candidates = await self.detector.detect(image, threshold)

        floor = threshold * self.tolerance
        seen = {normalize_name(d.label) for d in primary}
        appended: List[Detection] = []
        for candidate in candidates:
            key = normalize_name(candidate.label)
            if candidate.confidence < floor or key in seen:
                continue
            seen.add(key)
            appended.append(candidate)

        logger.info(
            "hybrid_fallback_completed",
            threshold=threshold,
            candidates=len(candidates),
            appended=len(appended)
        )
        return list(primary) + appended


# =============================================================================
# Reference Enrichment Stages
# =============================================================================

class SegmentationStage(EnrichmentStage):
    """Bounding-box mask: extent is the box area, None without a box."""

    name = "segmentation"
    status_message = "SAM-2: Refining Structural Boundaries..."

    async def run(self, detections: List[Detection]) -> List[Detection]:
        return [d.model_copy(update={"mask_area": bbox_area(d.bbox)}) for d in detections]


class ClassificationStage(EnrichmentStage):
    name = "classification"
    status_message = "Taxonomy Pass: Aligning Scientific Classification..."

    async def run(self, detections: List[Detection]) -> List[Detection]:
        return [
            d.model_copy(update={
                "scientific_name": resolve_scientific_name(d.label),
                "food_group": resolve_food_group(d.label),
            })
            for d in detections
        ]


class FreshnessStage(EnrichmentStage):
    """Vitality from the group prior scaled by confidence; expiry scaled by vitality."""

    name = "freshness"
    status_message = "Vitality Sweep: Estimating Biological Freshness..."

    async def run(self, detections: List[Detection]) -> List[Detection]:
        enriched = []
        for d in detections:
            base = group_prior(BASE_VITALITY, d.food_group)
            vitality = min(100, max(0, round(base * (0.6 + 0.4 * d.confidence))))
            shelf_life = group_prior(SHELF_LIFE_DAYS, d.food_group)
            expiry = max(1, round(shelf_life * vitality / 100))
            enriched.append(d.model_copy(update={"vitality": vitality, "expiry_days": expiry}))
        return enriched


class VolumeStage(EnrichmentStage):
    """Mass from visible extent relative to a full plate, scaled by density."""

    name = "volume"
    status_message = "Volumetric Pass: Estimating Material Mass..."

    def __init__(self, reference_area_px: float = MODEL_INPUT_AREA_PX, plate_grams: float = PLATE_GRAMS):
        self.reference_area_px = reference_area_px
        self.plate_grams = plate_grams

    def estimate_grams(self, detection: Detection) -> float:
        if not detection.mask_area:
            return float(group_prior(DEFAULT_PORTION_GRAMS, detection.food_group))
        density = group_prior(DENSITY_FACTOR, detection.food_group)
        fraction = detection.mask_area / self.reference_area_px
        return float(max(1, round(fraction * self.plate_grams * density)))

    async def run(self, detections: List[Detection]) -> List[Detection]:
        return [d.model_copy(update={"mass_grams": self.estimate_grams(d)}) for d in detections]


def bbox_area(bbox: Optional[List[float]]) -> Optional[float]:
    if not bbox or len(bbox) != 4:
        return None
    x_min, y_min, x_max, y_max = bbox
    return float(max(0.0, x_max - x_min) * max(0.0, y_max - y_min))


def default_enrichment_stages() -> List[EnrichmentStage]:
    """Reference stages in their fixed execution order."""
    return [SegmentationStage(), ClassificationStage(), FreshnessStage(), VolumeStage()]

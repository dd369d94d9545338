"""
Perception Service

Orchestrates the perception stages for one image:

1. Detection at the baseline threshold (plus registry-driven sweep)
2. Hybrid fallback at a lower threshold when the yield is low (appended)
3. Segmentation -> Classification -> Freshness -> Volume, in that order
4. Mapping into Ingredient records

Steps 1-4 race a wall-clock deadline. On expiry the work is cancelled, its
partial results discarded, and ``PerceptionTimeoutError`` is raised. A chain
that only finishes after the deadline (a stage blocking the event loop) is
treated the same way.
"""

import asyncio
import time
from typing import Callable, Iterable, List, Optional, Sequence

from src.core.exceptions import CulinaryLensException, PerceptionTimeoutError, PipelineStageError
from src.core.logging import LogContext, get_logger
from src.core.metrics import (
    perception_hybrid_fallback_total,
    record_perception_run,
    track_stage_latency,
)
from src.engines.perception.class_map import (
    DEFAULT_PORTION_GRAMS,
    group_prior,
    resolve_food_group,
    resolve_scientific_name,
)
from src.engines.perception.schemas import Detection, Ingredient, RecallHypothesis, new_id
from src.engines.perception.stages import (
    DetectionStage,
    EnrichmentStage,
    HybridFallbackStage,
    default_enrichment_stages,
)

logger = get_logger(__name__)

PERCEPTION_CATEGORY = "Perception-Identified"
RESCAN_CATEGORY = "Rescan-Confirmed"
RESCAN_VITALITY = 85
RESCAN_EXPIRY_DAYS = 5

ProgressCallback = Callable[[str], None]


def display_name(label: str) -> str:
    label = " ".join(label.split())
    return label[:1].upper() + label[1:]


def to_ingredient(detection: Detection) -> Ingredient:
    return Ingredient(
        name=display_name(detection.label),
        scientific_name=detection.scientific_name or resolve_scientific_name(detection.label),
        category=detection.food_group or PERCEPTION_CATEGORY,
        mass_grams=detection.mass_grams if detection.mass_grams is not None else 0.0,
        vitality_score=detection.vitality if detection.vitality is not None else 0,
        expires_in_days=detection.expiry_days or 0,
        confidence=detection.confidence
    )


class PerceptionPipeline:
    """Staged, fallback-aware, deadline-bounded perception run.

    Holds no per-run state, so one instance serves concurrent scans.
    """

    def __init__(
        self,
        detection_stage: DetectionStage,
        fallback_stage: Optional[HybridFallbackStage] = None,
        enrichment_stages: Optional[Sequence[EnrichmentStage]] = None,
        baseline_threshold: float = 0.20,
        fallback_threshold: float = 0.12,
        min_detections: int = 6,
        deadline_ms: int = 4000
    ):
        self.detection_stage = detection_stage
        self.fallback_stage = fallback_stage
        self.enrichment_stages = list(
            default_enrichment_stages() if enrichment_stages is None else enrichment_stages
        )
        self.baseline_threshold = baseline_threshold
        self.fallback_threshold = fallback_threshold
        self.min_detections = min_detections
        self.deadline_ms = deadline_ms

    async def run(
        self,
        image: bytes,
        update_status: Optional[ProgressCallback] = None,
        scan_id: Optional[str] = None
    ) -> List[Ingredient]:
        """Run the full pass for one image.

        Raises:
            PerceptionTimeoutError: deadline elapsed; no partial inventory.
            PipelineStageError: a stage failed or broke the stage contract.
        """
        scan_id = scan_id or new_id()

        with LogContext(scan_id=scan_id, stage="perception"):
            started = time.monotonic()
            logger.info("perception_started", image_bytes=len(image), deadline_ms=self.deadline_ms)

            try:
                ingredients = await asyncio.wait_for(
                    self._run_stages(image, update_status),
                    timeout=self.deadline_ms / 1000
                )
            except asyncio.TimeoutError:
                logger.warning("perception_deadline_exceeded", deadline_ms=self.deadline_ms)
                record_perception_run("timeout")
                raise PerceptionTimeoutError(self.deadline_ms, scan_id=scan_id)
            except CulinaryLensException:
                record_perception_run("error")
                raise
            except Exception as e:
                record_perception_run("error")
                logger.error("perception_failed", error=str(e), error_type=type(e).__name__)
                raise PipelineStageError(f"Perception failed: {e}", stage="perception", scan_id=scan_id) from e

            # A stage that blocks the loop is never interrupted by wait_for
            elapsed_ms = (time.monotonic() - started) * 1000
            duration_ms = int(elapsed_ms)
            if elapsed_ms > self.deadline_ms:
                logger.warning(
                    "perception_deadline_exceeded",
                    deadline_ms=self.deadline_ms,
                    duration_ms=duration_ms
                )
                record_perception_run("timeout")
                raise PerceptionTimeoutError(self.deadline_ms, scan_id=scan_id)

            logger.info("perception_completed", ingredients=len(ingredients), duration_ms=duration_ms)
            record_perception_run("success", len(ingredients))
            return ingredients

    async def _run_stages(self, image: bytes, update_status: Optional[ProgressCallback]) -> List[Ingredient]:
        threshold = self.baseline_threshold

        self._notify(update_status, self.detection_stage.status_message)
        detections = await self._call_stage(
            self.detection_stage.name,
            self.detection_stage.run(image, threshold)
        )

        if len(detections) < self.min_detections and self.fallback_stage is not None:
            threshold = self.fallback_threshold
            logger.info(
                "hybrid_fallback_triggered",
                detections=len(detections),
                min_detections=self.min_detections,
                threshold=threshold
            )
            perception_hybrid_fallback_total.inc()
            self._notify(update_status, self.fallback_stage.status_message)
            detections = await self._call_stage(
                self.fallback_stage.name,
                self.fallback_stage.run(image, detections, threshold)
            )

        for stage in self.enrichment_stages:
            self._notify(update_status, stage.status_message)
            enriched = await self._call_stage(stage.name, stage.run(list(detections)))
            check_stage_contract(stage.name, detections, enriched)
            detections = enriched

        return [to_ingredient(d) for d in detections]

    async def _call_stage(self, name: str, awaitable):
        with track_stage_latency(name):
            try:
                return await awaitable
            except CulinaryLensException:
                raise
            except Exception as e:
                logger.error("stage_failed", stage=name, error=str(e), error_type=type(e).__name__)
                raise PipelineStageError(f"Stage '{name}' failed: {e}", stage=name) from e

    def _notify(self, update_status: Optional[ProgressCallback], message: str):
        if update_status is None or not message:
            return
        try:
            update_status(message)
        except Exception as e:
            logger.warning("progress_callback_failed", error=str(e), error_type=type(e).__name__)


def check_stage_contract(stage: str, before: Sequence[Detection], after: Sequence[Detection]):
    """A stage must return the same detections, in the same order."""
    if len(before) != len(after):
        raise PipelineStageError(
            f"Stage '{stage}' changed the detection count ({len(before)} -> {len(after)})",
            stage=stage
        )
    for prior, current in zip(before, after):
        if prior.detection_id != current.detection_id:
            raise PipelineStageError(
                f"Stage '{stage}' reordered or replaced detections",
                stage=stage,
                details={"expected": prior.detection_id, "actual": current.detection_id}
            )


def run_targeted_rescan(
    hypotheses: Iterable[RecallHypothesis],
    acceptance_threshold: float = 0.35
) -> List[Ingredient]:
    """Precision-biased confirmation of recall-audit hypotheses.

    Only hypotheses strictly above the bar survive; the rest are dropped.
    """
    found: List[Ingredient] = []
    rejected = 0

    for hypothesis in hypotheses:
        if hypothesis.confidence <= acceptance_threshold:
            rejected += 1
            continue

        group = resolve_food_group(hypothesis.name)
        found.append(Ingredient(
            name=display_name(hypothesis.name),
            scientific_name=resolve_scientific_name(hypothesis.name),
            category=RESCAN_CATEGORY,
            mass_grams=float(group_prior(DEFAULT_PORTION_GRAMS, group)),
            vitality_score=RESCAN_VITALITY,
            expires_in_days=RESCAN_EXPIRY_DAYS,
            confidence=hypothesis.confidence
        ))

    logger.info("targeted_rescan_completed", accepted=len(found), rejected=rejected)
    return found

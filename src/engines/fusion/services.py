"""
Fusion Service

Reconciles a generated protocol with the perception inventory:

    sanity gate -> drop dismissed -> validate -> merge -> affinity -> impact -> risk

``fuse`` never raises. Any failure logs a warning and returns the original
protocol object untouched.
"""

from typing import List, Sequence

from src.core.exceptions import SanityCheckError
from src.core.logging import get_logger, with_logging
from src.core.metrics import record_fusion_outcome
from src.engines.fusion.merger import merge_metadata
from src.engines.fusion.schemas import NeuralProtocol, SubstitutionRisk
from src.engines.fusion.scoring import (
    calculate_composite_confidence,
    calculate_environmental_impact,
)
from src.engines.fusion.validator import find_insane, normalize_name, validate_ingredients
from src.engines.perception.schemas import Ingredient

logger = get_logger(__name__)


def classify_risk(hallucination_count: int) -> SubstitutionRisk:
    if hallucination_count <= 0:
        return SubstitutionRisk.SAFE
    if hallucination_count == 1:
        return SubstitutionRisk.EXPERIMENTAL
    return SubstitutionRisk.RISKY


def check_sanity(inventory: Sequence[Ingredient]) -> None:
    """Raise ``SanityCheckError`` when any ingredient is out of bounds."""
    offending = find_insane(inventory)
    if offending:
        raise SanityCheckError(
            f"{len(offending)} ingredient(s) failed biological sanity bounds",
            offending=[
                {"id": i.id, "name": i.name, "mass_grams": i.mass_grams, "vitality_score": i.vitality_score}
                for i in offending
            ]
        )


class FusionService:
    """Stateless reconciliation of perception output with a protocol."""

    @with_logging("fusion")
    def fuse(self, inventory: Sequence[Ingredient], protocol: NeuralProtocol) -> NeuralProtocol:
        if protocol.is_fused:
            logger.info("fusion_skipped_already_fused", protocol_id=protocol.id)
            record_fusion_outcome("already_fused")
            return protocol

        try:
            check_sanity(inventory)
            return self._reconcile(inventory, protocol)

        except SanityCheckError as e:
            logger.warning(
                "fusion_sanity_fallback",
                protocol_id=protocol.id,
                error=e.message,
                offending=e.details.get("offending")
            )
            record_fusion_outcome("sanity_fallback")
            return protocol

        except Exception as e:
            logger.warning(
                "fusion_error_fallback",
                protocol_id=protocol.id,
                error=str(e),
                error_type=type(e).__name__
            )
            record_fusion_outcome("error_fallback")
            return protocol

    def _reconcile(self, inventory: Sequence[Ingredient], protocol: NeuralProtocol) -> NeuralProtocol:
        active: List[Ingredient] = [i for i in inventory if not i.is_dismissed]

        validation = validate_ingredients(active, protocol)
        hallucinations = validation.identified_hallucinations

        reconciled = protocol.model_copy(update={
            "ingredients_used": list(validation.validated_used),
            "missing_ingredients": list(protocol.missing_ingredients) + list(hallucinations),
        })
        reconciled = merge_metadata(active, reconciled)

        # Impact counts only inventory items the validator confirmed
        confirmed = {normalize_name(name) for name in validation.validated_used}
        confirmed_inventory = [i for i in active if normalize_name(i.name) in confirmed]

        risk = classify_risk(len(hallucinations))
        fused = reconciled.model_copy(update={
            "molecular_affinity": calculate_composite_confidence(active, reconciled),
            "impact_metrics": calculate_environmental_impact(confirmed_inventory),
            "substitution_risk": risk,
        })

        logger.info(
            "fusion_completed",
            protocol_id=protocol.id,
            validated=len(validation.validated_used),
            hallucinations=len(hallucinations),
            dismissed=len(inventory) - len(active),
            molecular_affinity=fused.molecular_affinity,
            substitution_risk=risk.value
        )
        record_fusion_outcome("fused", hallucinations=len(hallucinations), risk=risk.value)
        return fused

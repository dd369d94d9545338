"""
Metadata Merger

Injects perception-derived facts (mass, vitality) into the narrative steps of
a protocol. Original instruction text is never rewritten; notes are appended
in inventory order.
"""

from typing import Sequence

from src.core.logging import get_logger
from src.engines.fusion.schemas import NeuralProtocol, ProtocolStep
from src.engines.perception.schemas import Ingredient

logger = get_logger(__name__)

LOW_VITALITY_THRESHOLD = 50
LOW_VITALITY_NOTE = " (Bio-Vitality Alert: Increase heat intensity for safety)"


def mass_note(mass_grams: float) -> str:
    mass = float(mass_grams)
    return f" [Utilize {int(mass) if mass.is_integer() else mass}g]"


def annotate_step(step: ProtocolStep, inventory: Sequence[Ingredient]) -> ProtocolStep:
    text = step.instruction.lower()
    notes = ""

    for ingredient in inventory:
        name = ingredient.name.strip().lower()
        if not name or name not in text:
            continue
        notes += mass_note(ingredient.mass_grams)
        if ingredient.vitality_score < LOW_VITALITY_THRESHOLD:
            notes += LOW_VITALITY_NOTE

    if not notes:
        return step
    return step.model_copy(update={"instruction": f"{step.instruction}{notes}".strip()})


def merge_metadata(inventory: Sequence[Ingredient], protocol: NeuralProtocol) -> NeuralProtocol:
    """Return a copy of ``protocol`` with technical notes appended to its steps.

    A protocol that already carries fusion output is returned unchanged, so the
    notes are applied at most once per protocol.
    """
    if protocol.is_fused:
        logger.info("merge_skipped_already_fused", protocol_id=protocol.id)
        return protocol

    instructions = [annotate_step(step, inventory) for step in protocol.instructions]
    return protocol.model_copy(update={"instructions": instructions})

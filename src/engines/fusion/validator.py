"""
Protocol Validator

Cross-checks a generated protocol's claimed ingredients against the
perception inventory and separates confirmed items from hallucinations.
"""

import re
from typing import List, Sequence

from src.core.logging import get_logger
from src.engines.fusion.schemas import NeuralProtocol, ValidationResultDTO
from src.engines.perception.schemas import Ingredient

logger = get_logger(__name__)

# "tomatoes" -> "tomato", "peaches" -> "peach", "glasses" -> "glass"
_PLURAL_ES = re.compile(r"(o|x|z|ch|sh|ss)es$")
# A lone trailing "s" after a word character other than "s": "pears" -> "pear"
_PLURAL_S = re.compile(r"(?<=[^\Ws])s$")


def normalize_name(name: str) -> str:
    """Canonical form for comparing ingredient names across sources.

    Lower-cases, trims, collapses inner whitespace and strips one trailing
    plural suffix. Idempotent: the result never ends in a strippable suffix.
    """
    value = " ".join(name.lower().split())
    if _PLURAL_ES.search(value):
        return _PLURAL_ES.sub(r"\1", value)
    return _PLURAL_S.sub("", value)


def validate_ingredients(
    inventory: Sequence[Ingredient],
    protocol: NeuralProtocol
) -> ValidationResultDTO:
    """Partition the protocol's claimed ingredients into confirmed and hallucinated.

    Both output lists keep the protocol's original ``ingredients_used`` order
    and original spelling.
    """
    observed = {normalize_name(item.name) for item in inventory}

    validated_used: List[str] = []
    identified_hallucinations: List[str] = []

    for claimed in protocol.ingredients_used:
        if normalize_name(claimed) in observed:
            validated_used.append(claimed)
        else:
            logger.warning(
                "protocol_hallucination_detected",
                ingredient=claimed,
                protocol_id=protocol.id
            )
            identified_hallucinations.append(claimed)

    return ValidationResultDTO(
        validated_used=validated_used,
        identified_hallucinations=identified_hallucinations
    )


def find_insane(inventory: Sequence[Ingredient]) -> List[Ingredient]:
    """Ingredients outside biological sanity bounds."""
    return [i for i in inventory if not (i.mass_grams > 0 and i.vitality_score >= 0)]


def is_sane(inventory: Sequence[Ingredient]) -> bool:
    """True iff every ingredient has positive mass and non-negative vitality."""
    return not find_insane(inventory)

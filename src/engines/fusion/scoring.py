"""
Confidence and impact calculators for reconciled protocols.
"""

from typing import Dict, List, Sequence, Tuple

from src.engines.fusion.schemas import ImpactMetrics, NeuralProtocol
from src.engines.fusion.validator import normalize_name
from src.engines.perception.schemas import Ingredient


# =============================================================================
# Molecular affinity
# =============================================================================

NEUTRAL_AFFINITY = 60
PAIR_AFFINITY = 92
UNPAIRED_AFFINITY = 68

_AFFINITY_SOURCE: Dict[str, List[str]] = {
    "apple": ["cinnamon", "pork", "cheese", "walnut", "maple", "vanilla"],
    "pear": ["blue cheese", "chocolate", "red wine", "honey", "rosemary"],
    "spinach": ["nutmeg", "garlic", "lemon", "egg", "heavy cream", "pine nut"],
    "cheese": ["truffle", "honey", "fig", "pear", "white wine", "hazelnut"],
    "tomato": ["basil", "olive oil", "garlic", "mozzarella", "balsamic", "anchovy"],
    "garlic": ["onion", "olive oil", "thyme", "chicken", "parsley", "ginger"],
    "chicken": ["lemon", "rosemary", "garlic", "thyme", "white wine", "tarragon"],
    "mushroom": ["thyme", "garlic", "butter", "parsley", "soy sauce", "beef"],
    "lemon": ["honey", "mint", "garlic", "chicken", "fish", "ginger"],
    "thyme": ["garlic", "lemon", "chicken", "mushroom", "beef", "potato"],
}

# Keys and partners normalized so lookups never depend on spelling
MOLECULAR_AFFINITY_MAP: Dict[str, frozenset] = {
    normalize_name(primary): frozenset(normalize_name(p) for p in partners)
    for primary, partners in _AFFINITY_SOURCE.items()
}


def calculate_composite_confidence(
    inventory: Sequence[Ingredient],
    protocol: NeuralProtocol
) -> int:
    """Score the pairing of the protocol's two leading ingredients (0-100).

    Deterministic for a given pair of leading names; ``inventory`` is accepted
    for interface symmetry with the impact calculator.
    """
    used = protocol.ingredients_used
    if len(used) < 2:
        return NEUTRAL_AFFINITY

    primary = normalize_name(used[0])
    secondary = normalize_name(used[1])

    if secondary in MOLECULAR_AFFINITY_MAP.get(primary, ()):
        return PAIR_AFFINITY
    return UNPAIRED_AFFINITY


# =============================================================================
# Environmental impact
# =============================================================================

# category -> (kg CO2 per kg, litres of water per kg)
IMPACT_COEFFICIENTS: Dict[str, Tuple[float, float]] = {
    "fruit": (0.4, 960),
    "vegetable": (0.5, 320),
    "protein": (12.0, 4300),
    "dairy": (3.2, 1000),
}
DEFAULT_IMPACT_COEFFICIENT: Tuple[float, float] = (1.0, 500)


def impact_coefficient(category: str) -> Tuple[float, float]:
    return IMPACT_COEFFICIENTS.get(category.strip().lower(), DEFAULT_IMPACT_COEFFICIENT)


def calculate_environmental_impact(ingredients: Sequence[Ingredient]) -> ImpactMetrics:
    co2 = 0.0
    water = 0.0
    waste = 0.0

    for ingredient in ingredients:
        co2_per_kg, water_per_kg = impact_coefficient(ingredient.category)
        mass_kg = ingredient.mass_grams / 1000
        co2 += co2_per_kg * mass_kg
        water += water_per_kg * mass_kg
        waste += ingredient.mass_grams

    return ImpactMetrics(
        co2_saved_kg=round(co2, 2),
        water_saved_litres=int(round(water)),
        waste_avoided_grams=waste
    )

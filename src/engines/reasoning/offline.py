"""
Offline Protocol Synthesis

Edge fallback used when the reasoning engine is not configured or is
unavailable. Fills a procedural blueprint from the inventory; output is
deterministic for a given inventory and registry.
"""

import zlib
from typing import Dict, List, Sequence

from src.core.logging import get_logger
from src.engines.fusion.schemas import ImpactMetrics, NeuralProtocol, Nutrition, ProtocolStep
from src.engines.fusion.validator import normalize_name
from src.engines.perception.schemas import Ingredient, new_id
from src.engines.reasoning.schemas import UserPreferences
from src.engines.registry.repositories import ModelRegistry
from src.engines.registry.schemas import ModelType

logger = get_logger(__name__)

PRIMARY_PLACEHOLDER = "Botanical"
SECONDARY_PLACEHOLDER = "Secondary Element"
STEP_TIMER_SECONDS = 240
UNKNOWN_MODEL_VERSION = "0.0.0"

# Per 100 g: (calories, protein, carbs, fat)
NUTRIENT_DENSITY: Dict[str, tuple] = {
    "fruit": (50, 0.5, 12, 0.2),
    "vegetable": (25, 1.5, 5, 0.1),
    "protein": (220, 22, 0, 14),
    "dairy": (160, 9, 4, 12),
    "herb": (5, 0.1, 1, 0.1),
    "condiment": (300, 0.5, 5, 32),
    "default": (100, 5, 10, 5),
}

SUBSTITUTION_TABLE: Dict[str, List[str]] = {
    "butter": ["olive oil", "ghee", "coconut oil"],
    "milk": ["soy milk", "oat milk", "cream"],
    "lemon": ["lime", "vinegar", "verjuice"],
    "onion": ["shallot", "leek", "chives"],
    "chicken": ["tofu", "pork", "turkey"],
    "egg": ["flax egg", "aquafaba", "yogurt"],
    "heavy cream": ["coconut cream", "cashew cream", "yogurt"],
}

RECIPE_BLUEPRINTS = [
    {
        "title": "Sovereign {primary} Composition",
        "description": (
            "An architectural exploration of {primary} textures, harmonized with "
            "{secondary} using local Edge Model {model_version}."
        ),
        "steps": [
            ("Deconstruct {primary} into geometric primitives to maximize surface interaction.",
             "Structural Slicing"),
            ("Synthesize an emulsion of {secondary} and base lipids to create a high-viscosity foundation.",
             "Thermal Gelation"),
            ("Plate using a radial symmetry grid, ensuring 35% negative space.",
             "Minimalist Assembly"),
        ],
    },
    {
        "title": "Deconstructed {primary} & {secondary} Study",
        "description": (
            "Isolating essential flavor profiles of {primary} via Edge Engine {model_version} "
            "and pairing with high-acidity nodes of {secondary}."
        ),
        "steps": [
            ("Stabilize the {primary} structure using a precision chill cycle.",
             "Cryogenic Tempering"),
            ("Perform a rapid atmospheric reduction of {secondary} to concentrate the ester profile.",
             "Atmospheric Reduction"),
            ("Assemble with vertical architecture to create a multisensory topographical map.",
             "Technical Plating"),
        ],
    },
]


def find_substitutions(ingredient: str) -> List[str]:
    key = " ".join(ingredient.lower().split())
    return list(SUBSTITUTION_TABLE.get(key, []))


def calculate_offline_nutrition(ingredients: Sequence[Ingredient]) -> Nutrition:
    calories = protein = carbs = fat = 0.0
    for ingredient in ingredients:
        density = NUTRIENT_DENSITY.get(ingredient.category.strip().lower(), NUTRIENT_DENSITY["default"])
        factor = ingredient.mass_grams / 100
        calories += density[0] * factor
        protein += density[1] * factor
        carbs += density[2] * factor
        fat += density[3] * factor

    return Nutrition(
        calories=max(0, round(calories)),
        protein=max(0, round(protein)),
        carbs=max(0, round(carbs)),
        fat=max(0, round(fat))
    )


def offline_impact(ingredients: Sequence[Ingredient]) -> ImpactMetrics:
    """Flat-rate estimate, independent of category."""
    mass = sum(i.mass_grams for i in ingredients)
    return ImpactMetrics(
        co2_saved_kg=round(mass * 0.0015, 2),
        water_saved_litres=int(round(mass * 0.55)),
        waste_avoided_grams=mass
    )


def select_blueprint(primary: str) -> dict:
    index = zlib.crc32(normalize_name(primary).encode("utf-8")) % len(RECIPE_BLUEPRINTS)
    return RECIPE_BLUEPRINTS[index]


class OfflineProtocolSynthesizer:
    """Procedural protocol generator stamped with the registry's reasoning model."""

    def __init__(self, registry: ModelRegistry):
        self.registry = registry

    def reasoning_model_version(self) -> str:
        models = self.registry.get_models_by_type(ModelType.REASONING)
        return models[0].version if models else UNKNOWN_MODEL_VERSION

    def synthesize(
        self,
        ingredients: Sequence[Ingredient],
        preferences: UserPreferences = None
    ) -> NeuralProtocol:
        preferences = preferences or UserPreferences()
        allergens = {normalize_name(a) for a in preferences.allergies if a.strip()}

        usable = [
            i for i in ingredients
            if not i.is_dismissed and normalize_name(i.name) not in allergens
        ]
        if len(usable) != len(ingredients):
            logger.info(
                "offline_ingredients_excluded",
                excluded=len(ingredients) - len(usable),
                allergies=sorted(allergens)
            )

        primary = usable[0].name if usable else PRIMARY_PLACEHOLDER
        secondary = usable[1].name if len(usable) > 1 else SECONDARY_PLACEHOLDER
        fill = {
            "primary": primary,
            "secondary": secondary,
            "model_version": self.reasoning_model_version(),
        }
        blueprint = select_blueprint(primary)

        protocol = NeuralProtocol(
            id=f"edge_{new_id()}",
            title=blueprint["title"].format(**fill),
            description=blueprint["description"].format(**fill),
            complexity="Medium",
            duration_minutes=30,
            ingredients_used=[i.name for i in usable],
            instructions=[
                ProtocolStep(
                    order=index,
                    instruction=instruction.format(**fill),
                    technique=technique,
                    timer_seconds=STEP_TIMER_SECONDS
                )
                for index, (instruction, technique) in enumerate(blueprint["steps"], start=1)
            ],
            nutrition=calculate_offline_nutrition(usable),
            is_offline=True
        )

        logger.info(
            "offline_protocol_synthesized",
            protocol_id=protocol.id,
            title=protocol.title,
            ingredients=len(usable)
        )
        return protocol

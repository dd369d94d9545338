"""
Food Class Map

Semantic expansion layer for food-aware detection:
- Coarse food groups and their member labels
- Scientific taxonomy per label
- Per-group priors used by the reference freshness and volume stages
"""

from typing import Dict, List, Optional

from src.engines.fusion.validator import normalize_name


FOOD_CLASS_MAP: Dict[str, List[str]] = {
    "fruit": [
        "apple", "banana", "orange", "pear", "strawberry", "blueberry",
        "raspberry", "mango", "pineapple", "grape", "lemon", "lime",
        "avocado", "pomegranate", "kiwi", "peach", "plum",
    ],
    "vegetable": [
        "spinach", "kale", "lettuce", "tomato", "carrot", "broccoli",
        "onion", "garlic", "shallot", "leek", "bell pepper", "chili",
        "zucchini", "eggplant", "cucumber", "potato", "sweet potato",
        "ginger", "celery", "asparagus", "cauliflower", "mushroom",
    ],
    "protein": [
        "chicken", "beef", "pork", "lamb", "egg", "tofu", "salmon",
        "shrimp", "tempeh", "beans", "lentils",
    ],
    "dairy": [
        "cheese", "yogurt", "milk", "butter",
    ],
    "condiment": [
        "mayo", "ketchup", "soy sauce", "mustard", "olive oil",
        "vinegar", "honey", "maple syrup", "miso", "tahini",
    ],
    "herb": [
        "basil", "cilantro", "parsley", "thyme", "rosemary", "oregano",
        "mint", "dill", "chives", "sage",
    ],
}

SCIENTIFIC_MAP: Dict[str, str] = {
    # Fruits
    "apple": "Malus domestica",
    "banana": "Musa acuminata",
    "orange": "Citrus sinensis",
    "pear": "Pyrus communis",
    "strawberry": "Fragaria × ananassa",
    "blueberry": "Vaccinium corymbosum",
    "raspberry": "Rubus idaeus",
    "mango": "Mangifera indica",
    "pineapple": "Ananas comosus",
    "grape": "Vitis vinifera",
    "lemon": "Citrus limon",
    "lime": "Citrus aurantiifolia",
    "avocado": "Persea americana",
    "pomegranate": "Punica granatum",
    "kiwi": "Actinidia deliciosa",
    "peach": "Prunus persica",
    "plum": "Prunus domestica",

    # Vegetables
    "spinach": "Spinacia oleracea",
    "kale": "Brassica oleracea var. sabellica",
    "lettuce": "Lactuca sativa",
    "tomato": "Solanum lycopersicum",
    "carrot": "Daucus carota subsp. sativus",
    "broccoli": "Brassica oleracea var. italica",
    "onion": "Allium cepa",
    "garlic": "Allium sativum",
    "shallot": "Allium cepa gr. aggregatum",
    "leek": "Allium ampeloprasum",
    "bell pepper": "Capsicum annuum",
    "chili": "Capsicum frutescens",
    "zucchini": "Cucurbita pepo",
    "eggplant": "Solanum melongena",
    "cucumber": "Cucumis sativus",
    "potato": "Solanum tuberosum",
    "sweet potato": "Ipomoea batatas",
    "ginger": "Zingiber officinale",
    "celery": "Apium graveolens",
    "asparagus": "Asparagus officinalis",
    "cauliflower": "Brassica oleracea var. botrytis",
    "mushroom": "Agaricus bisporus",

    # Proteins & Dairy
    "chicken": "Gallus gallus domesticus",
    "beef": "Bos taurus",
    "pork": "Sus scrofa domesticus",
    "lamb": "Ovis aries",
    "egg": "Gallus gallus domesticus (Ovum)",
    "tofu": "Glycine max (Curd)",
    "salmon": "Salmo salar",
    "shrimp": "Caridea",
    "cheese": "Caseus",
    "yogurt": "Oxygala",
    "milk": "Lac",
    "tempeh": "Glycine max (Fermented)",
    "beans": "Phaseolus vulgaris",
    "lentils": "Lens culinaris",

    # Condiments
    "butter": "Butyrum",
    "mayo": "Mayonensis",
    "ketchup": "Solanum lycopersicum (Condimentum)",
    "soy sauce": "Glycine max (Liquamen)",
    "mustard": "Sinapis alba",
    "olive oil": "Olea europaea (Oleum)",
    "vinegar": "Acetum",
    "honey": "Mel",
    "maple syrup": "Acer saccharum (Sirupus)",
    "miso": "Glycine max (Miso)",
    "tahini": "Sesamum indicum (Pasta)",

    # Herbs
    "basil": "Ocimum basilicum",
    "cilantro": "Coriandrum sativum",
    "parsley": "Petroselinum crispum",
    "thyme": "Thymus vulgaris",
    "rosemary": "Salvia rosmarinus",
    "oregano": "Origanum vulgare",
    "mint": "Mentha",
    "dill": "Anethum graveolens",
    "chives": "Allium schoenoprasum",
    "sage": "Salvia officinalis",
}

UNKNOWN_SPECIES = "Unknown Species"
DEFAULT_GROUP = "default"

# =============================================================================
# Per-group priors
# =============================================================================

# Vitality of a confidently detected, fresh specimen (0-100)
BASE_VITALITY: Dict[str, int] = {
    "fruit": 90, "vegetable": 88, "protein": 85, "dairy": 86,
    "condiment": 95, "herb": 80, DEFAULT_GROUP: 80,
}

# Typical refrigerated shelf life at full vitality
SHELF_LIFE_DAYS: Dict[str, int] = {
    "fruit": 7, "vegetable": 6, "protein": 3, "dairy": 10,
    "condiment": 60, "herb": 5, DEFAULT_GROUP: 5,
}

# Mass relative to a plated serving of the same visible area
DENSITY_FACTOR: Dict[str, float] = {
    "fruit": 1.0, "vegetable": 0.8, "protein": 1.2, "dairy": 1.1,
    "condiment": 0.5, "herb": 0.2, DEFAULT_GROUP: 1.0,
}

# Used when no visible extent is available (sweep and rescan candidates)
DEFAULT_PORTION_GRAMS: Dict[str, int] = {
    "fruit": 150, "vegetable": 120, "protein": 150, "dairy": 100,
    "condiment": 30, "herb": 10, DEFAULT_GROUP: 70,
}

# Normalized label -> canonical label / group, built once at import
_CANONICAL: Dict[str, str] = {normalize_name(label): label for label in SCIENTIFIC_MAP}
_GROUP_BY_LABEL: Dict[str, str] = {
    normalize_name(label): group
    for group, labels in FOOD_CLASS_MAP.items()
    for label in labels
}


def resolve_scientific_name(label: str) -> str:
    canonical = _CANONICAL.get(normalize_name(label))
    return SCIENTIFIC_MAP[canonical] if canonical else UNKNOWN_SPECIES


def resolve_food_group(label: str) -> Optional[str]:
    """Coarse food group for a label, or None when unmapped."""
    return _GROUP_BY_LABEL.get(normalize_name(label))


def group_prior(table: Dict[str, float], group: Optional[str]):
    return table.get(group or DEFAULT_GROUP, table[DEFAULT_GROUP])

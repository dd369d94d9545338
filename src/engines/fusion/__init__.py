"""
Fusion Engine

Cross-validates generated protocols against perceived inventory.
"""

from src.engines.fusion.services import FusionService, classify_risk
from src.engines.fusion.validator import normalize_name, validate_ingredients, is_sane
from src.engines.fusion.merger import merge_metadata

__all__ = [
    "FusionService",
    "classify_risk",
    "normalize_name",
    "validate_ingredients",
    "is_sane",
    "merge_metadata",
]

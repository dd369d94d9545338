from pydantic import BaseModel, ConfigDict, Field
from typing import Dict, List, Optional

from src.engines.fusion.schemas import ImpactMetrics
from src.engines.perception.schemas import Ingredient


class UserPreferences(BaseModel):
    """Context forwarded to the reasoning engine alongside the inventory."""
    model_config = ConfigDict(populate_by_name=True)

    dietary_anchor: Optional[str] = Field(None, alias="dietaryAnchor", description="e.g. vegetarian, keto")
    allergies: List[str] = Field(default_factory=list)
    cuisine_preference: Optional[str] = Field(None, alias="cuisinePreference")
    feature_flags: Dict[str, bool] = Field(default_factory=dict, alias="featureFlags")


class ProtocolRequestDTO(BaseModel):
    ingredients: List[Ingredient] = Field(default_factory=list)
    preferences: UserPreferences = Field(default_factory=UserPreferences)


class SubstitutionResponseDTO(BaseModel):
    ingredient: str
    substitutions: List[str] = Field(default_factory=list)


class ImpactEstimateRequestDTO(BaseModel):
    ingredients: List[Ingredient] = Field(default_factory=list)


class ImpactEstimateResponseDTO(BaseModel):
    """Flat-rate and category-weighted impact for the same ingredient set."""
    model_config = ConfigDict(populate_by_name=True)

    flat_rate: ImpactMetrics = Field(..., alias="flatRate")
    category_weighted: ImpactMetrics = Field(..., alias="categoryWeighted")

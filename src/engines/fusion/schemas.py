from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from enum import Enum

from src.engines.perception.schemas import Ingredient, new_id


class SubstitutionRisk(str, Enum):
    """Risk class derived from the number of hallucinated ingredients."""
    SAFE = "SAFE"
    EXPERIMENTAL = "EXPERIMENTAL"
    RISKY = "RISKY"


class ProtocolStep(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    order: int = Field(..., ge=1)
    instruction: str
    technique: str = ""
    timer_seconds: Optional[int] = Field(None, ge=0)


class Nutrition(BaseModel):
    model_config = ConfigDict(frozen=True)

    calories: float = Field(0, ge=0)
    protein: float = Field(0, ge=0)
    carbs: float = Field(0, ge=0)
    fat: float = Field(0, ge=0)


class ImpactMetrics(BaseModel):
    """Environmental impact, always derived from an ingredient set."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    co2_saved_kg: float = Field(0.0, alias="co2SavedKg")
    water_saved_litres: int = Field(0, alias="waterSavedLitres")
    waste_avoided_grams: float = Field(0, alias="wasteAvoidedGrams")


class NeuralProtocol(BaseModel):
    """A generated cooking plan.

    Immutable: fusion derives a reconciled copy and keeps the original intact
    so it can fall back to it.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=new_id)
    title: str
    description: str = ""
    complexity: str = "Medium"
    duration_minutes: int = Field(0, ge=0)
    ingredients_used: List[str] = Field(default_factory=list, description="Claimed by the engine, unverified")
    missing_ingredients: List[str] = Field(default_factory=list)
    instructions: List[ProtocolStep] = Field(default_factory=list)
    nutrition: Nutrition = Field(default_factory=Nutrition)
    is_offline: bool = Field(False, alias="isOffline")

    # Written only by the fusion layer
    molecular_affinity: Optional[float] = Field(None, ge=0, le=100, alias="molecularAffinity")
    impact_metrics: Optional[ImpactMetrics] = Field(None, alias="impactMetrics")
    substitution_risk: Optional[SubstitutionRisk] = Field(None, alias="substitutionRisk")

    @property
    def is_fused(self) -> bool:
        return self.substitution_risk is not None


class ValidationResultDTO(BaseModel):
    validated_used: List[str] = Field(default_factory=list, alias="validatedUsed")
    identified_hallucinations: List[str] = Field(default_factory=list, alias="identifiedHallucinations")

    model_config = ConfigDict(populate_by_name=True)


class FusionRequestDTO(BaseModel):
    inventory: List[Ingredient] = Field(default_factory=list)
    protocol: NeuralProtocol

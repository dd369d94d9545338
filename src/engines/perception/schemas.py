import uuid
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from enum import Enum


def new_id() -> str:
    return uuid.uuid4().hex


class VerificationStatus(str, Enum):
    """User adjudication of a perceived ingredient."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DISMISSED = "dismissed"  # Excluded from fusion, record kept


class Detection(BaseModel):
    """Raw model output, enriched one attribute per stage."""
    detection_id: str = Field(default_factory=new_id)
    label: str
    bbox: Optional[List[float]] = Field(None, description="[x_min, y_min, x_max, y_max] in pixels")
    confidence: float = Field(..., ge=0.0, le=1.0)
    model: str = Field("unknown", description="Id of the model that produced the candidate")

    # Populated by enrichment stages
    mask_area: Optional[float] = Field(None, ge=0, description="Segmented extent in pixels")
    scientific_name: Optional[str] = None
    food_group: Optional[str] = None
    vitality: Optional[int] = Field(None, ge=0, le=100)
    expiry_days: Optional[int] = Field(None, ge=0)
    mass_grams: Optional[float] = None


class Ingredient(BaseModel):
    """A single physically observed item."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id)
    name: str
    scientific_name: str = Field("Unknown Species", alias="scientificName")
    category: str = "Perception-Identified"
    # Unconstrained on purpose: the fusion sanity gate owns these bounds
    mass_grams: float
    vitality_score: float
    expires_in_days: int = 0
    confidence: float = Field(1.0, ge=0.0, le=1.0)
    verification_status: Optional[VerificationStatus] = Field(None, alias="verificationStatus")

    @property
    def is_dismissed(self) -> bool:
        return self.verification_status == VerificationStatus.DISMISSED

    @property
    def is_urgent(self) -> bool:
        """Expiring within two days."""
        return self.expires_in_days <= 2

    @property
    def is_low_vitality(self) -> bool:
        return self.vitality_score < 40


class RecallHypothesis(BaseModel):
    """An ingredient an external recall audit believes the scan missed."""
    name: str = Field(..., min_length=1)
    confidence: float = Field(..., ge=0.0, le=1.0)


# =============================================================================
# API DTOs
# =============================================================================

class PerceptionScanRequestDTO(BaseModel):
    image_base64: str = Field(..., description="Base64 encoded image")


class PerceptionScanResponseDTO(BaseModel):
    scan_id: str
    ingredients: List[Ingredient] = Field(default_factory=list)
    status_log: List[str] = Field(default_factory=list, description="Progress messages in stage order")
    duration_ms: int


class RescanRequestDTO(BaseModel):
    hypotheses: List[RecallHypothesis] = Field(..., max_length=100)


class RescanResponseDTO(BaseModel):
    ingredients: List[Ingredient] = Field(default_factory=list)

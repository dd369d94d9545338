from pydantic import BaseModel, ConfigDict, Field
from typing import List
from enum import Enum


class ModelType(str, Enum):
    """Capability classes an offline model can provide."""
    DETECTION = "DETECTION"
    CLASSIFICATION = "CLASSIFICATION"
    REASONING = "REASONING"


class OfflineModel(BaseModel):
    """A registered inference capability and the labels it covers."""
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    id: str = Field(..., min_length=1)
    name: str
    version: str
    type: ModelType
    accuracy: float = Field(..., ge=0.0, le=1.0)
    coverage: List[str] = Field(default_factory=list, description="Labels or capabilities")


class RegistryStatsDTO(BaseModel):
    """Snapshot of current edge intelligence capacity."""
    total_models: int
    detection_classes: int
    classification_classes: int
    health: str = "OPTIMAL"


class RegistrationResponseDTO(BaseModel):
    registered: bool
    model: OfflineModel


class CoverageResponseDTO(BaseModel):
    type: ModelType
    coverage: List[str]

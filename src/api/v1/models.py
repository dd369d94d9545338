"""
Model Registry Endpoints

GET  /api/v1/models                  - List registered models (optional ?type=)
GET  /api/v1/models/coverage/{type}  - Aggregate label coverage for a type
GET  /api/v1/models/stats            - Registry capacity report
POST /api/v1/models                  - Idempotent registration
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import get_registry
from src.engines.registry.repositories import ModelRegistry
from src.engines.registry.schemas import (
    CoverageResponseDTO,
    ModelType,
    OfflineModel,
    RegistrationResponseDTO,
    RegistryStatsDTO,
)

router = APIRouter()


@router.get("", response_model=List[OfflineModel])
async def list_models(
    type: Optional[ModelType] = Query(None, description="Filter by capability class"),
    registry: ModelRegistry = Depends(get_registry)
):
    if type is None:
        return list(registry.models)
    return registry.get_models_by_type(type)


@router.get("/stats", response_model=RegistryStatsDTO)
async def stats(registry: ModelRegistry = Depends(get_registry)):
    return registry.get_stats()


@router.get("/coverage/{model_type}", response_model=CoverageResponseDTO)
async def coverage(model_type: ModelType, registry: ModelRegistry = Depends(get_registry)):
    return CoverageResponseDTO(type=model_type, coverage=registry.get_aggregate_coverage(model_type))


@router.post("", response_model=RegistrationResponseDTO)
async def register(model: OfflineModel, registry: ModelRegistry = Depends(get_registry)):
    """
    Register a model. A duplicate id is a no-op: ``registered`` is false and
    the already-registered entry is returned.
    """
    registered = registry.register_model(model)
    return RegistrationResponseDTO(
        registered=registered,
        model=model if registered else registry.get_model(model.id)
    )

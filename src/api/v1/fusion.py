"""
Fusion Endpoints

POST /api/v1/fusion/fuse     - Reconcile a protocol with the perceived inventory
POST /api/v1/fusion/validate - Hallucination report only
"""

from fastapi import APIRouter, Depends

from src.api.dependencies import get_fusion_service
from src.core.logging import get_logger
from src.engines.fusion.schemas import FusionRequestDTO, NeuralProtocol, ValidationResultDTO
from src.engines.fusion.services import FusionService
from src.engines.fusion.validator import validate_ingredients

logger = get_logger(__name__)
router = APIRouter()


@router.post("/fuse", response_model=NeuralProtocol, response_model_exclude_none=True)
async def fuse(
    request: FusionRequestDTO,
    service: FusionService = Depends(get_fusion_service)
):
    """
    Reconcile a generated protocol with the perception inventory.

    Never fails for well-formed input: when the inventory is malformed or
    reconciliation faults, the original protocol is returned unchanged.
    """
    return service.fuse(request.inventory, request.protocol)


@router.post("/validate", response_model=ValidationResultDTO)
async def validate(request: FusionRequestDTO):
    """Split the protocol's claimed ingredients into confirmed and hallucinated."""
    active = [i for i in request.inventory if not i.is_dismissed]
    return validate_ingredients(active, request.protocol)

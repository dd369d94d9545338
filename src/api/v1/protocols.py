"""
Protocol Endpoints

POST /api/v1/protocols/generate                  - Generate and fuse a protocol
GET  /api/v1/protocols/substitutions/{name}      - Offline substitution lookup
POST /api/v1/protocols/impact                    - Impact estimates for an inventory
"""

from fastapi import APIRouter, Depends

from src.api.dependencies import get_protocol_service
from src.core.logging import get_logger
from src.engines.fusion.schemas import NeuralProtocol
from src.engines.fusion.scoring import calculate_environmental_impact
from src.engines.reasoning.offline import find_substitutions, offline_impact
from src.engines.reasoning.schemas import (
    ImpactEstimateRequestDTO,
    ImpactEstimateResponseDTO,
    ProtocolRequestDTO,
    SubstitutionResponseDTO,
)
from src.engines.reasoning.services import ProtocolService

logger = get_logger(__name__)
router = APIRouter()


@router.post("/generate", response_model=NeuralProtocol, response_model_exclude_none=True)
async def generate(
    request: ProtocolRequestDTO,
    service: ProtocolService = Depends(get_protocol_service)
):
    """
    Generate a protocol for the inventory.

    Uses the external reasoning engine when configured and healthy, otherwise
    the offline synthesizer. The result always passes through fusion.
    """
    protocol = await service.generate(request.ingredients, request.preferences)
    logger.info(
        "protocol_generated",
        protocol_id=protocol.id,
        offline=protocol.is_offline,
        substitution_risk=protocol.substitution_risk.value if protocol.substitution_risk else None
    )
    return protocol


@router.get("/substitutions/{ingredient}", response_model=SubstitutionResponseDTO)
async def substitutions(ingredient: str):
    return SubstitutionResponseDTO(ingredient=ingredient, substitutions=find_substitutions(ingredient))


@router.post("/impact", response_model=ImpactEstimateResponseDTO)
async def impact(request: ImpactEstimateRequestDTO):
    active = [i for i in request.ingredients if not i.is_dismissed]
    return ImpactEstimateResponseDTO(
        flat_rate=offline_impact(active),
        category_weighted=calculate_environmental_impact(active)
    )

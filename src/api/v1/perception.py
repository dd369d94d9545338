"""
Perception Endpoints

POST /api/v1/perception/scan   - Run the staged perception pass on one image
POST /api/v1/perception/rescan - Confirm recall-audit hypotheses
"""

import base64
import binascii
import io
import time
from typing import List

from fastapi import APIRouter, Depends
from PIL import Image, UnidentifiedImageError

from src.api.dependencies import get_perception_pipeline
from src.core.config import settings
from src.core.exceptions import ValidationError
from src.core.logging import get_logger
from src.engines.perception.schemas import (
    PerceptionScanRequestDTO,
    PerceptionScanResponseDTO,
    RescanRequestDTO,
    RescanResponseDTO,
    new_id,
)
from src.engines.perception.services import PerceptionPipeline, run_targeted_rescan

logger = get_logger(__name__)
router = APIRouter()

MAX_IMAGE_SIZE_MB = settings.MAX_IMAGE_SIZE_BYTES / (1024 * 1024)


def decode_image_payload(image_base64: str) -> bytes:
    """Decode and sanity-check an uploaded image.

    Raises:
        ValidationError: not base64, too large, or not a readable image.
    """
    # Accept data URLs from browser clients
    if image_base64.startswith("data:") and "," in image_base64:
        image_base64 = image_base64.split(",", 1)[1]

    try:
        image = base64.b64decode(image_base64, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("image_base64 is not valid base64")

    if not image:
        raise ValidationError("Image payload is empty")

    if len(image) > settings.MAX_IMAGE_SIZE_BYTES:
        raise ValidationError(
            f"Image size ({len(image) / (1024 * 1024):.2f}MB) exceeds maximum ({MAX_IMAGE_SIZE_MB:.0f}MB)",
            details={"size_bytes": len(image)}
        )

    try:
        with Image.open(io.BytesIO(image)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise ValidationError("Payload is not a supported image format")

    return image


@router.post("/scan", response_model=PerceptionScanResponseDTO)
async def scan(
    request: PerceptionScanRequestDTO,
    pipeline: PerceptionPipeline = Depends(get_perception_pipeline)
):
    """
    Identify ingredients in an image.

    Runs detection (with hybrid fallback on low yield), segmentation,
    classification, freshness and volume stages under a hard deadline.

    Returns 504 when the deadline elapses; resubmit the image to retry.
    """
    image = decode_image_payload(request.image_base64)
    scan_id = new_id()
    status_log: List[str] = []

    start_time = time.time()
    ingredients = await pipeline.run(image, update_status=status_log.append, scan_id=scan_id)

    return PerceptionScanResponseDTO(
        scan_id=scan_id,
        ingredients=ingredients,
        status_log=status_log,
        duration_ms=int((time.time() - start_time) * 1000)
    )


@router.post("/rescan", response_model=RescanResponseDTO)
async def rescan(request: RescanRequestDTO):
    """Turn high-confidence recall hypotheses into rescan-confirmed ingredients."""
    ingredients = run_targeted_rescan(
        request.hypotheses,
        acceptance_threshold=settings.RESCAN_ACCEPTANCE_THRESHOLD
    )
    return RescanResponseDTO(ingredients=ingredients)

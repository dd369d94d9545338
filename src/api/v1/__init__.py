"""
API v1 Router Module - Perception & Fusion Service

All v1 endpoints are prefixed with /api/v1/

- /api/v1/perception/* - Image scan and targeted rescan
- /api/v1/fusion/*     - Protocol reconciliation against the inventory
- /api/v1/protocols/*  - Protocol generation, substitutions, impact
- /api/v1/models/*     - Model registry
"""

from fastapi import APIRouter

from src.api.v1.perception import router as perception_router
from src.api.v1.fusion import router as fusion_router
from src.api.v1.protocols import router as protocols_router
from src.api.v1.models import router as models_router
from src.api.v1.metrics import router as metrics_router

# Main v1 router
api_v1_router = APIRouter(prefix="/api/v1")

api_v1_router.include_router(perception_router, prefix="/perception", tags=["perception"])
api_v1_router.include_router(fusion_router, prefix="/fusion", tags=["fusion"])
api_v1_router.include_router(protocols_router, prefix="/protocols", tags=["protocols"])
api_v1_router.include_router(models_router, prefix="/models", tags=["models"])
api_v1_router.include_router(metrics_router, tags=["metrics"])

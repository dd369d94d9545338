"""
Application Configuration

Centralized settings management using Pydantic Settings.
Supports environment variables and .env files.
"""

from pydantic_settings import BaseSettings
from pathlib import Path
from typing import Optional


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    # ==========================================================================
    # App Settings
    # ==========================================================================
    APP_NAME: str = "CulinaryLens Perception & Fusion Service"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development, staging, PROD
    DEBUG: bool = False  # Starlette debug tracebacks on unhandled errors

    # ==========================================================================
    # Perception Pipeline
    # ==========================================================================
    PERCEPTION_BASELINE_THRESHOLD: float = 0.20
    PERCEPTION_FALLBACK_THRESHOLD: float = 0.12  # Used when primary yield is low
    PERCEPTION_MIN_DETECTIONS: int = 6
    PERCEPTION_DEADLINE_MS: int = 4000  # Hard wall-clock limit for one scan

    # Candidates survive detection when confidence >= threshold * tolerance
    DETECTION_THRESHOLD_TOLERANCE: float = 0.8
    ENSEMBLE_SWEEP_LIMIT: int = 3
    ENABLE_ENSEMBLE_SWEEP: bool = True

    RESCAN_ACCEPTANCE_THRESHOLD: float = 0.35
    MAX_IMAGE_SIZE_BYTES: int = 10485760  # 10MB

    # ==========================================================================
    # ML Settings
    # ==========================================================================
    ML_MODEL_CACHE_DIR: Path = Path("./ml_cache")
    DETECTION_MODEL: str = "yolo11n.pt"
    FALLBACK_DETECTION_MODEL: Optional[str] = None  # Falls back to DETECTION_MODEL
    CLIP_MODEL: str = "ViT-B-32"
    CLIP_PRETRAINED: str = "laion2b_s34b_b79k"
    PRELOAD_MODELS: bool = False  # Load weights at startup instead of first scan

    # ==========================================================================
    # External Reasoning Engine
    # ==========================================================================
    # Unset URL means protocols are synthesized offline only
    REASONING_ENGINE_URL: Optional[str] = None
    REASONING_ENGINE_API_KEY: Optional[str] = None
    REASONING_ENGINE_TIMEOUT_SECONDS: float = 30.0

    # ==========================================================================
    # Logging Settings
    # ==========================================================================
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT_JSON: bool = True  # JSON for production, console for development

    # ==========================================================================
    # CORS Settings
    # ==========================================================================
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173,http://localhost:8000"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()

#!/usr/bin/env python3
"""
Model Setup Script - Pre-download Perception Weights

Downloads the detector (and the coverage scorer, when the ensemble sweep is
enabled) into ML_MODEL_CACHE_DIR so the first scan does not pay for it.

Run this during Docker build to avoid download at runtime:
    python scripts/setup_models.py

Requires the ``ml`` extra:
    pip install -e ".[ml]"
"""

import os
import sys
import time
import logging
import argparse
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def setup_models(cache_dir: str = "./ml_cache") -> bool:
    cache_path = Path(cache_dir)
    cache_path.mkdir(parents=True, exist_ok=True)

    # Must be set before settings are first imported
    os.environ["ML_MODEL_CACHE_DIR"] = str(cache_path)

    from src.api.dependencies import preload_models
    from src.core.config import settings

    logger.info("=" * 60)
    logger.info("Perception Model Setup")
    logger.info("=" * 60)
    logger.info(f"Cache directory: {cache_path.absolute()}")
    logger.info(f"Detector: {settings.DETECTION_MODEL}")
    if settings.FALLBACK_DETECTION_MODEL:
        logger.info(f"Fallback detector: {settings.FALLBACK_DETECTION_MODEL}")
    if settings.ENABLE_ENSEMBLE_SWEEP:
        logger.info(f"Coverage scorer: {settings.CLIP_MODEL} ({settings.CLIP_PRETRAINED})")

    start = time.time()
    if not preload_models():
        logger.error("Model download failed")
        return False

    logger.info(f"Models ready in {time.time() - start:.1f}s")
    return True


def main():
    parser = argparse.ArgumentParser(description="Pre-download perception model weights")
    parser.add_argument(
        "--cache-dir",
        default=os.environ.get("ML_MODEL_CACHE_DIR", "./ml_cache"),
        help="Directory to cache models"
    )
    args = parser.parse_args()

    sys.exit(0 if setup_models(args.cache_dir) else 1)


if __name__ == "__main__":
    main()

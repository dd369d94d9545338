"""
Model Backends

Reference Detector / CoverageScorer implementations:
- Detection: ultralytics YOLO (yolo11n by default)
- Coverage: OpenCLIP ViT-B-32 zero-shot scoring (laion2b_s34b_b79k)

Models load lazily on first use behind a double-checked lock; inference runs
off the event loop in a worker thread. Both are guarded by circuit breakers.
The ML stack ships as the ``ml`` extra, so imports happen at load time.
"""

import asyncio
import io
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from PIL import Image

from src.core.exceptions import CircuitBreakerOpenError, get_circuit_breaker
from src.core.logging import get_logger
from src.engines.perception.schemas import Detection
from src.engines.perception.stages import MODEL_INPUT_AREA_PX, CoverageScorer, Detector

logger = get_logger(__name__)

MODEL_INPUT_SIZE = int(MODEL_INPUT_AREA_PX ** 0.5)


def decode_image(image: bytes) -> Image.Image:
    return Image.open(io.BytesIO(image)).convert("RGB")


def _select_device() -> str:
    import torch
    return "cuda" if torch.cuda.is_available() else "cpu"


async def _guarded(breaker_name: str, func, *args):
    """Run blocking inference in a thread under the named circuit breaker."""
    breaker = get_circuit_breaker(breaker_name)
    if not breaker.can_execute():
        raise CircuitBreakerOpenError(breaker_name)

    try:
        result = await asyncio.to_thread(func, *args)
    except Exception as e:
        breaker.record_failure(e)
        raise

    breaker.record_success()
    return result


class YoloDetector(Detector):
    """Ultralytics YOLO detector.

    Boxes are rescaled into model-input space (longest side = 640 px) so the
    volume stage can compare extents against a fixed plate reference.
    """

    def __init__(
        self,
        weights: str = "yolo11n.pt",
        cache_dir: Optional[Path] = None,
        breaker_name: str = "detector"
    ):
        self.weights = weights
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self.breaker_name = breaker_name
        self.model_id = Path(weights).stem

        self._model = None
        self._device: Optional[str] = None
        self._load_lock = threading.Lock()

    def get_model(self):
        if self._model is None:
            with self._load_lock:
                if self._model is None:
                    self._model = self._load_model()
        return self._model

    def _load_model(self):
        from ultralytics import YOLO

        start = time.time()
        weights = self.weights
        if self.cache_dir and (self.cache_dir / weights).exists():
            weights = str(self.cache_dir / weights)

        logger.info("detector_loading", weights=weights)
        model = YOLO(weights)
        self._device = _select_device()
        logger.info(
            "detector_loaded",
            weights=weights,
            device=self._device,
            duration_ms=int((time.time() - start) * 1000)
        )
        return model

    async def detect(self, image: bytes, threshold: float) -> List[Detection]:
        return await _guarded(self.breaker_name, self._sync_detect, image, threshold)

    def _sync_detect(self, image: bytes, threshold: float) -> List[Detection]:
        model = self.get_model()
        img = decode_image(image)
        scale = MODEL_INPUT_SIZE / max(img.size)

        results = model(img, verbose=False, conf=threshold, device=self._device)

        detections: List[Detection] = []
        for r in results:
            names = r.names
            for box in r.boxes:
                class_id = int(box.cls[0])
                confidence = float(box.conf[0])
                bbox = [float(v) * scale for v in box.xyxy[0].tolist()]

                detections.append(Detection(
                    label=names.get(class_id, "unknown"),
                    bbox=bbox,
                    confidence=min(1.0, max(0.0, confidence)),
                    model=self.model_id
                ))
        return detections


class ClipCoverageScorer(CoverageScorer):
    """OpenCLIP zero-shot scorer over a label vocabulary."""

    PROMPT_TEMPLATE = "a photo of {}, a type of food"

    def __init__(
        self,
        model_name: str = "ViT-B-32",
        pretrained: str = "laion2b_s34b_b79k",
        cache_dir: Optional[Path] = None,
        temperature: float = 1.2,
        breaker_name: str = "coverage_scorer"
    ):
        self.model_name = model_name
        self.pretrained = pretrained
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self.temperature = temperature
        self.breaker_name = breaker_name

        self._bundle: Optional[Tuple[Any, Any, Any]] = None
        self._device: Optional[str] = None
        self._load_lock = threading.Lock()

    def get_model(self) -> Tuple[Any, Any, Any]:
        """Returns (model, preprocess, tokenizer)."""
        if self._bundle is None:
            with self._load_lock:
                if self._bundle is None:
                    self._bundle = self._load_model()
        return self._bundle

    def _load_model(self) -> Tuple[Any, Any, Any]:
        import open_clip

        start = time.time()
        logger.info("coverage_scorer_loading", model=self.model_name, pretrained=self.pretrained)

        model, _, preprocess = open_clip.create_model_and_transforms(
            self.model_name,
            pretrained=self.pretrained,
            cache_dir=str(self.cache_dir / "open_clip") if self.cache_dir else None
        )
        tokenizer = open_clip.get_tokenizer(self.model_name)

        self._device = _select_device()
        model = model.to(self._device)
        model.eval()

        logger.info(
            "coverage_scorer_loaded",
            model=self.model_name,
            device=self._device,
            duration_ms=int((time.time() - start) * 1000)
        )
        return model, preprocess, tokenizer

    async def score(self, image: bytes, labels: Sequence[str]) -> Dict[str, float]:
        if not labels:
            return {}
        return await _guarded(self.breaker_name, self._sync_score, image, list(labels))

    def _sync_score(self, image: bytes, labels: List[str]) -> Dict[str, float]:
        import torch

        model, preprocess, tokenizer = self.get_model()

        image_input = preprocess(decode_image(image)).unsqueeze(0).to(self._device)
        text_input = tokenizer([self.PROMPT_TEMPLATE.format(label) for label in labels]).to(self._device)

        with torch.no_grad():
            image_features = model.encode_image(image_input)
            text_features = model.encode_text(text_input)

            image_features = image_features / image_features.norm(dim=-1, keepdim=True)
            text_features = text_features / text_features.norm(dim=-1, keepdim=True)

            logits = 100.0 * image_features @ text_features.T / self.temperature
            probs = logits.softmax(dim=-1)[0]

        return {label: float(p) for label, p in zip(labels, probs.tolist())}

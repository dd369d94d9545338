"""Builders and test doubles shared across the suite."""

import asyncio
import io
from typing import List

from PIL import Image

from src.engines.fusion.schemas import NeuralProtocol, ProtocolStep
from src.engines.perception.schemas import Detection, Ingredient
from src.engines.perception.stages import CoverageScorer, Detector, EnrichmentStage


class FakeDetector(Detector):
    """Returns canned detections, honoring the threshold like a real model."""

    def __init__(self, detections: List[Detection], model_id: str = "fake-detector"):
        self.detections = detections
        self.model_id = model_id
        self.calls: List[float] = []

    async def detect(self, image: bytes, threshold: float) -> List[Detection]:
        self.calls.append(threshold)
        return [d.model_copy() for d in self.detections if d.confidence >= threshold]


class FakeCoverageScorer(CoverageScorer):

    def __init__(self, scores=None, error: Exception = None):
        self.scores = scores or {}
        self.error = error
        self.requested: List[List[str]] = []

    async def score(self, image: bytes, labels) -> dict:
        self.requested.append(list(labels))
        if self.error:
            raise self.error
        return {label: self.scores.get(label, 0.0) for label in labels}


def make_detection(label: str, confidence: float = 0.9, bbox=None, model: str = "fake-detector") -> Detection:
    return Detection(
        label=label,
        confidence=confidence,
        bbox=bbox if bbox is not None else [0, 0, 100, 100],
        model=model
    )


def make_ingredient(name: str, mass_grams: float = 100, vitality_score: float = 80, **kwargs) -> Ingredient:
    return Ingredient(name=name, mass_grams=mass_grams, vitality_score=vitality_score, **kwargs)


def make_protocol(ingredients_used: List[str], instructions: List[str] = None, **kwargs) -> NeuralProtocol:
    steps = [
        ProtocolStep(order=index, instruction=text, technique="Technique")
        for index, text in enumerate(instructions or [], start=1)
    ]
    return NeuralProtocol(title="Test Protocol", ingredients_used=ingredients_used, instructions=steps, **kwargs)


def png_bytes(size=(64, 64), color=(200, 60, 40)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class SlowStage(EnrichmentStage):
    """Pass-through stage that sleeps first; used to trip the deadline."""
    name = "slow"
    status_message = "Sleeping..."

    def __init__(self, delay: float):
        self.delay = delay

    async def run(self, detections):
        await asyncio.sleep(self.delay)
        return detections

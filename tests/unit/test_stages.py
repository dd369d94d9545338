import pytest

from src.engines.perception.class_map import UNKNOWN_SPECIES
from src.engines.perception.stages import (
    ENSEMBLE_MODEL_ID,
    ClassificationStage,
    DetectionStage,
    FreshnessStage,
    HybridFallbackStage,
    SegmentationStage,
    VolumeStage,
    bbox_area,
)
from src.engines.registry.repositories import ModelRegistry
from src.engines.registry.schemas import ModelType, OfflineModel
from tests.factories import FakeCoverageScorer, FakeDetector, make_detection


@pytest.fixture
def registry():
    return ModelRegistry([
        OfflineModel(
            id="clf",
            name="Classifier",
            version="1.0.0",
            type=ModelType.CLASSIFICATION,
            accuracy=0.9,
            coverage=["thyme", "lemon", "basil", "rosemary", "olive oil", "mushrooms"],
        )
    ])


# =============================================================================
# Detection
# =============================================================================

@pytest.mark.asyncio
async def test_detection_without_scorer_returns_primary(registry):
    detector = FakeDetector([make_detection("pear", 0.99), make_detection("onion", 0.3)])
    stage = DetectionStage(detector, registry)

    detections = await stage.run(b"img", 0.2)

    assert [d.label for d in detections] == ["pear", "onion"]
    assert detector.calls == [0.2]


@pytest.mark.asyncio
async def test_detection_applies_tolerance_floor(registry):
    class LooseDetector(FakeDetector):
        async def detect(self, image, threshold):
            return [d.model_copy() for d in self.detections]

    detector = LooseDetector([make_detection("pear", 0.17), make_detection("kale", 0.15)])
    stage = DetectionStage(detector, registry, tolerance=0.8)

    detections = await stage.run(b"img", 0.2)

    # floor = 0.16
    assert [d.label for d in detections] == ["pear"]


@pytest.mark.asyncio
async def test_ensemble_sweep_adds_top_unseen_labels(registry):
    scorer = FakeCoverageScorer({"thyme": 0.5, "lemon": 0.9, "basil": 0.7, "rosemary": 0.6, "mushrooms": 0.8})
    detector = FakeDetector([make_detection("Mushroom", 0.9)])
    stage = DetectionStage(detector, registry, coverage_scorer=scorer, sweep_limit=3)

    detections = await stage.run(b"img", 0.2)

    # "mushrooms" is already covered by the primary "Mushroom"
    assert "mushrooms" not in scorer.requested[0]
    sweep = [d for d in detections if d.model == ENSEMBLE_MODEL_ID]
    assert [d.label for d in sweep] == ["lemon", "basil", "rosemary"]
    assert all(d.bbox is None for d in sweep)


@pytest.mark.asyncio
async def test_ensemble_sweep_below_floor_is_dropped(registry):
    scorer = FakeCoverageScorer({"lemon": 0.9, "basil": 0.05})
    stage = DetectionStage(FakeDetector([]), registry, coverage_scorer=scorer, sweep_limit=2)

    detections = await stage.run(b"img", 0.2)

    assert [d.label for d in detections] == ["lemon"]


@pytest.mark.asyncio
async def test_ensemble_sweep_failure_degrades_to_primary(registry):
    scorer = FakeCoverageScorer(error=RuntimeError("clip down"))
    stage = DetectionStage(FakeDetector([make_detection("pear")]), registry, coverage_scorer=scorer)

    detections = await stage.run(b"img", 0.2)

    assert [d.label for d in detections] == ["pear"]


# =============================================================================
# Hybrid fallback
# =============================================================================

@pytest.mark.asyncio
async def test_hybrid_fallback_appends_new_labels():
    primary = [make_detection("pear"), make_detection("tomato")]
    fallback = FakeDetector([
        make_detection("Tomatoes", 0.5),
        make_detection("olive oil", 0.45),
        make_detection("mushroom", 0.48),
        make_detection("mushroom", 0.40),
    ])
    stage = HybridFallbackStage(fallback)

    detections = await stage.run(b"img", primary, 0.12)

    assert [d.label for d in detections] == ["pear", "tomato", "olive oil", "mushroom"]
    assert detections[0] is primary[0]
    assert fallback.calls == [0.12]


# =============================================================================
# Enrichment
# =============================================================================

def test_bbox_area():
    assert bbox_area([10, 20, 30, 60]) == 800
    assert bbox_area([30, 20, 10, 60]) == 0
    assert bbox_area(None) is None
    assert bbox_area([1, 2]) is None


@pytest.mark.asyncio
async def test_segmentation_uses_bbox_extent():
    detections = [make_detection("pear", bbox=[0, 0, 200, 100]), make_detection("lemon")]
    detections[1] = detections[1].model_copy(update={"bbox": None})

    segmented = await SegmentationStage().run(detections)

    assert segmented[0].mask_area == 20000
    assert segmented[1].mask_area is None
    assert [d.detection_id for d in segmented] == [d.detection_id for d in detections]


@pytest.mark.asyncio
async def test_classification_resolves_taxonomy_and_group():
    detections = [make_detection("Tomatoes"), make_detection("Dragonfruit"), make_detection("cheese")]

    classified = await ClassificationStage().run(detections)

    assert classified[0].scientific_name == "Solanum lycopersicum"
    assert classified[0].food_group == "vegetable"
    assert classified[1].scientific_name == UNKNOWN_SPECIES
    assert classified[1].food_group is None
    assert classified[2].food_group == "dairy"


@pytest.mark.asyncio
async def test_freshness_scales_with_confidence():
    detections = await ClassificationStage().run([
        make_detection("apple", confidence=1.0),
        make_detection("apple", confidence=0.0),
        make_detection("chicken", confidence=0.5),
    ])

    fresh = await FreshnessStage().run(detections)

    # fruit: 90 * 1.0, 90 * 0.6 ; protein: 85 * 0.8
    assert [d.vitality for d in fresh] == [90, 54, 68]
    # fruit shelf 7, protein shelf 3
    assert [d.expiry_days for d in fresh] == [6, 4, 2]


@pytest.mark.asyncio
async def test_volume_from_extent_and_density():
    detections = await ClassificationStage().run([
        make_detection("apple", bbox=[0, 0, 640, 640]),
        make_detection("basil", bbox=[0, 0, 64, 64]),
        make_detection("lemon", bbox=[0, 0, 1, 1]),
    ])
    detections = await SegmentationStage().run(detections)

    sized = await VolumeStage().run(detections)

    # full plate of fruit; herb at 1% area and 0.2 density; minimum 1 g
    assert [d.mass_grams for d in sized] == [350, 1, 1]


@pytest.mark.asyncio
async def test_volume_without_extent_uses_default_portion():
    detections = await ClassificationStage().run([make_detection("chicken"), make_detection("dragonfruit")])
    detections = [d.model_copy(update={"mask_area": None}) for d in detections]

    sized = await VolumeStage().run(detections)

    assert [d.mass_grams for d in sized] == [150, 70]

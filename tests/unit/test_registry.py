import threading

from src.engines.registry.repositories import DEFAULT_MODELS, ModelRegistry
from src.engines.registry.schemas import ModelType, OfflineModel


def make_model(model_id: str, model_type: ModelType = ModelType.CLASSIFICATION, coverage=None) -> OfflineModel:
    return OfflineModel(
        id=model_id,
        name=model_id.title(),
        version="1.0.0",
        type=model_type,
        accuracy=0.9,
        coverage=coverage or []
    )


def test_seed_catalog():
    registry = ModelRegistry()

    assert len(registry.models) == len(DEFAULT_MODELS) == 3
    assert [m.id for m in registry.get_models_by_type(ModelType.DETECTION)] == ["yolo-v8x-culinary"]
    assert registry.get_models_by_type(ModelType.REASONING)[0].version == "2.1.0"


def test_constructor_injected_seed_is_deduplicated():
    registry = ModelRegistry([make_model("a"), make_model("a"), make_model("b")])

    assert [m.id for m in registry.models] == ["a", "b"]


def test_aggregate_coverage_is_deduplicated_union():
    registry = ModelRegistry([
        make_model("a", coverage=["thyme", "basil"]),
        make_model("b", coverage=["basil", "sage"]),
        make_model("c", ModelType.DETECTION, coverage=["apple"]),
    ])

    assert registry.get_aggregate_coverage(ModelType.CLASSIFICATION) == ["thyme", "basil", "sage"]
    assert registry.get_aggregate_coverage(ModelType.DETECTION) == ["apple"]
    assert registry.get_aggregate_coverage(ModelType.REASONING) == []


def test_register_model_is_idempotent():
    registry = ModelRegistry([])
    model = make_model("resnet", coverage=["olive oil"])

    assert registry.register_model(model) is True
    assert registry.register_model(make_model("resnet", coverage=["other"])) is False

    assert len(registry.models) == 1
    assert registry.get_model("resnet").coverage == ["olive oil"]


def test_readers_keep_their_snapshot():
    registry = ModelRegistry([make_model("a")])
    snapshot = registry.models

    registry.register_model(make_model("b"))

    assert [m.id for m in snapshot] == ["a"]
    assert [m.id for m in registry.models] == ["a", "b"]


def test_concurrent_registration_inserts_each_id_once():
    registry = ModelRegistry([])
    results = []

    def register(index: int):
        results.append(registry.register_model(make_model(f"model-{index % 10}")))

    threads = [threading.Thread(target=register, args=(i,)) for i in range(50)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(registry.models) == 10
    assert results.count(True) == 10


def test_stats():
    stats = ModelRegistry().get_stats()

    assert stats.total_models == 3
    assert stats.detection_classes == 7
    assert stats.classification_classes == 6
    assert stats.health == "OPTIMAL"

    assert ModelRegistry([]).get_stats().health == "EMPTY"

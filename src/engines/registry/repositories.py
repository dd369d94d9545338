"""
Model Registry Repository

Authority for which local intelligence capabilities are active.

Concurrency contract:
- Read-mostly. Readers take the current snapshot (an immutable tuple) without
  locking and never observe a partially-constructed entry.
- Registration is copy-on-write under a lock and idempotent by model id.
"""

import threading
from typing import Iterable, List, Optional, Tuple

from src.core.logging import get_logger
from src.core.metrics import set_registered_models
from src.engines.registry.schemas import ModelType, OfflineModel, RegistryStatsDTO

logger = get_logger(__name__)


# =============================================================================
# Seed Catalog
# =============================================================================

DEFAULT_MODELS: Tuple[OfflineModel, ...] = (
    OfflineModel(
        id="yolo-v8x-culinary",
        name="YOLOv8x Edge",
        version="4.2.0",
        type=ModelType.DETECTION,
        accuracy=0.94,
        coverage=["apple", "pear", "spinach", "cheese", "tomato", "onion", "garlic"],
    ),
    OfflineModel(
        id="efficientnet-b7-food",
        name="EfficientNet-B7",
        version="1.0.5",
        type=ModelType.CLASSIFICATION,
        accuracy=0.98,
        coverage=["thyme", "lemon", "basil", "rosemary", "olive oil", "mushrooms"],
    ),
    OfflineModel(
        id="culinary-logic-v2",
        name="Molecular Reasoning Engine",
        version="2.1.0",
        type=ModelType.REASONING,
        accuracy=0.88,
        coverage=["flavor-pairing", "recipe-structuring", "substitution-logic", "waste-prediction"],
    ),
)


class ModelRegistry:
    """Catalog of available inference capabilities.

    Holds no per-request state. Inject one instance per process; tests build
    their own with a custom seed list.
    """

    def __init__(self, seed_models: Optional[Iterable[OfflineModel]] = None):
        models: List[OfflineModel] = []
        seen = set()
        for model in DEFAULT_MODELS if seed_models is None else seed_models:
            if model.id not in seen:
                seen.add(model.id)
                models.append(model)

        self._models: Tuple[OfflineModel, ...] = tuple(models)
        self._write_lock = threading.Lock()
        self._publish_gauges()

    @property
    def models(self) -> Tuple[OfflineModel, ...]:
        return self._models

    def get_models_by_type(self, model_type: ModelType) -> List[OfflineModel]:
        """Retrieves all registered models of a specific type."""
        return [m for m in self._models if m.type == model_type]

    def get_aggregate_coverage(self, model_type: ModelType) -> List[str]:
        """Union of coverage labels across models of a type, first-seen order."""
        coverage: List[str] = []
        seen = set()
        for model in self.get_models_by_type(model_type):
            for label in model.coverage:
                if label not in seen:
                    seen.add(label)
                    coverage.append(label)
        return coverage

    def get_model(self, model_id: str) -> Optional[OfflineModel]:
        for model in self._models:
            if model.id == model_id:
                return model
        return None

    def register_model(self, model: OfflineModel) -> bool:
        """Add a model to the edge environment.

        Returns:
            True if inserted, False if the id was already registered (no-op).
        """
        with self._write_lock:
            if any(m.id == model.id for m in self._models):
                return False
            # Publish a fresh tuple so concurrent readers keep their snapshot
            self._models = self._models + (model,)

        logger.info(
            "model_registered",
            model_id=model.id,
            model_name=model.name,
            model_version=model.version,
            model_type=model.type.value
        )
        self._publish_gauges()
        return True

    def get_stats(self) -> RegistryStatsDTO:
        """Report of current edge intelligence capacity."""
        return RegistryStatsDTO(
            total_models=len(self._models),
            detection_classes=len(self.get_aggregate_coverage(ModelType.DETECTION)),
            classification_classes=len(self.get_aggregate_coverage(ModelType.CLASSIFICATION)),
            health="OPTIMAL" if self._models else "EMPTY",
        )

    def _publish_gauges(self):
        for model_type in ModelType:
            set_registered_models(model_type.value, len(self.get_models_by_type(model_type)))

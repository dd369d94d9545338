"""
Protocol Service

Generates a protocol from the reasoning engine when one is configured and
healthy, otherwise from the offline synthesizer. Every result passes through
fusion before it is returned.
"""

from typing import Optional, Sequence

from src.core.exceptions import CircuitBreakerOpenError, ExternalAPIError
from src.core.logging import get_logger
from src.engines.fusion.schemas import NeuralProtocol
from src.engines.fusion.services import FusionService
from src.engines.perception.schemas import Ingredient
from src.engines.reasoning.client import ReasoningEngineClient
from src.engines.reasoning.offline import OfflineProtocolSynthesizer
from src.engines.reasoning.schemas import UserPreferences

logger = get_logger(__name__)


class ProtocolService:

    def __init__(
        self,
        synthesizer: OfflineProtocolSynthesizer,
        fusion: FusionService,
        client: Optional[ReasoningEngineClient] = None
    ):
        self.synthesizer = synthesizer
        self.fusion = fusion
        self.client = client

    async def generate(
        self,
        ingredients: Sequence[Ingredient],
        preferences: Optional[UserPreferences] = None
    ) -> NeuralProtocol:
        preferences = preferences or UserPreferences()
        protocol = await self._draft(ingredients, preferences)
        return self.fusion.fuse(ingredients, protocol)

    async def _draft(self, ingredients: Sequence[Ingredient], preferences: UserPreferences) -> NeuralProtocol:
        if self.client is None:
            return self.synthesizer.synthesize(ingredients, preferences)

        active = [i for i in ingredients if not i.is_dismissed]
        try:
            return await self.client.generate_protocol(active, preferences)
        except (ExternalAPIError, CircuitBreakerOpenError) as e:
            logger.warning(
                "reasoning_engine_unavailable_offline_fallback",
                error=e.message,
                code=e.code
            )
            return self.synthesizer.synthesize(ingredients, preferences)

import json

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from src.core.exceptions import CircuitBreakerOpenError, ExternalAPIError, get_circuit_breaker
from src.engines.fusion.schemas import SubstitutionRisk
from src.engines.fusion.services import FusionService
from src.engines.reasoning.client import ReasoningEngineClient
from src.engines.reasoning.offline import OfflineProtocolSynthesizer
from src.engines.reasoning.schemas import UserPreferences
from src.engines.reasoning.services import ProtocolService
from src.engines.registry.repositories import ModelRegistry
from tests.factories import make_ingredient

ENGINE_URL = "http://engine.test/v1/protocols"

ENGINE_PROTOCOL = {
    "id": "remote-1",
    "title": "Charred Tomato Salad",
    "description": "Bright and smoky.",
    "complexity": "Easy",
    "duration_minutes": 20,
    "ingredients_used": ["Tomatoes", "Basil"],
    "missing_ingredients": [],
    "instructions": [
        {"order": 1, "instruction": "Char the tomato over high heat.", "technique": "Charring", "timer_seconds": 180},
    ],
    "nutrition": {"calories": 120, "protein": 3, "carbs": 12, "fat": 7},
    "substitutionRisk": "SAFE",
    "molecularAffinity": 99,
}


def engine_client(handler) -> ReasoningEngineClient:
    return ReasoningEngineClient(ENGINE_URL, api_key="secret", transport=httpx.MockTransport(handler))


# =============================================================================
# Client
# =============================================================================

@pytest.mark.asyncio
async def test_client_posts_inventory_and_preferences():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json=ENGINE_PROTOCOL)

    protocol = await engine_client(handler).generate_protocol(
        [make_ingredient("Tomato", mass_grams=150)],
        UserPreferences(dietary_anchor="vegetarian", allergies=["peanut"])
    )

    assert seen["auth"] == "Bearer secret"
    assert seen["body"]["ingredients"][0]["name"] == "Tomato"
    assert seen["body"]["preferences"]["dietaryAnchor"] == "vegetarian"
    assert seen["body"]["preferences"]["allergies"] == ["peanut"]
    assert protocol.id == "remote-1"


@pytest.mark.asyncio
async def test_client_strips_engine_supplied_fusion_fields():
    protocol = await engine_client(lambda r: httpx.Response(200, json=ENGINE_PROTOCOL)).generate_protocol(
        [], UserPreferences()
    )

    assert protocol.substitution_risk is None
    assert protocol.molecular_affinity is None
    assert not protocol.is_fused


@pytest.mark.asyncio
@pytest.mark.parametrize("status, body", [
    (500, {"text": "boom"}),
    (200, {"text": "not json"}),
    (200, {"json": {"unexpected": True}}),
])
async def test_client_failures_raise_external_api_error(status, body):
    with pytest.raises(ExternalAPIError) as exc_info:
        await engine_client(lambda r: httpx.Response(status, **body)).generate_protocol([], UserPreferences())

    assert exc_info.value.code == 502
    assert exc_info.value.details["service"] == "reasoning_engine"


@pytest.mark.asyncio
async def test_client_timeout_raises_external_api_error():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(ExternalAPIError):
        await engine_client(handler).generate_protocol([], UserPreferences())


@pytest.mark.asyncio
async def test_open_circuit_fails_fast():
    handler = MagicMock(side_effect=lambda request: httpx.Response(500))
    client = engine_client(handler)

    for _ in range(get_circuit_breaker("reasoning_engine").failure_threshold):
        with pytest.raises(ExternalAPIError):
            await client.generate_protocol([], UserPreferences())

    with pytest.raises(CircuitBreakerOpenError):
        await client.generate_protocol([], UserPreferences())
    assert handler.call_count == get_circuit_breaker("reasoning_engine").failure_threshold


# =============================================================================
# Protocol service
# =============================================================================

def protocol_service(client=None) -> ProtocolService:
    return ProtocolService(
        synthesizer=OfflineProtocolSynthesizer(ModelRegistry()),
        fusion=FusionService(),
        client=client
    )


@pytest.mark.asyncio
async def test_generate_offline_when_no_engine_configured():
    inventory = [make_ingredient("Pear", category="fruit"), make_ingredient("Cheese", category="dairy")]

    protocol = await protocol_service().generate(inventory, UserPreferences())

    assert protocol.is_offline
    assert protocol.is_fused
    assert protocol.substitution_risk == SubstitutionRisk.SAFE
    assert protocol.impact_metrics.waste_avoided_grams == 200


@pytest.mark.asyncio
async def test_generate_uses_engine_and_fuses_result():
    client = engine_client(lambda r: httpx.Response(200, json=ENGINE_PROTOCOL))
    inventory = [make_ingredient("Tomato", mass_grams=150, category="vegetable")]

    protocol = await protocol_service(client).generate(inventory)

    assert not protocol.is_offline
    assert protocol.ingredients_used == ["Tomatoes"]
    assert protocol.missing_ingredients == ["Basil"]
    assert protocol.substitution_risk == SubstitutionRisk.EXPERIMENTAL
    assert protocol.instructions[0].instruction.endswith("[Utilize 150g]")


@pytest.mark.asyncio
async def test_generate_falls_back_offline_on_engine_failure():
    client = MagicMock(spec=ReasoningEngineClient)
    client.generate_protocol = AsyncMock(side_effect=ExternalAPIError("down", service="reasoning_engine"))

    protocol = await protocol_service(client).generate([make_ingredient("Lemon")])

    assert protocol.is_offline
    assert protocol.is_fused
    client.generate_protocol.assert_awaited_once()


@pytest.mark.asyncio
async def test_dismissed_items_are_not_sent_to_engine():
    from src.engines.perception.schemas import VerificationStatus

    client = MagicMock(spec=ReasoningEngineClient)
    client.generate_protocol = AsyncMock(side_effect=CircuitBreakerOpenError("reasoning_engine"))
    inventory = [make_ingredient("Lemon"), make_ingredient("Egg", verification_status=VerificationStatus.DISMISSED)]

    await protocol_service(client).generate(inventory)

    sent = client.generate_protocol.await_args.args[0]
    assert [i.name for i in sent] == ["Lemon"]

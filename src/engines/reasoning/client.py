"""
Reasoning Engine Client

Posts the perceived inventory and user preferences to the external reasoning
engine and parses the returned protocol. Guarded by the ``reasoning_engine``
circuit breaker.
"""

from datetime import datetime
from typing import Optional, Sequence

import httpx
from pydantic import ValidationError as PydanticValidationError

from src.core.exceptions import CircuitBreakerOpenError, ExternalAPIError, get_circuit_breaker
from src.core.logging import get_logger
from src.core.metrics import record_reasoning_engine_call
from src.engines.fusion.schemas import NeuralProtocol
from src.engines.perception.schemas import Ingredient
from src.engines.reasoning.schemas import UserPreferences

logger = get_logger(__name__)

SERVICE_NAME = "reasoning_engine"

# Written only by fusion; never trusted from the engine
FUSION_OWNED_FIELDS = {
    "molecular_affinity": None,
    "impact_metrics": None,
    "substitution_risk": None,
}


class ReasoningEngineClient:

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def generate_protocol(
        self,
        ingredients: Sequence[Ingredient],
        preferences: UserPreferences
    ) -> NeuralProtocol:
        """Request a protocol for the given inventory.

        Raises:
            CircuitBreakerOpenError: the engine is failing and the breaker is open.
            ExternalAPIError: non-200 response, timeout, or malformed body.
        """
        circuit = get_circuit_breaker(SERVICE_NAME)
        if not circuit.can_execute():
            raise CircuitBreakerOpenError(SERVICE_NAME)

        payload = {
            "ingredients": [i.model_dump(mode="json", by_alias=True) for i in ingredients],
            "preferences": preferences.model_dump(mode="json", by_alias=True),
        }

        start_time = datetime.utcnow()
        logger.info("reasoning_engine_request", ingredients=len(ingredients))

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, json=payload, headers=self._headers())

            record_reasoning_engine_call(
                status="success" if response.status_code == 200 else "error",
                http_status=response.status_code
            )

            if response.status_code != 200:
                circuit.record_failure()
                raise ExternalAPIError(
                    f"Reasoning engine error: {response.text[:200]}",
                    service=SERVICE_NAME,
                    http_status=response.status_code
                )

            protocol = NeuralProtocol.model_validate(response.json())

        except httpx.TimeoutException:
            circuit.record_failure()
            record_reasoning_engine_call(status="timeout", http_status=0)
            raise ExternalAPIError("Reasoning engine timeout", service=SERVICE_NAME)

        except ExternalAPIError:
            raise

        except (PydanticValidationError, ValueError) as e:
            circuit.record_failure(e)
            logger.error("reasoning_engine_malformed_response", error=str(e))
            raise ExternalAPIError(
                "Reasoning engine returned a malformed protocol",
                service=SERVICE_NAME,
                http_status=200
            )

        except httpx.HTTPError as e:
            circuit.record_failure(e)
            logger.error("reasoning_engine_failed", error=str(e))
            raise ExternalAPIError(f"Reasoning engine call failed: {e}", service=SERVICE_NAME)

        circuit.record_success()
        logger.info(
            "reasoning_engine_completed",
            protocol_id=protocol.id,
            duration_ms=int((datetime.utcnow() - start_time).total_seconds() * 1000)
        )
        return protocol.model_copy(update=FUSION_OWNED_FIELDS)

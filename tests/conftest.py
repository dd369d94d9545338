import base64

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from typing import AsyncGenerator

from src.core.exceptions import circuit_breakers
from src.main import app
from tests.factories import png_bytes


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    # Trigger lifespan events (startup/shutdown)
    # app.router.lifespan_context(app) returns an async context manager
    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    for breaker in circuit_breakers.values():
        breaker.reset()
    yield


@pytest.fixture
def image_bytes() -> bytes:
    return png_bytes()


@pytest.fixture
def image_base64(image_bytes) -> str:
    return base64.b64encode(image_bytes).decode("utf-8")

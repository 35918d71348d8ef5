"""Fixtures for API tests."""

from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from citeguard.api.v1.dependencies import get_verdict_provider
from citeguard.database.session import get_db, get_session_factory
from citeguard.main import app


@pytest_asyncio.fixture
async def client(session_factory, fake_provider) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app, the test database and the scripted provider."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_verdict_provider] = lambda: fake_provider

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def imported(client, sample_payload) -> dict:
    """The sample document imported through the API."""
    response = await client.post(
        "/api/v1/documents",
        json={"document": sample_payload["document"], "sourceFileId": "file-001"},
    )
    assert response.status_code == 201
    return response.json()

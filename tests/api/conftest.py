"""Fixtures for API tests."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from eventwatch.api.main import create_app


@pytest.fixture
def service(service_factory):
    return service_factory()


@pytest.fixture
def app(service):
    return create_app(monitoring_service=service)


@pytest_asyncio.fixture
async def client(app):
    """HTTP client talking to the app in-process."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from metacrud.core.database.storage import Storage
from metacrud.core.registry import EntityRegistry
from metacrud.server.core.config import Settings
from metacrud.server.main import create_app

from ..schema_fixtures import ADMIN_LEVEL, USER_LEVEL


@pytest.fixture
def app_settings(test_config, storage: Storage) -> Settings:
    return Settings(
        database_url=str(storage.engine.url),
        api_tokens={test_config.admin_token: ADMIN_LEVEL, test_config.user_token: USER_LEVEL},
    )


@pytest.fixture
def admin_headers(test_config) -> dict:
    return {"Authorization": f"Bearer {test_config.admin_token}"}


@pytest.fixture
def user_headers(test_config) -> dict:
    return {"Authorization": f"Bearer {test_config.user_token}"}


@pytest_asyncio.fixture(name="client")
async def client_fixture(
    registry: EntityRegistry, storage: Storage, app_settings: Settings
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client on an application wired to the fixture registry and storage."""
    app = create_app(registry=registry, storage=storage, app_settings=app_settings)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://localhost") as client:
        yield client

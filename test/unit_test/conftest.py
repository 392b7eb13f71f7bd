from typing import Iterator

import pytest

from metacrud.core.database.storage import Storage
from metacrud.core.registry import EntityRegistry
from metacrud.core.schema import ApiSchema

from .schema_fixtures import build_schema, create_tables


@pytest.fixture
def api_schema() -> ApiSchema:
    return build_schema()


@pytest.fixture
def registry(api_schema: ApiSchema) -> EntityRegistry:
    return EntityRegistry.from_schema(api_schema)


@pytest.fixture
def storage(tmp_path) -> Iterator[Storage]:
    """Storage on a fresh SQLite file holding the fixture tables."""
    storage = Storage.from_url(f"sqlite:///{tmp_path / 'entities.db'}")
    create_tables(storage.engine)
    yield storage
    storage.dispose()

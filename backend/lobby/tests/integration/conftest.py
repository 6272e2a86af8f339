"""App and client fixtures for lobby integration tests."""

import asyncio

import pytest
from starlette.testclient import TestClient

from lobby.server.app import create_app
from lobby.server.settings import LobbyServerSettings
from lobby.tests.helpers import CHARACTER_IDS, make_character
from shared.dal.memory_store import MemoryStore
from shared.dal.store import Table


async def _seed_characters(store: MemoryStore) -> None:
    for index, character_id in enumerate(CHARACTER_IDS):
        await store.insert(Table.CHARACTERS, make_character(character_id, index).model_dump(mode="json"))


@pytest.fixture
def app_store():
    store = MemoryStore()
    asyncio.run(_seed_characters(store))
    return store


@pytest.fixture
def app(app_store):
    settings = LobbyServerSettings(database_path=":memory:", cors_origins=["http://localhost:3000"])
    return create_app(settings=settings, store=app_store)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c

"""Shared fixtures for lobby tests."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import AsyncMock

import pytest

from lobby.services import create_services
from lobby.tests.helpers import CHARACTER_IDS, ROOM_CODE, make_character
from shared.dal.memory_store import MemoryStore
from shared.dal.store import Table

if TYPE_CHECKING:
    from lobby.services import RoomServices


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def leaderboard():
    return AsyncMock()


@pytest.fixture
async def services(store, leaderboard) -> RoomServices:
    for index, character_id in enumerate(CHARACTER_IDS):
        await store.insert(Table.CHARACTERS, make_character(character_id, index).model_dump(mode="json"))
    return create_services(store, leaderboard=leaderboard)


@pytest.fixture
async def room(services):
    return await services.lifecycle.create_room(ROOM_CODE)


@pytest.fixture
async def full_room(services, room):  # noqa: ARG001
    await services.membership.join_room(ROOM_CODE, "P1", "Alice")
    return await services.membership.join_room(ROOM_CODE, "P2", "Bob")


@pytest.fixture
async def started_room(services, full_room):  # noqa: ARG001
    await services.pool.add_character_to_pool(ROOM_CODE, "char-x", "P1")
    await services.pool.add_character_to_pool(ROOM_CODE, "char-y", "P2")
    assert await services.picks.start_game(ROOM_CODE) is None
    return await services.lifecycle.get_room(ROOM_CODE)


@pytest.fixture
async def guessing_room(services, started_room):  # noqa: ARG001
    """P1 secretly picked char-x and P2 picked char-y; both are ready."""
    await services.picks.pick_character(ROOM_CODE, "P1", "char-x", is_ready=True)
    return await services.picks.pick_character(ROOM_CODE, "P2", "char-y", is_ready=True)

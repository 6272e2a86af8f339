"""Fixtures for guess engine tests."""

from unittest.mock import AsyncMock

import pytest

from game.guesses.engine import GuessResolutionEngine
from game.tests.helpers.rooms import make_guessing_room
from shared.dal.memory_store import MemoryStore
from shared.dal.rooms import RoomRepository


@pytest.fixture
def rooms():
    return RoomRepository(MemoryStore())


@pytest.fixture
def leaderboard():
    return AsyncMock()


@pytest.fixture
def engine(rooms, leaderboard):
    return GuessResolutionEngine(rooms, leaderboard)


@pytest.fixture
async def guessing_room(rooms):
    """A stored room in the guessing phase: P1 holds char-x, P2 holds char-y."""
    return await rooms.insert(make_guessing_room())

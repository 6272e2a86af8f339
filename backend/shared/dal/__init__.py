"""Data access layer: store contract, change feed, and persistence models."""

from shared.dal.catalog import CharacterCatalog, StoreCharacterCatalog
from shared.dal.memory_store import MemoryStore
from shared.dal.models import Character, CharacterType, PoolCharacter, Room
from shared.dal.rooms import RoomRepository
from shared.dal.store import (
    ChangeEvent,
    ChangeType,
    DuplicateKeyError,
    NotFoundError,
    StaleVersionError,
    Store,
    StoreError,
    StoreUnavailableError,
    Table,
)

__all__ = [
    "ChangeEvent",
    "ChangeType",
    "Character",
    "CharacterCatalog",
    "CharacterType",
    "DuplicateKeyError",
    "MemoryStore",
    "NotFoundError",
    "PoolCharacter",
    "Room",
    "RoomRepository",
    "StaleVersionError",
    "Store",
    "StoreCharacterCatalog",
    "StoreError",
    "StoreUnavailableError",
    "Table",
]

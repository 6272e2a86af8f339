"""Read-only view of the character catalog."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from shared.dal.models import Character
from shared.dal.store import Table

if TYPE_CHECKING:
    from collections.abc import Iterable

    from shared.dal.store import Store


class CharacterCatalog(ABC):
    """Registry of user-authored characters, independent of rooms."""

    @abstractmethod
    async def list_characters(self) -> list[Character]: ...

    async def get_characters(self, character_ids: Iterable[str]) -> dict[str, Character]:
        wanted = set(character_ids)
        return {c.id: c for c in await self.list_characters() if c.id in wanted}

    async def get_character(self, character_id: str) -> Character | None:
        return (await self.get_characters([character_id])).get(character_id)


class StoreCharacterCatalog(CharacterCatalog):
    """Catalog backed by the store's ``characters`` table, newest first."""

    def __init__(self, store: Store) -> None:
        self._store = store

    async def list_characters(self) -> list[Character]:
        records = await self._store.select(Table.CHARACTERS)
        characters = [Character.model_validate(r) for r in records]
        return sorted(characters, key=lambda c: c.created_at, reverse=True)

    async def get_character(self, character_id: str) -> Character | None:
        record = await self._store.get(Table.CHARACTERS, {"id": character_id})
        return Character.model_validate(record) if record is not None else None

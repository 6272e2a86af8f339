"""Leaderboard sinks fed with finished match results.

The leaderboard is an eventually-updated read model: a failed update is
logged and never affects the match result already stored on the room.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import httpx
import structlog

from shared.dal.models import LeaderboardEntry, utcnow
from shared.dal.store import DuplicateKeyError, StaleVersionError, Table

if TYPE_CHECKING:
    from shared.dal.store import Store

logger = structlog.get_logger()

DEFAULT_TIMEOUT_SECONDS = 5.0
_MAX_INCREMENT_ATTEMPTS = 5


class LeaderboardError(Exception):
    pass


class LeaderboardSink(Protocol):
    """Receives one result per finished match."""

    async def record_match_result(self, winner_id: str, loser_id: str, room_id: str) -> None: ...


class HttpLeaderboardSink:
    """POSTs match results to an external leaderboard endpoint."""

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def record_match_result(self, winner_id: str, loser_id: str, room_id: str) -> None:
        try:
            response = await self._client.post(
                self._url,
                json={"winner_id": winner_id, "loser_id": loser_id, "room_id": room_id},
            )
        except httpx.HTTPError as exc:
            raise LeaderboardError(f"Leaderboard request failed: {exc}") from exc
        if response.is_error:
            raise LeaderboardError(f"Leaderboard update rejected with status {response.status_code}")

    async def aclose(self) -> None:
        await self._client.aclose()


class StoreLeaderboardSink:
    """Keeps per-user games-played and win counters in the store's ``leaderboard`` table."""

    def __init__(self, store: Store) -> None:
        self._store = store

    async def record_match_result(self, winner_id: str, loser_id: str, room_id: str) -> None:
        await self._increment(winner_id, won=True)
        await self._increment(loser_id, won=False)
        logger.info("leaderboard updated", room_id=room_id, winner_id=winner_id, loser_id=loser_id)

    async def get_entry(self, user_id: str) -> LeaderboardEntry | None:
        record = await self._store.get(Table.LEADERBOARD, {"user_id": user_id})
        return LeaderboardEntry.model_validate(record) if record is not None else None

    async def _increment(self, user_id: str, *, won: bool) -> None:
        for _ in range(_MAX_INCREMENT_ATTEMPTS):
            entry = await self.get_entry(user_id)
            try:
                if entry is None:
                    fresh = LeaderboardEntry(user_id=user_id, games_played=1, wins=int(won))
                    await self._store.insert(Table.LEADERBOARD, fresh.model_dump(mode="json"))
                else:
                    await self._store.update(
                        Table.LEADERBOARD,
                        {"user_id": user_id},
                        {
                            "games_played": entry.games_played + 1,
                            "wins": entry.wins + int(won),
                            "updated_at": utcnow().isoformat(),
                        },
                        expected_version=entry.version,
                    )
            except (DuplicateKeyError, StaleVersionError):
                continue
            return
        raise LeaderboardError(f"Could not update leaderboard entry for {user_id}")


async def report_match_result(sink: LeaderboardSink, winner_id: str, loser_id: str, room_id: str) -> bool:
    """Forward a finished match to the sink. Failures are logged, never raised."""
    log = logger.bind(room_id=room_id, winner_id=winner_id, loser_id=loser_id)
    try:
        await sink.record_match_result(winner_id, loser_id, room_id)
    except Exception:
        log.exception("leaderboard update failed")
        return False
    log.info("match result reported")
    return True

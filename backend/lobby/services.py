"""Wiring of the room coordination components around one store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from game.guesses.engine import GuessResolutionEngine
from lobby.rooms.lifecycle import RoomLifecycleManager
from lobby.rooms.membership import MembershipCoordinator
from lobby.rooms.notifications import ChangeNotificationBridge
from lobby.rooms.picks import PickCoordinator
from lobby.rooms.pool import CharacterPoolManager
from shared.dal.catalog import CharacterCatalog, StoreCharacterCatalog
from shared.dal.rooms import DEFAULT_MAX_WRITE_ATTEMPTS, RoomRepository
from shared.leaderboard import LeaderboardSink, StoreLeaderboardSink

if TYPE_CHECKING:
    from shared.dal.store import Store


@dataclass(frozen=True)
class RoomServices:
    store: Store
    catalog: CharacterCatalog
    leaderboard: LeaderboardSink
    lifecycle: RoomLifecycleManager
    membership: MembershipCoordinator
    pool: CharacterPoolManager
    picks: PickCoordinator
    guesses: GuessResolutionEngine
    notifications: ChangeNotificationBridge


def create_services(
    store: Store,
    leaderboard: LeaderboardSink | None = None,
    catalog: CharacterCatalog | None = None,
    max_write_attempts: int = DEFAULT_MAX_WRITE_ATTEMPTS,
) -> RoomServices:
    """Build every component over ``store``. Collaborators default to store-backed ones."""
    rooms = RoomRepository(store, max_attempts=max_write_attempts)
    catalog = catalog or StoreCharacterCatalog(store)
    leaderboard = leaderboard or StoreLeaderboardSink(store)
    pool = CharacterPoolManager(rooms, catalog)
    return RoomServices(
        store=store,
        catalog=catalog,
        leaderboard=leaderboard,
        lifecycle=RoomLifecycleManager(rooms),
        membership=MembershipCoordinator(rooms, leaderboard),
        pool=pool,
        picks=PickCoordinator(rooms, pool),
        guesses=GuessResolutionEngine(rooms, leaderboard),
        notifications=ChangeNotificationBridge(store, pool),
    )

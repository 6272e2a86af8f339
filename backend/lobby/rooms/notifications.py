"""Bridge from store change events to room and pool listeners."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
from typing import TYPE_CHECKING

import structlog

from shared.dal.models import Room
from shared.dal.store import ChangeType, Table

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from lobby.rooms.pool import CharacterPoolManager
    from shared.dal.feed import Subscription
    from shared.dal.models import PoolCharacter
    from shared.dal.store import ChangeEvent, Store

    type RoomListener = Callable[[Room | None], Awaitable[None] | None]
    type PoolListener = Callable[[list[PoolCharacter]], Awaitable[None] | None]

logger = structlog.get_logger()

_POOL_EVENTS = frozenset({ChangeType.INSERT, ChangeType.DELETE})


class FeedHandle:
    """A running listener. ``close()`` stops delivery and waits for the pump to exit."""

    def __init__(self, subscription: Subscription, task: asyncio.Task[None]) -> None:
        self._subscription = subscription
        self._task = task

    @property
    def active(self) -> bool:
        return not self._task.done()

    async def close(self) -> None:
        self._subscription.close()
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task


class ChangeNotificationBridge:
    """Republishes row-level changes to interested listeners.

    Events reach a listener in store commit order. Room listeners get the full
    snapshot on insert and update and None on delete; listeners should always
    rebuild from the latest snapshot. Pool listeners get the freshly
    re-fetched, hydrated pool on every pool change rather than the row diff.
    """

    def __init__(self, store: Store, pool: CharacterPoolManager) -> None:
        self._store = store
        self._pool = pool

    def subscribe_to_room(self, code: str, on_change: RoomListener) -> FeedHandle:
        subscription = self._store.subscribe(Table.ROOMS, {"id": code})

        async def _deliver(event: ChangeEvent) -> None:
            room = None if event.type == ChangeType.DELETE else Room.model_validate(event.record)
            await _call(on_change, room)

        return self._start(subscription, _deliver, room_id=code, feed="room")

    def subscribe_to_character_pool(
        self,
        code: str,
        on_change: PoolListener,
        *,
        with_snapshot: bool = False,
    ) -> FeedHandle:
        """Listen for pool changes.

        With ``with_snapshot`` the current pool is delivered first, fetched by
        the same task that delivers changes, so it can never arrive after a
        newer one.
        """
        subscription = self._store.subscribe(Table.POOL, {"room_id": code}, _POOL_EVENTS)

        async def _publish() -> None:
            await _call(on_change, await self._pool.get_character_pool(code))

        async def _deliver(_event: ChangeEvent) -> None:
            await _publish()

        return self._start(
            subscription,
            _deliver,
            snapshot=_publish if with_snapshot else None,
            room_id=code,
            feed="pool",
        )

    def _start(
        self,
        subscription: Subscription,
        deliver: Callable[[ChangeEvent], Awaitable[None]],
        snapshot: Callable[[], Awaitable[None]] | None = None,
        **context: str,
    ) -> FeedHandle:
        log = logger.bind(**context)

        async def _pump() -> None:
            if snapshot is not None:
                try:
                    await snapshot()
                except Exception:
                    log.exception("snapshot listener failed")
            async for event in subscription:
                try:
                    await deliver(event)
                except Exception:
                    log.exception("change listener failed", change=event.type)

        log.debug("listener subscribed")
        return FeedHandle(subscription, asyncio.create_task(_pump()))


async def _call[T](listener: Callable[[T], Awaitable[None] | None], value: T) -> None:
    result = listener(value)
    if inspect.isawaitable(result):
        await result

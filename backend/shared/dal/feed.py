"""In-process change feed shared by the store backends."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import structlog

from shared.dal.store import matches

if TYPE_CHECKING:
    from collections.abc import Mapping

    from shared.dal.store import ChangeEvent, ChangeType, Table

logger = structlog.get_logger()


class Subscription:
    """Ordered stream of change events for one table and filter.

    Iterate with ``async for``; iteration ends after ``close()``. Events are
    delivered in commit order and never coalesced.
    """

    def __init__(
        self,
        feed: ChangeFeed,
        table: Table,
        where: Mapping[str, Any] | None,
        events: frozenset[ChangeType],
    ) -> None:
        self._feed = feed
        self.table = table
        self.where = dict(where or {})
        self.events = events
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def wants(self, event: ChangeEvent) -> bool:
        return event.table == self.table and event.type in self.events and matches(event.record, self.where)

    def push(self, event: ChangeEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._feed.unsubscribe(self)
        self._queue.put_nowait(None)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> ChangeEvent:
        event = await self._queue.get()
        if event is None:
            raise StopAsyncIteration
        return event


class ChangeFeed:
    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        table: Table,
        where: Mapping[str, Any] | None,
        events: frozenset[ChangeType],
    ) -> Subscription:
        subscription = Subscription(self, table, where, events)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def publish(self, event: ChangeEvent) -> None:
        for subscription in list(self._subscriptions):
            if subscription.wants(event):
                subscription.push(event)
        logger.debug("change published", table=event.table, change=event.type)

    def close_all(self) -> None:
        for subscription in list(self._subscriptions):
            subscription.close()

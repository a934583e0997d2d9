"""
Change Feed

Registry of (table, filter) -> callbacks with an explicit subscribe/unsubscribe
lifecycle. Writes publish row-level ChangeEvents here after commit.
"""

import asyncio
import inspect
import itertools
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol, Tuple, Union

from fitsocial.core.logging import get_logger
from fitsocial.schemas.realtime import ChangeEvent

logger = get_logger(__name__)

ChangeCallback = Callable[[ChangeEvent], Union[None, Awaitable[None]]]
FilterKey = Tuple[Tuple[str, Any], ...]


class EventRelay(Protocol):
    async def forward(self, event: ChangeEvent) -> None: ...


def _freeze(value: Any) -> Any:
    if isinstance(value, (list, tuple, set, frozenset)):
        return frozenset(value)
    return value


def freeze_filter(where: Optional[Mapping[str, Any]]) -> FilterKey:
    if not where:
        return ()
    return tuple(sorted((column, _freeze(value)) for column, value in where.items()))


def row_matches(row: Mapping[str, Any], key: FilterKey) -> bool:
    """Equality match per column; a collection value means membership."""
    for column, expected in key:
        actual = row.get(column)
        if isinstance(expected, frozenset):
            if actual not in expected:
                return False
        elif actual != expected:
            return False
    return True


class Subscription:
    """Handle returned by ChangeFeed.subscribe"""

    def __init__(self, feed: "ChangeFeed", handle_id: int, table: str, key: FilterKey):
        self._feed = feed
        self.handle_id = handle_id
        self.table = table
        self.key = key

    @property
    def active(self) -> bool:
        return self._feed.is_active(self)

    def unsubscribe(self) -> None:
        self._feed.unsubscribe(self)


class ChangeFeed:
    def __init__(self) -> None:
        # (table, filter) -> handle_id -> callback
        self._registry: Dict[Tuple[str, FilterKey], Dict[int, ChangeCallback]] = {}
        self._ids = itertools.count(1)
        self._relay: Optional[EventRelay] = None

    def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        where: Optional[Mapping[str, Any]] = None,
    ) -> Subscription:
        key = freeze_filter(where)
        handle_id = next(self._ids)
        self._registry.setdefault((table, key), {})[handle_id] = callback
        logger.debug(f"Subscribed #{handle_id} to {table} {dict(key)}")
        return Subscription(self, handle_id, table, key)

    def unsubscribe(self, subscription: Subscription) -> None:
        slot = (subscription.table, subscription.key)
        callbacks = self._registry.get(slot)
        if not callbacks:
            return
        callbacks.pop(subscription.handle_id, None)
        # Clean up empty slots
        if not callbacks:
            del self._registry[slot]
        logger.debug(f"Unsubscribed #{subscription.handle_id} from {subscription.table}")

    def is_active(self, subscription: Subscription) -> bool:
        callbacks = self._registry.get((subscription.table, subscription.key), {})
        return subscription.handle_id in callbacks

    def subscriber_count(self, table: Optional[str] = None) -> int:
        return sum(
            len(callbacks)
            for (slot_table, _), callbacks in self._registry.items()
            if table is None or slot_table == table
        )

    def attach_relay(self, relay: Optional[EventRelay]) -> None:
        self._relay = relay

    async def publish(self, event: ChangeEvent) -> None:
        """Deliver locally, then hand the event to the relay for other processes."""
        await self.deliver(event)
        if self._relay is not None:
            try:
                await self._relay.forward(event)
            except Exception as e:
                logger.error(f"Relay forward failed for {event.table} {event.event_type}: {e}")

    async def deliver(self, event: ChangeEvent) -> None:
        """Deliver to matching local subscribers only."""
        # Snapshot so callbacks may subscribe/unsubscribe while we iterate
        targets = [
            callback
            for (table, key), callbacks in list(self._registry.items())
            if table == event.table and row_matches(event.row, key)
            for callback in list(callbacks.values())
        ]
        if not targets:
            return

        results = await asyncio.gather(
            *(self._invoke(callback, event) for callback in targets),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error(f"Change callback failed for {event.table} {event.event_type}: {result}")

    @staticmethod
    async def _invoke(callback: ChangeCallback, event: ChangeEvent) -> None:
        result = callback(event)
        if inspect.isawaitable(result):
            await result


# Process-wide feed
change_feed = ChangeFeed()

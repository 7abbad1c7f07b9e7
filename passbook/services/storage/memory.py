"""
In-Memory Storage Implementation

The reference implementation of the key-value interface. Used by the
test suite and for single-process runs where persistence is not needed.

Each operation holds one asyncio lock for its whole duration, which gives
the single-item atomicity the interface promises (and nothing more).

TTL purge is NOT applied on read. Like a managed store, expired items
stay visible until purge_expired() sweeps them.
"""

import asyncio
import copy
import time
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, Optional

from passbook.services.storage.interface import (
    PK,
    SK,
    TTL,
    Item,
    Key,
    KeyValueStore,
    Number,
    QueryPage,
)


def add_numbers(current: Any, delta: Number) -> Number:
    """Add a delta to a stored numeric value (missing counts as zero)."""
    if current is None:
        current = 0
    if isinstance(current, int) and isinstance(delta, int):
        return current + delta
    return Decimal(str(current)) + Decimal(str(delta))


def paginate(
    items: Iterable[Item],
    pk: str,
    sk_prefix: str,
    limit: int,
    exclusive_start_key: Optional[Key] = None,
    reverse: bool = False,
) -> QueryPage:
    """
    Select one page of a partition the way a sorted-key store would.

    last_evaluated_key is only set when at least one more item follows,
    so an empty key reliably means "last page".
    """
    matching = sorted(
        (item for item in items
         if item[PK] == pk and item[SK].startswith(sk_prefix)),
        key=lambda item: item[SK],
        reverse=reverse,
    )

    if exclusive_start_key:
        start_sk = exclusive_start_key.get(SK, "")
        if reverse:
            matching = [item for item in matching if item[SK] < start_sk]
        else:
            matching = [item for item in matching if item[SK] > start_sk]

    page = matching[:max(limit, 0)]
    last_key = None
    if page and len(matching) > len(page):
        last_key = {PK: page[-1][PK], SK: page[-1][SK]}

    return QueryPage(items=page, last_evaluated_key=last_key)


class InMemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed key-value store."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._items: dict[tuple[str, str], Item] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    def __len__(self) -> int:
        return len(self._items)

    async def get(self, pk: str, sk: str) -> Optional[Item]:
        async with self._lock:
            item = self._items.get((pk, sk))
            return copy.deepcopy(item) if item is not None else None

    async def put(self, pk: str, sk: str, attributes: Mapping[str, Any]) -> None:
        async with self._lock:
            self._items[(pk, sk)] = self._make_item(pk, sk, attributes)

    async def delete(self, pk: str, sk: str) -> Optional[Item]:
        async with self._lock:
            return self._items.pop((pk, sk), None)

    async def increment(
        self,
        pk: str,
        sk: str,
        deltas: Mapping[str, Number],
        set_fields: Optional[Mapping[str, Any]] = None,
    ) -> Item:
        async with self._lock:
            item = copy.deepcopy(self._items.get((pk, sk))) or self._make_item(pk, sk, {})
            for name, delta in deltas.items():
                item[name] = add_numbers(item.get(name), delta)
            if set_fields:
                item.update(copy.deepcopy(dict(set_fields)))
            self._items[(pk, sk)] = item
            return copy.deepcopy(item)

    async def update(
        self,
        pk: str,
        sk: str,
        attributes: Mapping[str, Any],
        must_exist: bool = False,
    ) -> Optional[Item]:
        async with self._lock:
            existing = self._items.get((pk, sk))
            if existing is None and must_exist:
                return None

            previous = copy.deepcopy(existing) if existing is not None else None
            item = existing if existing is not None else self._make_item(pk, sk, {})
            item.update(copy.deepcopy(dict(attributes)))
            self._items[(pk, sk)] = item
            return previous

    async def query(
        self,
        pk: str,
        sk_prefix: str,
        limit: int,
        exclusive_start_key: Optional[Key] = None,
        reverse: bool = False,
    ) -> QueryPage:
        async with self._lock:
            page = paginate(
                self._items.values(), pk, sk_prefix, limit, exclusive_start_key, reverse
            )
            page.items = copy.deepcopy(page.items)
            return page

    async def scan(self, predicate: Callable[[Item], bool]) -> list[Item]:
        async with self._lock:
            return [copy.deepcopy(item) for item in self._items.values() if predicate(item)]

    async def purge_expired(self) -> int:
        """
        Remove every item whose ttl has passed.

        Stands in for the background sweeper of a managed store.

        Returns:
            Number of items removed
        """
        async with self._lock:
            now = self._clock()
            expired = [
                key for key, item in self._items.items()
                if item.get(TTL) is not None and item[TTL] <= now
            ]
            for key in expired:
                del self._items[key]
            return len(expired)

    @staticmethod
    def _make_item(pk: str, sk: str, attributes: Mapping[str, Any]) -> Item:
        item = copy.deepcopy(dict(attributes))
        item[PK] = pk
        item[SK] = sk
        return item

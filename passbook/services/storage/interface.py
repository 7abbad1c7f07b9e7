"""
Abstract Key-Value Storage Interface

DESIGN DECISION: The ledger only ever talks to this interface.
This allows us to:
1. Run everything in memory for tests and single-process use
2. Keep a Google Sheets backend for a spreadsheet the user can open
3. Swap in a managed key-value database later

Items are addressed by a composite key: partition key (pk) + sort key (sk).
Every operation touches exactly ONE item atomically. There are no
multi-item transactions; callers order their writes instead.

Items carrying a numeric `ttl` attribute (epoch seconds) are purged by
the store eventually, not at the moment they expire. Readers that care
about expiry must check `ttl` themselves.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional, Union


Item = dict[str, Any]
Key = dict[str, str]
Number = Union[int, Decimal]

PK = "pk"
SK = "sk"
TTL = "ttl"


@dataclass
class QueryPage:
    """One page of a range query."""

    items: list[Item] = field(default_factory=list)
    # Key of the last item returned when more items may follow, else None
    last_evaluated_key: Optional[Key] = None


class KeyValueStore(ABC):
    """
    Abstract interface for the key-value store.

    Any storage implementation must implement these methods.
    Items returned always include their `pk` and `sk` attributes.
    """

    @abstractmethod
    async def get(self, pk: str, sk: str) -> Optional[Item]:
        """
        Point read.

        Returns:
            The item, or None if absent
        """
        pass

    @abstractmethod
    async def put(self, pk: str, sk: str, attributes: Mapping[str, Any]) -> None:
        """
        Write an item, replacing any existing one entirely.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, pk: str, sk: str) -> Optional[Item]:
        """
        Remove an item.

        Returns:
            The removed item (read and removed atomically), or None if absent
        """
        pass

    @abstractmethod
    async def increment(
        self,
        pk: str,
        sk: str,
        deltas: Mapping[str, Number],
        set_fields: Optional[Mapping[str, Any]] = None,
    ) -> Item:
        """
        Atomically add signed deltas to numeric attributes.

        Missing attributes count as zero and a missing item is created.
        `set_fields` are overwritten in the same atomic step.

        Returns:
            The item after the update
        """
        pass

    @abstractmethod
    async def update(
        self,
        pk: str,
        sk: str,
        attributes: Mapping[str, Any],
        must_exist: bool = False,
    ) -> Optional[Item]:
        """
        Atomically overwrite some attributes, leaving the others alone.

        Args:
            must_exist: When True and the item is absent, nothing is written

        Returns:
            The item as it was before the update, or None if it was absent
        """
        pass

    @abstractmethod
    async def query(
        self,
        pk: str,
        sk_prefix: str,
        limit: int,
        exclusive_start_key: Optional[Key] = None,
        reverse: bool = False,
    ) -> QueryPage:
        """
        Range read within one partition, ordered by sort key.

        Args:
            pk: Partition to read
            sk_prefix: Only sort keys starting with this prefix
            limit: Maximum items in the page
            exclusive_start_key: Resume after this key (from a previous page)
            reverse: Descending sort-key order when True

        Returns:
            A page; last_evaluated_key is set when more items may follow
        """
        pass

    @abstractmethod
    async def scan(self, predicate: Callable[[Item], bool]) -> list[Item]:
        """
        Read every item matching the predicate, in no particular order.
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass

"""
Storage Services Package

Provides the abstract key-value interface and its implementations.
The in-memory store is the default; Google Sheets is the persistent option.
"""

from passbook.services.storage.interface import (
    ConnectionError,
    Item,
    Key,
    KeyValueStore,
    QueryPage,
    StorageError,
)
from passbook.services.storage.memory import InMemoryKeyValueStore
from passbook.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsKeyValueStore,
)

__all__ = [
    # Interface
    "Item",
    "Key",
    "KeyValueStore",
    "QueryPage",
    # Exceptions
    "ConnectionError",
    "StorageError",
    # Implementations
    "GoogleSheetsClient",
    "GoogleSheetsKeyValueStore",
    "InMemoryKeyValueStore",
]

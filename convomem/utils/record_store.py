"""
Key/value record store contract and the in-memory implementation.

All engine state (records, profiles, index lists, session history) is
serialized to opaque strings and kept under namespaced keys through this
contract. Adapters own durability and timeouts; the engine only calls
get/put/delete.
"""

import threading
import time
from typing import Callable, Dict, Optional, Protocol, Tuple, runtime_checkable

from .config import StoreConfig
from .logging_config import get_logger

logger = get_logger(__name__)


class RecordStoreError(Exception):
    """Custom exception for record store errors."""
    pass


@runtime_checkable
class RecordStore(Protocol):
    """Uniform key/value interface the memory engine is built against."""

    def get(self, key: str) -> Optional[str]:
        """Return the stored string, or None if absent or expired."""

    def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        """Store a string, optionally expiring after ttl_seconds."""

    def delete(self, key: str) -> None:
        """Remove a key; deleting an absent key is not an error."""


class InMemoryRecordStore:
    """Dict-backed store with lazy TTL expiry, for tests and single-process use."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._items: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            value, expires_at = item
            if expires_at is not None and expires_at <= self._clock():
                del self._items[key]
                return None
            return value

    def put(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        if not isinstance(value, str):
            raise RecordStoreError(f'Store values must be strings, got {type(value).__name__}')

        expires_at = self._clock() + ttl_seconds if ttl_seconds else None
        with self._lock:
            self._items[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def keys(self, prefix: str = '') -> list:
        """Live keys starting with prefix (test and debugging helper)."""
        now = self._clock()
        with self._lock:
            return sorted(k for k, (_, exp) in self._items.items()
                          if k.startswith(prefix) and (exp is None or exp > now))

    def __len__(self) -> int:
        return len(self.keys())

    def health_check(self) -> bool:
        return True


def create_record_store(store_config: Optional[StoreConfig] = None) -> RecordStore:
    """Build the store adapter selected by configuration.

    Args:
        store_config: StoreConfig instance, uses default if None

    Returns:
        A RecordStore implementation

    Raises:
        RecordStoreError: If the configured backend is unknown
    """
    if store_config is None:
        from .config import config as default_config
        store_config = default_config.store

    backend = store_config.backend
    if backend == 'memory':
        logger.info('Using in-memory record store')
        return InMemoryRecordStore()
    if backend == 'dynamodb':
        from .dynamodb_store import DynamoDBRecordStore
        return DynamoDBRecordStore(store_config)

    raise RecordStoreError(f'Unsupported record store backend: {backend}')

"""Key-value stores for clients, tokens and sessions.

Components depend on the ``KeyValueStore`` protocol so the in-memory
implementation can be swapped for an external one. Each operation is
atomic for its key; unrelated keys never contend on the same lock unless
they hash to the same stripe.
"""

import threading
from typing import Callable, Generic, Iterator, Optional, Protocol, TypeVar

V = TypeVar("V")


class KeyValueStore(Protocol[V]):
    """Operations the gateway needs from a store."""

    def get(self, key: str) -> Optional[V]: ...

    def put(self, key: str, value: V) -> None: ...

    def put_if_absent(self, key: str, value: V) -> bool: ...

    def remove(self, key: str) -> Optional[V]: ...

    def remove_if(self, key: str, predicate: Callable[[V], bool]) -> bool: ...

    def replace(self, key: str, update: Callable[[V], V]) -> Optional[V]: ...

    def keys(self) -> list[str]: ...

    def values(self) -> list[V]: ...

    def __len__(self) -> int: ...


class InMemoryStore(Generic[V]):
    """
    Process-local store with lock striping.

    ``remove`` and ``remove_if`` never raise for a missing key, so racing
    "observe expired, then evict" paths are safe.
    """

    def __init__(self, stripes: int = 16) -> None:
        if stripes < 1:
            raise ValueError("stripes must be positive")
        self._data: dict[str, V] = {}
        self._locks = [threading.Lock() for _ in range(stripes)]

    def _lock_for(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def get(self, key: str) -> Optional[V]:
        return self._data.get(key)

    def put(self, key: str, value: V) -> None:
        with self._lock_for(key):
            self._data[key] = value

    def put_if_absent(self, key: str, value: V) -> bool:
        """Insert only when the key is free. Returns True if inserted."""
        with self._lock_for(key):
            if key in self._data:
                return False
            self._data[key] = value
            return True

    def remove(self, key: str) -> Optional[V]:
        with self._lock_for(key):
            return self._data.pop(key, None)

    def remove_if(self, key: str, predicate: Callable[[V], bool]) -> bool:
        """Remove the value if it exists and satisfies ``predicate``."""
        with self._lock_for(key):
            value = self._data.get(key)
            if value is None or not predicate(value):
                return False
            del self._data[key]
            return True

    def replace(self, key: str, update: Callable[[V], V]) -> Optional[V]:
        """Atomically swap the value for ``update(value)`` if present."""
        with self._lock_for(key):
            value = self._data.get(key)
            if value is None:
                return None
            new_value = update(value)
            self._data[key] = new_value
            return new_value

    def keys(self) -> list[str]:
        # Snapshot; the dict may change while callers iterate
        return list(self._data.keys())

    def values(self) -> list[V]:
        return list(self._data.values())

    def __iter__(self) -> Iterator[str]:
        return iter(self.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


def sweep(store: KeyValueStore[V], predicate: Callable[[V], bool]) -> int:
    """Remove every value matching ``predicate``. Returns the count removed."""
    removed = 0
    for key in store.keys():
        if store.remove_if(key, predicate):
            removed += 1
    return removed

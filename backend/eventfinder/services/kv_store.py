"""Small thread-safe key-value store for ephemeral, rebuildable state."""
import time
from collections import OrderedDict
from threading import Lock
from typing import Any, Callable, Optional


class KeyValueStore:
    """In-process key -> value map with an optional per-entry lifetime.

    Nothing stored here is authoritative; losing it only costs a recomputation.
    With ``max_entries`` set, the least recently used entries are evicted.
    """

    def __init__(
        self,
        default_ttl_seconds: float = 0,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 0,
    ):
        self._lock = Lock()
        self._items: "OrderedDict[str, tuple[Any, Optional[float]]]" = OrderedDict()
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self.max_entries = max_entries

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return default
            value, expires_at = item
            if expires_at is not None and expires_at <= self._clock():
                del self._items[key]
                return default
            self._items.move_to_end(key)
            return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        expires_at = self._clock() + ttl if ttl and ttl > 0 else None
        with self._lock:
            self._items[key] = (value, expires_at)
            self._items.move_to_end(key)
            if self.max_entries > 0:
                while len(self._items) > self.max_entries:
                    self._items.popitem(last=False)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._items.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

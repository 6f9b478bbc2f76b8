"""Bounded in-memory cache of parsed analysis files keyed by student number."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Tuple

Records = List[Dict[str, Any]]


class ResultCache:
    """LRU cache with an optional time-to-live.

    ``get``/``put``/``invalidate`` are the only operations callers should rely
    on; the stored list is handed back as-is so positional indexes stay stable
    between the listing and detail endpoints.
    """

    def __init__(
        self,
        max_entries: int = 256,
        ttl_seconds: float | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Records]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, stuno: str) -> Records | None:
        with self._lock:
            entry = self._entries.get(stuno)
            if entry is None:
                return None
            stored_at, records = entry
            if self._expired(stored_at):
                del self._entries[stuno]
                return None
            self._entries.move_to_end(stuno)
            return records

    def put(self, stuno: str, records: Records) -> None:
        with self._lock:
            self._entries[stuno] = (self._clock(), records)
            self._entries.move_to_end(stuno)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def invalidate(self, stuno: str) -> None:
        with self._lock:
            self._entries.pop(stuno, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, stuno: object) -> bool:
        return isinstance(stuno, str) and self.get(stuno) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _expired(self, stored_at: float) -> bool:
        return self.ttl_seconds is not None and self._clock() - stored_at >= self.ttl_seconds


__all__ = ["Records", "ResultCache"]

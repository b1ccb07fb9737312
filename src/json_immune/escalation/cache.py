"""Memoization of successful external repairs, keyed by input text and schema."""

from __future__ import annotations

import copy
import threading
from collections import OrderedDict
from typing import Protocol, runtime_checkable

from json_immune.utils.canonical import JSONValue


@runtime_checkable
class RepairCache(Protocol):
    def get(self, key: str) -> JSONValue | None: ...

    def put(self, key: str, value: JSONValue) -> None: ...

    def __len__(self) -> int: ...


class InMemoryRepairCache:
    """Unbounded process-local cache; values are copied on the way in and out."""

    def __init__(self) -> None:
        self._entries: dict[str, JSONValue] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> JSONValue | None:
        with self._lock:
            if key not in self._entries:
                return None
            return copy.deepcopy(self._entries[key])

    def put(self, key: str, value: JSONValue) -> None:
        with self._lock:
            self._entries[key] = copy.deepcopy(value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class BoundedRepairCache:
    """Least-recently-used cache holding at most ``max_entries`` repairs."""

    def __init__(self, max_entries: int) -> None:
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        self._max_entries = max_entries
        self._entries: OrderedDict[str, JSONValue] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def get(self, key: str) -> JSONValue | None:
        with self._lock:
            if key not in self._entries:
                return None
            self._entries.move_to_end(key)
            return copy.deepcopy(self._entries[key])

    def put(self, key: str, value: JSONValue) -> None:
        with self._lock:
            self._entries[key] = copy.deepcopy(value)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class NullRepairCache:
    """Cache that stores nothing."""

    def get(self, key: str) -> JSONValue | None:
        return None

    def put(self, key: str, value: JSONValue) -> None:
        return None

    def __len__(self) -> int:
        return 0


def build_repair_cache(*, enabled: bool = True, max_entries: int = 0) -> RepairCache:
    """Cache matching configuration: disabled, unbounded (``0``), or LRU-bounded."""

    if not enabled:
        return NullRepairCache()
    if max_entries < 0:
        raise ValueError("max_entries must be >= 0")
    if max_entries == 0:
        return InMemoryRepairCache()
    return BoundedRepairCache(max_entries)


__all__ = [
    "BoundedRepairCache",
    "InMemoryRepairCache",
    "NullRepairCache",
    "RepairCache",
    "build_repair_cache",
]

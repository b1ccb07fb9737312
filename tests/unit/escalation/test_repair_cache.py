"""Unit tests for repair memoization stores."""

from __future__ import annotations

import pytest

from json_immune.escalation.cache import (
    BoundedRepairCache,
    InMemoryRepairCache,
    NullRepairCache,
    RepairCache,
    build_repair_cache,
)


def test_values_are_copied_in_and_out() -> None:
    cache = InMemoryRepairCache()
    stored = {"value": {"a": [1]}}

    cache.put("k", stored)
    stored["value"]["a"].append(2)
    first = cache.get("k")
    assert first == {"value": {"a": [1]}}

    first["value"]["a"].append(3)  # type: ignore[index]
    assert cache.get("k") == {"value": {"a": [1]}}
    assert cache.get("missing") is None


def test_bounded_cache_evicts_least_recently_used() -> None:
    cache = BoundedRepairCache(2)
    cache.put("a", 1)
    cache.put("b", 2)
    assert cache.get("a") == 1

    cache.put("c", 3)

    assert len(cache) == 2
    assert cache.get("b") is None
    assert cache.get("a") == 1
    assert cache.get("c") == 3


def test_null_cache_stores_nothing() -> None:
    cache = NullRepairCache()
    cache.put("a", 1)

    assert cache.get("a") is None
    assert len(cache) == 0


def test_build_repair_cache_follows_settings() -> None:
    assert isinstance(build_repair_cache(enabled=False), NullRepairCache)
    assert isinstance(build_repair_cache(), InMemoryRepairCache)
    bounded = build_repair_cache(max_entries=5)
    assert isinstance(bounded, BoundedRepairCache)
    assert bounded.max_entries == 5
    assert isinstance(bounded, RepairCache)

    with pytest.raises(ValueError):
        build_repair_cache(max_entries=-1)
    with pytest.raises(ValueError):
        BoundedRepairCache(0)

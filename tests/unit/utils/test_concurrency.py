"""Unit tests for the worker pool and per-attempt deadlines."""

from __future__ import annotations

import asyncio

import pytest

from json_immune.utils.concurrency import (
    CancellationToken,
    WorkerPool,
    run_with_timeout,
)


async def test_worker_pool_keeps_input_order_and_bounds_concurrency() -> None:
    active = 0
    peak = 0

    async def work(item: int) -> int:
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.01 * (5 - item))
        active -= 1
        return item * 10

    pool: WorkerPool[int] = WorkerPool(max_concurrency=2)
    results = await pool.map(work, [1, 2, 3, 4])

    assert results == [10, 20, 30, 40]
    assert peak <= 2


async def test_worker_pool_first_failure_propagates() -> None:
    async def work(item: int) -> int:
        if item == 2:
            raise ValueError("bad item")
        await asyncio.sleep(0.01)
        return item

    pool: WorkerPool[int] = WorkerPool(max_concurrency=3)
    with pytest.raises(ValueError, match="bad item"):
        await pool.map(work, [1, 2, 3])


async def test_worker_pool_rejects_non_positive_concurrency() -> None:
    with pytest.raises(ValueError):
        WorkerPool(max_concurrency=0)


async def test_run_with_timeout_returns_result_within_deadline() -> None:
    async def quick() -> str:
        return "done"

    assert await run_with_timeout(quick(), 1.0) == "done"


async def test_run_with_timeout_cancels_the_late_attempt() -> None:
    cancelled = asyncio.Event()

    async def slow() -> str:
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return "late"

    with pytest.raises(TimeoutError):
        await run_with_timeout(slow(), 0.05)
    assert cancelled.is_set()


async def test_run_with_timeout_honours_cancellation_token() -> None:
    token = CancellationToken()
    token.cancel()

    async def never() -> None:
        await asyncio.sleep(5)

    with pytest.raises(asyncio.CancelledError):
        await run_with_timeout(never(), 1.0, cancel_token=token)


async def test_run_with_timeout_rejects_non_positive_deadline() -> None:
    async def quick() -> int:
        return 1

    with pytest.raises(ValueError):
        await run_with_timeout(quick(), 0)

"""Async primitives for bounded escalation attempts and batch runs."""

from __future__ import annotations

import asyncio
import inspect
from contextlib import suppress
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

T = TypeVar("T")
R = TypeVar("R")


class CancellationToken:
    """Cooperative cancellation flag shared by a batch and its attempts."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise asyncio.CancelledError("operation cancelled")


@dataclass(slots=True)
class WorkerPool(Generic[T]):
    """Run coroutines with bounded concurrency; results keep input order."""

    max_concurrency: int
    cancel_token: CancellationToken | None = None
    _token: CancellationToken = field(init=False, repr=False)
    _semaphore: asyncio.Semaphore = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_concurrency <= 0:
            raise ValueError("max_concurrency must be > 0")
        self._token = self.cancel_token or CancellationToken()
        self._semaphore = asyncio.Semaphore(self.max_concurrency)

    async def map(self, func: Callable[[R], Awaitable[T]], items: Iterable[R]) -> list[T]:
        """Apply ``func`` to every item; the first failure cancels the rest."""

        self._token.raise_if_cancelled()
        tasks = [asyncio.create_task(self._run_one(func, item)) for item in items]
        if not tasks:
            return []
        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            for task in done:
                if task.cancelled():
                    raise asyncio.CancelledError("worker task cancelled")
                exc = task.exception()
                if exc is not None:
                    await _cancel_all(pending)
                    raise exc
            return [task.result() for task in tasks]
        except asyncio.CancelledError:
            await _cancel_all(set(tasks))
            raise

    async def _run_one(self, func: Callable[[R], Awaitable[T]], item: R) -> T:
        async with self._semaphore:
            self._token.raise_if_cancelled()
            return await func(item)


async def run_with_timeout(
    coroutine: Awaitable[T],
    timeout_seconds: float,
    cancel_token: CancellationToken | None = None,
) -> T:
    """Run ``coroutine`` under its own deadline.

    On expiry the task is cancelled and awaited before ``TimeoutError`` is raised,
    so a late result can never be observed by the caller.
    """
    if timeout_seconds <= 0:
        _close_unscheduled_coroutine(coroutine)
        raise ValueError("timeout_seconds must be > 0")

    token = cancel_token or CancellationToken()
    if token.is_cancelled:
        _close_unscheduled_coroutine(coroutine)
        raise asyncio.CancelledError("operation cancelled")

    task: asyncio.Task[T] = asyncio.create_task(_await_value(coroutine))
    cancel_wait_task = asyncio.create_task(token.wait())

    try:
        done, _ = await asyncio.wait(
            {task, cancel_wait_task},
            timeout=timeout_seconds,
            return_when=asyncio.FIRST_COMPLETED,
        )

        if task in done:
            return await task

        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

        if cancel_wait_task in done and token.is_cancelled:
            raise asyncio.CancelledError("operation cancelled")
        raise TimeoutError(f"operation timed out after {timeout_seconds} seconds")
    finally:
        cancel_wait_task.cancel()
        with suppress(asyncio.CancelledError):
            await cancel_wait_task


async def _await_value(awaitable: Awaitable[T]) -> T:
    return await awaitable


async def _cancel_all(tasks: set[asyncio.Task[T]]) -> None:
    for task in tasks:
        task.cancel()
    if tasks:
        await asyncio.gather(*tasks, return_exceptions=True)


def _close_unscheduled_coroutine(awaitable: Awaitable[object]) -> None:
    # Raw coroutine objects that never get scheduled must be closed explicitly.
    if inspect.iscoroutine(awaitable):
        awaitable.close()


__all__ = [
    "CancellationToken",
    "WorkerPool",
    "run_with_timeout",
]

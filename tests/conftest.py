"""Shared offline fakes: scripted repair backends and a fixed validation clock."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

import pytest

from json_immune.escalation.providers.base import RepairRequest

FIXED_NOW = datetime(2025, 3, 14, 12, 0, 0, tzinfo=UTC)


@dataclass(slots=True)
class ScriptedBackend:
    """``RepairBackend`` fake returning (or raising) queued outcomes in order."""

    outcomes: deque[str | BaseException]
    calls: list[RepairRequest] = field(default_factory=list)
    delay_seconds: float = 0.0

    async def complete(self, request: RepairRequest) -> str:
        self.calls.append(request)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if not self.outcomes:
            raise RuntimeError("scripted repair outcomes exhausted")
        outcome = self.outcomes.popleft()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    @property
    def models(self) -> list[str]:
        return [call.model for call in self.calls]


BackendFactory = Callable[..., ScriptedBackend]


@pytest.fixture
def scripted_backend() -> BackendFactory:
    def _make(*outcomes: str | BaseException, delay_seconds: float = 0.0) -> ScriptedBackend:
        return ScriptedBackend(outcomes=deque(outcomes), delay_seconds=delay_seconds)

    return _make


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW

"""
json-immune — repair backend contract and provider error taxonomy

File: src/json_immune/escalation/providers/base.py

Purpose
- Narrow capability the external repair client depends on: send one prompt
  pair to one model, receive the raw completion text.

What should be included in this file
- Request model (model, prompts, temperature, JSON response mode).
- Backend protocol.
- Normalized provider errors with retryability classification.

Non-functional requirements
- New providers plug in without touching the pipeline.
- Tests swap in deterministic fakes implementing ``RepairBackend``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, TypeAlias, runtime_checkable


def _validate_non_empty_str(value: str, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{field_name} cannot be empty")
    return normalized


@dataclass(frozen=True, slots=True)
class RepairRequest:
    """One completion request sent to a repair backend."""

    model: str
    system_prompt: str
    user_prompt: str
    temperature: float = 0.0
    json_mode: bool = True

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "model", _validate_non_empty_str(self.model, "RepairRequest.model")
        )
        if not isinstance(self.user_prompt, str) or not self.user_prompt:
            raise ValueError("RepairRequest.user_prompt cannot be empty")
        if not 0.0 <= float(self.temperature) <= 2.0:
            raise ValueError("RepairRequest.temperature must be within [0, 2]")


@runtime_checkable
class RepairBackend(Protocol):
    """Capability implemented by provider adapters and test fakes."""

    async def complete(self, request: RepairRequest) -> str:
        """Return the raw completion text for ``request``."""


BackendFactory: TypeAlias = Callable[[], RepairBackend]


class ProviderError(RuntimeError):
    """Base normalized provider error with machine-readable fields."""

    def __init__(
        self,
        *,
        provider: str,
        code: str,
        detail: str,
        retryable: bool,
        http_status: int | None = None,
    ) -> None:
        self.provider = _validate_non_empty_str(provider, "provider")
        self.code = _validate_non_empty_str(code, "code")
        self.detail = _normalize_detail(detail)
        self.retryable = bool(retryable)
        self.http_status = http_status

        parts = [f"provider={self.provider}", f"code={self.code}"]
        if self.http_status is not None:
            parts.append(f"http_status={self.http_status}")
        parts.append(f"detail={self.detail}")
        super().__init__(" ".join(parts))


class ProviderUnavailableError(ProviderError):
    """Provider SDK or runtime is unavailable."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(provider=provider, code="unavailable", detail=detail, retryable=False)


class ProviderAuthenticationError(ProviderError):
    """Missing credentials or rejected authorization."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code="auth",
            detail=detail,
            retryable=False,
            http_status=http_status,
        )


class ProviderInvalidRequestError(ProviderError):
    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code="invalid_request",
            detail=detail,
            retryable=False,
            http_status=http_status,
        )


class ProviderRateLimitError(ProviderError):
    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        http_status: int | None = 429,
    ) -> None:
        super().__init__(
            provider=provider,
            code="rate_limit",
            detail=detail,
            retryable=True,
            http_status=http_status,
        )


class ProviderTimeoutError(ProviderError):
    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(provider=provider, code="timeout", detail=detail, retryable=True)


class ProviderServiceError(ProviderError):
    """Provider API, transport, or server-side failure."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        retryable: bool = True,
        http_status: int | None = None,
    ) -> None:
        super().__init__(
            provider=provider,
            code="service",
            detail=detail,
            retryable=retryable,
            http_status=http_status,
        )


class ProviderResponseError(ProviderError):
    """Completion could not be read as a usable JSON document."""

    def __init__(self, detail: str, *, provider: str = "provider") -> None:
        super().__init__(provider=provider, code="response_invalid", detail=detail, retryable=False)


def _normalize_detail(value: object) -> str:
    text = str(value).strip()
    if not text:
        return "unknown error"
    return " ".join(text.split())


__all__ = [
    "BackendFactory",
    "ProviderAuthenticationError",
    "ProviderError",
    "ProviderInvalidRequestError",
    "ProviderRateLimitError",
    "ProviderResponseError",
    "ProviderServiceError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "RepairBackend",
    "RepairRequest",
]

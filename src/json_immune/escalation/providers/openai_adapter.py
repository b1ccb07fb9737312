"""
json-immune — OpenAI repair backend

File: src/json_immune/escalation/providers/openai_adapter.py

Purpose
- Production ``RepairBackend``: OpenAI chat completions in JSON response mode.

Functional requirements
- Temperature and response format come from the ``RepairRequest``.
- SDK-level retries are disabled; tiering is owned by the repair client.
- SDK exceptions are normalized into the provider error taxonomy.

Non-functional requirements
- No hardcoded keys; the key is read from the configured environment variable.
- The SDK is imported lazily so offline runs never need credentials.
"""

from __future__ import annotations

import asyncio
import importlib
import os
from collections.abc import Mapping, Sequence
from typing import Protocol, cast

from json_immune.constants import DEFAULT_API_KEY_ENV
from json_immune.escalation.providers.base import (
    ProviderAuthenticationError,
    ProviderError,
    ProviderInvalidRequestError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderServiceError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    RepairRequest,
)


class _ChatCompletionsAPI(Protocol):
    async def create(self, **kwargs: object) -> object: ...


class _ChatAPI(Protocol):
    completions: _ChatCompletionsAPI


class _OpenAIClient(Protocol):
    chat: _ChatAPI


class OpenAIRepairBackend:
    """OpenAI chat-completions adapter with optional injected client."""

    provider_name = "openai"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        api_key_env: str = DEFAULT_API_KEY_ENV,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        client: _OpenAIClient | None = None,
    ) -> None:
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._api_key = api_key.strip() if isinstance(api_key, str) and api_key.strip() else None
        self._api_key_env = api_key_env
        self._base_url = base_url
        self._timeout_seconds = timeout_seconds
        self._client = client

    @property
    def name(self) -> str:
        return self.provider_name

    def has_credentials(self) -> bool:
        if self._client is not None or self._api_key is not None:
            return True
        configured = os.getenv(self._api_key_env)
        return configured is not None and bool(configured.strip())

    async def complete(self, request: RepairRequest) -> str:
        client = self._ensure_client()
        payload = self._build_payload(request)
        try:
            raw = await client.chat.completions.create(**payload)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise self._map_exception(exc) from exc
        return _extract_message_text(raw)

    def _ensure_client(self) -> _OpenAIClient:
        if self._client is not None:
            return self._client
        self._client = self._create_default_client()
        return self._client

    def _create_default_client(self) -> _OpenAIClient:
        api_key = self._resolve_api_key()
        try:
            openai_module = importlib.import_module("openai")
        except ImportError as exc:
            raise ProviderUnavailableError(
                provider=self.provider_name,
                detail="openai SDK is not installed",
            ) from exc

        async_openai = getattr(openai_module, "AsyncOpenAI", None)
        if async_openai is None:
            raise ProviderUnavailableError(
                provider=self.provider_name,
                detail="openai SDK does not expose AsyncOpenAI",
            )

        init_kwargs: dict[str, object] = {"api_key": api_key, "max_retries": 0}
        if self._base_url is not None:
            init_kwargs["base_url"] = self._base_url
        if self._timeout_seconds is not None:
            init_kwargs["timeout"] = self._timeout_seconds
        return cast("_OpenAIClient", async_openai(**init_kwargs))

    def _resolve_api_key(self) -> str:
        if self._api_key is not None:
            return self._api_key
        configured = os.getenv(self._api_key_env)
        if configured is None or not configured.strip():
            raise ProviderAuthenticationError(
                provider=self.provider_name,
                detail=f"{self._api_key_env} not set; LLM disabled",
            )
        return configured.strip()

    def _build_payload(self, request: RepairRequest) -> dict[str, object]:
        messages: list[dict[str, str]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.user_prompt})

        payload: dict[str, object] = {
            "model": request.model,
            "temperature": request.temperature,
            "messages": messages,
        }
        if request.json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    def _map_exception(self, exc: Exception) -> ProviderError:
        if isinstance(exc, ProviderError):
            return exc

        status_code = _read_status_code(exc)
        class_name = exc.__class__.__name__.lower()
        detail = _exception_detail(exc)

        if status_code in {401, 403} or "auth" in class_name or "permission" in class_name:
            return ProviderAuthenticationError(
                provider=self.provider_name,
                detail=detail,
                http_status=status_code,
            )
        if status_code == 429 or "ratelimit" in class_name:
            return ProviderRateLimitError(
                provider=self.provider_name,
                detail=detail,
                http_status=status_code,
            )
        if isinstance(exc, TimeoutError) or "timeout" in class_name:
            return ProviderTimeoutError(provider=self.provider_name, detail=detail)
        if status_code is not None and status_code in {400, 404, 409, 422}:
            return ProviderInvalidRequestError(
                provider=self.provider_name,
                detail=detail,
                http_status=status_code,
            )
        if "badrequest" in class_name or "invalidrequest" in class_name:
            return ProviderInvalidRequestError(provider=self.provider_name, detail=detail)
        if status_code is not None and status_code >= 500:
            return ProviderServiceError(
                provider=self.provider_name,
                detail=detail,
                http_status=status_code,
            )
        return ProviderServiceError(provider=self.provider_name, detail=detail)


def _extract_message_text(raw_response: object) -> str:
    for choice in _read_sequence(raw_response, "choices"):
        content = _read_str(_read_value(choice, "message"), "content")
        if content is not None:
            return content
    raise ProviderResponseError(
        provider=OpenAIRepairBackend.provider_name,
        detail="response does not contain message content",
    )


def _exception_detail(exc: BaseException) -> str:
    text = str(exc).strip()
    if text:
        return " ".join(text.split())
    return exc.__class__.__name__


def _read_status_code(exc: BaseException) -> int | None:
    for key in ("status_code", "status", "http_status"):
        value = getattr(exc, key, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    if response is not None:
        nested = getattr(response, "status_code", None)
        if isinstance(nested, int):
            return nested
    return None


def _read_value(value: object, key: str) -> object | None:
    if isinstance(value, Mapping):
        return cast("object | None", value.get(key))
    return cast("object | None", getattr(value, key, None))


def _read_sequence(value: object, key: str) -> tuple[object, ...]:
    candidate = _read_value(value, key)
    if isinstance(candidate, Sequence) and not isinstance(candidate, (str, bytes, bytearray)):
        return tuple(candidate)
    return ()


def _read_str(value: object, key: str) -> str | None:
    candidate = _read_value(value, key)
    if isinstance(candidate, str) and candidate.strip():
        return candidate
    return None


__all__ = ["OpenAIRepairBackend"]

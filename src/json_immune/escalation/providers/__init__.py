"""Repair backends and the provider error taxonomy."""

from json_immune.escalation.providers.base import (
    BackendFactory,
    ProviderAuthenticationError,
    ProviderError,
    ProviderInvalidRequestError,
    ProviderRateLimitError,
    ProviderResponseError,
    ProviderServiceError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    RepairBackend,
    RepairRequest,
)
from json_immune.escalation.providers.openai_adapter import OpenAIRepairBackend

__all__ = [
    "BackendFactory",
    "OpenAIRepairBackend",
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

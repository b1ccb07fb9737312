"""Forwarding policy: may a result be sent on to the caller's ``forward_url``?

Independent of the pipeline decision. When the policy is disabled, or no URL
was supplied, forwarding is allowed.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum
from urllib.parse import urlsplit


class DenyReason(StrEnum):
    INVALID_FORWARD_URL = "invalid_forward_url"
    HOST_NOT_ALLOWLISTED = "host_not_allowlisted"


@dataclass(frozen=True, slots=True)
class PolicyDecision:
    allow: bool
    reason: str | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"allow": self.allow}
        if self.reason is not None:
            payload["reason"] = self.reason
        return payload


ALLOW = PolicyDecision(allow=True)


def evaluate_forwarding_policy(
    forward_url: str | None,
    allowed_hosts: Iterable[str],
    *,
    enabled: bool,
) -> PolicyDecision:
    if not enabled or not forward_url:
        return ALLOW

    try:
        parts = urlsplit(forward_url.strip())
        host = parts.hostname
    except ValueError:
        return PolicyDecision(allow=False, reason=str(DenyReason.INVALID_FORWARD_URL))
    if parts.scheme.lower() not in {"http", "https"} or not host:
        return PolicyDecision(allow=False, reason=str(DenyReason.INVALID_FORWARD_URL))

    allowed = {item.strip().lower() for item in allowed_hosts if item and item.strip()}
    if host.lower() in allowed:
        return ALLOW
    return PolicyDecision(allow=False, reason=str(DenyReason.HOST_NOT_ALLOWLISTED))


__all__ = ["ALLOW", "DenyReason", "PolicyDecision", "evaluate_forwarding_policy"]

"""Policies applied around pipeline runs."""

from json_immune.policy.forwarding import (
    ALLOW,
    DenyReason,
    PolicyDecision,
    evaluate_forwarding_policy,
)

__all__ = ["ALLOW", "DenyReason", "PolicyDecision", "evaluate_forwarding_policy"]

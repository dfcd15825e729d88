"""Policy governance: extraction, diff, re-tiering preview, lifecycle and apply."""

from risk_tiering.policy.diff import diff_frequencies, diff_policy, has_significant_changes
from risk_tiering.policy.extraction import (
    MarkerPolicyParser,
    OpenAIPolicyExtractor,
    PolicyExtractor,
    extract_policy,
)
from risk_tiering.policy.lifecycle import can_transition
from risk_tiering.policy.retier import add_months, preview_retiering
from risk_tiering.policy.service import PolicyGovernanceService

__all__ = [
    "MarkerPolicyParser",
    "OpenAIPolicyExtractor",
    "PolicyExtractor",
    "PolicyGovernanceService",
    "add_months",
    "can_transition",
    "diff_frequencies",
    "diff_policy",
    "extract_policy",
    "has_significant_changes",
    "preview_retiering",
]

"""Policy version lifecycle.

    Draft --analyze--> Analyzed --approve--> Approved --apply--> Applied
      |                  |   ^ re-analyze      |                   |
      +------------------+---------------------+--> Archived <-----+ (superseded only)

Archiving is a soft delete and is allowed from any state except Applied; an
Applied policy leaves that state only when another policy is applied over it.
"""

from typing import Dict, FrozenSet

from risk_tiering.exceptions import PolicyTransitionError
from risk_tiering.schemas.policy import PolicyStatus

ALLOWED_TRANSITIONS: Dict[PolicyStatus, FrozenSet[PolicyStatus]] = {
    PolicyStatus.DRAFT: frozenset({PolicyStatus.ANALYZED, PolicyStatus.ARCHIVED}),
    PolicyStatus.ANALYZED: frozenset(
        {PolicyStatus.ANALYZED, PolicyStatus.APPROVED, PolicyStatus.ARCHIVED}
    ),
    PolicyStatus.APPROVED: frozenset({PolicyStatus.APPLIED, PolicyStatus.ARCHIVED}),
    PolicyStatus.APPLIED: frozenset({PolicyStatus.APPLIED}),
    PolicyStatus.ARCHIVED: frozenset(),
}


def can_transition(current: PolicyStatus, target: PolicyStatus, supersede: bool = False) -> bool:
    """Check a lifecycle move.

    Args:
        current: Present status.
        target: Requested status.
        supersede: True when another policy is being applied over this one;
            only then may an Applied policy become Archived.
    """
    if supersede and current == PolicyStatus.APPLIED and target == PolicyStatus.ARCHIVED:
        return True
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(
    policy_id: str,
    current: PolicyStatus,
    target: PolicyStatus,
    supersede: bool = False,
) -> None:
    """Raise PolicyTransitionError unless the move is allowed."""
    if can_transition(current, target, supersede):
        return
    if current == PolicyStatus.APPLIED and target == PolicyStatus.ARCHIVED:
        raise PolicyTransitionError(
            f"Policy {policy_id} is Applied and cannot be archived; apply another policy to supersede it"
        )
    raise PolicyTransitionError(
        f"Policy {policy_id} cannot move from {current.value} to {target.value}"
    )

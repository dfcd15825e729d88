"""Policy diff engine.

Compares the active validation frequencies (and optionally the active rule
set) with a candidate policy. Pure: nothing here reads or writes a store.

Direction refers to interval length in months. Going from 12 to 6 months is
a DECREASE even though validating twice as often is the stricter obligation.
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence

from risk_tiering.schemas.policy import (
    FrequencyChange,
    FrequencyDirection,
    PolicyDiff,
    RuleChange,
    RuleChangeKind,
    RuleMarker,
)
from risk_tiering.schemas.rule_set import RuleSet

logger = logging.getLogger(__name__)


def effective_frequencies(
    current: Mapping[str, int], candidate: Optional[Mapping[str, int]]
) -> Dict[str, int]:
    """Candidate frequencies overlaid on the current table.

    Tiers the candidate does not mention keep their current interval.
    """
    return {**current, **(candidate or {})}


def frequency_direction(current: Optional[int], new: Optional[int]) -> FrequencyDirection:
    # A tier introduced by the candidate has no previous interval
    if current is None:
        return FrequencyDirection.INCREASE if new is not None else FrequencyDirection.SAME
    if new is None:
        return FrequencyDirection.SAME
    if new < current:
        return FrequencyDirection.DECREASE
    if new > current:
        return FrequencyDirection.INCREASE
    return FrequencyDirection.SAME


def _ordered_tiers(
    current: Mapping[str, int],
    candidate: Mapping[str, int],
    tier_order: Optional[Sequence[str]],
) -> List[str]:
    keys = list(tier_order or [])
    for tier in list(current) + list(candidate):
        if tier not in keys:
            keys.append(tier)
    return [t for t in keys if t in current or t in candidate]


def diff_frequencies(
    current: Mapping[str, int],
    candidate: Mapping[str, int],
    tier_order: Optional[Sequence[str]] = None,
) -> List[FrequencyChange]:
    """Per-tier frequency changes for every tier present in either table.

    Args:
        current: Active tier -> months.
        candidate: Candidate tier -> months. Tiers it omits are unchanged.
        tier_order: Preferred output order (e.g. most severe first).
    """
    changes = []
    for tier in _ordered_tiers(current, candidate, tier_order):
        old = current.get(tier)
        new = candidate.get(tier, old)
        changes.append(
            FrequencyChange(
                tier=tier,
                current=old,
                new=new,
                changed=old != new,
                direction=frequency_direction(old, new),
            )
        )
    return changes


def _is_elevation(change: RuleChange, rule_set: Optional[RuleSet]) -> bool:
    if change.kind != RuleChangeKind.MODIFIED or not change.previous_tier or not change.tier:
        return False
    if rule_set is None or change.tier not in rule_set.tiers or change.previous_tier not in rule_set.tiers:
        return False
    return rule_set.severity(change.tier) > rule_set.severity(change.previous_tier)


def _rule_set_changes(current: RuleSet, candidate: RuleSet) -> List[RuleChange]:
    changes = []
    current_rules = {rule.id: rule for rule in current.rules}
    candidate_rules = {rule.id: rule for rule in candidate.rules}

    for rule in candidate.rules:
        old = current_rules.get(rule.id)
        if old is None:
            changes.append(
                RuleChange(
                    kind=RuleChangeKind.NEW,
                    id=rule.id,
                    name=rule.name,
                    tier=rule.tier,
                    rationale=rule.description or f"New {rule.tier} rule added",
                )
            )
        elif old.tier != rule.tier:
            changes.append(
                RuleChange(
                    kind=RuleChangeKind.MODIFIED,
                    id=rule.id,
                    name=rule.name,
                    tier=rule.tier,
                    previous_tier=old.tier,
                    rationale=f"Changed from {old.tier} to {rule.tier}",
                )
            )
        elif old != rule:
            changes.append(
                RuleChange(
                    kind=RuleChangeKind.MODIFIED,
                    id=rule.id,
                    name=rule.name,
                    tier=rule.tier,
                    previous_tier=old.tier,
                    rationale="Conditions or effects changed",
                )
            )

    for rule in current.rules:
        if rule.id not in candidate_rules:
            changes.append(
                RuleChange(
                    kind=RuleChangeKind.REMOVED,
                    id=rule.id,
                    name=rule.name,
                    tier=rule.tier,
                    rationale=f"{rule.tier} rule removed",
                )
            )
    return changes


def _marker_change(marker: RuleMarker) -> RuleChange:
    if marker.kind == RuleChangeKind.NEW:
        rationale = marker.description or (f"New {marker.tier} rule added" if marker.tier else "New rule added")
    elif marker.kind == RuleChangeKind.REMOVED:
        rationale = marker.description or (f"{marker.tier} rule removed" if marker.tier else "Rule removed")
    elif marker.previous_tier and marker.tier:
        rationale = f"Changed from {marker.previous_tier} to {marker.tier}"
    else:
        rationale = marker.description or "Rule modified"

    return RuleChange(
        kind=marker.kind,
        id=marker.id,
        name=marker.name,
        tier=marker.tier,
        previous_tier=marker.previous_tier,
        rationale=rationale,
    )


def summarize_changes(
    frequency_changes: Sequence[FrequencyChange],
    rule_changes: Sequence[RuleChange],
    rule_set: Optional[RuleSet] = None,
) -> Dict[str, str]:
    """Build the summaryOfChanges / impactAssessment sentences."""
    summary = []
    impact = []

    changed = [c for c in frequency_changes if c.changed]
    if changed:
        parts = [f"{c.tier}: {c.current if c.current is not None else '-'}mo -> {c.new}mo" for c in changed]
        summary.append(f"Validation frequency changes: {', '.join(parts)}.")

    new_rules = [c for c in rule_changes if c.kind == RuleChangeKind.NEW]
    removed = [c for c in rule_changes if c.kind == RuleChangeKind.REMOVED]
    elevated = [c for c in rule_changes if _is_elevation(c, rule_set)]
    other_modified = [
        c for c in rule_changes if c.kind == RuleChangeKind.MODIFIED and c not in elevated
    ]

    if new_rules:
        summary.append(f"{len(new_rules)} new tiering rule(s) added.")
    if elevated:
        summary.append(f"{len(elevated)} rule(s) now elevate to higher tiers.")
    if other_modified:
        summary.append(f"{len(other_modified)} rule(s) modified.")
    if removed:
        summary.append(f"{len(removed)} tiering rule(s) removed.")

    if any(c.changed and c.direction == FrequencyDirection.DECREASE for c in frequency_changes):
        impact.append("Shorter validation cycles will require more frequent reviews.")
    if any(c.changed and c.direction == FrequencyDirection.INCREASE for c in frequency_changes):
        impact.append("Longer validation cycles will push out upcoming review dates.")
    if new_rules or elevated or other_modified:
        impact.append("New or modified rules may cause some models to be assigned higher tiers.")
    if removed:
        impact.append("Removed rules may lower the tier of some models.")

    if not summary:
        return {
            "summary_of_changes": "No significant changes detected.",
            "impact_assessment": "Policy is consistent with current configuration.",
        }
    return {"summary_of_changes": " ".join(summary), "impact_assessment": " ".join(impact)}


def diff_policy(
    current_frequencies: Mapping[str, int],
    candidate_frequencies: Optional[Mapping[str, int]],
    rule_markers: Sequence[RuleMarker] = (),
    current_rule_set: Optional[RuleSet] = None,
    candidate_rule_set: Optional[RuleSet] = None,
) -> PolicyDiff:
    """Compare the active configuration with a candidate policy.

    Args:
        current_frequencies: Active tier -> months.
        candidate_frequencies: Candidate tier -> months (partial allowed).
        rule_markers: Coarse rule-change signals from extraction.
        current_rule_set: Active rule set, used for tier ordering and for
            classifying tier moves as elevations.
        candidate_rule_set: Full candidate rule set, when the policy carries one.

    Returns:
        PolicyDiff with frequency changes, rule changes and summary text.
    """
    tier_order = current_rule_set.tier_keys() if current_rule_set else None
    frequency_changes = diff_frequencies(current_frequencies, candidate_frequencies or {}, tier_order)

    rule_changes: List[RuleChange] = []
    if current_rule_set is not None and candidate_rule_set is not None:
        rule_changes.extend(_rule_set_changes(current_rule_set, candidate_rule_set))

    reported = {c.id for c in rule_changes}
    for marker in rule_markers:
        if marker.id in reported:
            continue
        reported.add(marker.id)
        rule_changes.append(_marker_change(marker))

    texts = summarize_changes(frequency_changes, rule_changes, candidate_rule_set or current_rule_set)
    logger.debug(
        f"Diff: {sum(1 for c in frequency_changes if c.changed)} frequency change(s), "
        f"{len(rule_changes)} rule change(s)"
    )
    return PolicyDiff(
        frequency_changes=frequency_changes,
        rule_changes=rule_changes,
        **texts,
    )


def has_significant_changes(diff: PolicyDiff) -> bool:
    """True if any frequency or rule changes."""
    return any(c.changed for c in diff.frequency_changes) or bool(diff.rule_changes)

"""Re-tiering preview: schedule changes a candidate policy would cause.

Read-only. For each Active inventory record the would-be due date is

    (last validation date, or onboarding date if never validated) + months

where months is the candidate frequency for the record's tier. The tier
itself only changes when a full candidate rule set is supplied and the
record carries its intake attributes.
"""

import calendar
import logging
from datetime import date
from typing import Iterable, Mapping, Optional

from risk_tiering.engine.classifier import classify
from risk_tiering.schemas.inventory import InventoryRecord, InventoryStatus
from risk_tiering.schemas.policy import AffectedRecord, PolicyPreview, PreviewSummary
from risk_tiering.schemas.rule_set import RuleSet

logger = logging.getLogger(__name__)


def add_months(start: date, months: int) -> date:
    """Calendar month arithmetic, clamped to the end of the target month.

    Jan 31 + 1 month is Feb 28 (or 29), never Mar 3.
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def schedule_base_date(record: InventoryRecord) -> date:
    return record.last_validation_date or record.onboarded_at


def compute_next_due(record: InventoryRecord, months: int) -> date:
    return add_months(schedule_base_date(record), months)


def reclassified_tier(record: InventoryRecord, rule_set: Optional[RuleSet]) -> str:
    """Tier under a candidate rule set; unchanged without one or without intake attributes."""
    if rule_set is None or not record.attributes:
        return record.tier
    return classify(record.attributes, rule_set).tier


def project_record(
    record: InventoryRecord,
    frequencies: Mapping[str, int],
    new_tier: Optional[str] = None,
) -> AffectedRecord:
    """Compute a record's schedule under the given frequencies.

    Args:
        record: Inventory record.
        frequencies: Effective tier -> months table.
        new_tier: Tier after re-classification, if any.
    """
    new_tier = new_tier or record.tier

    new_frequency = frequencies.get(new_tier)
    if new_frequency is None:
        logger.warning(
            f"No validation frequency for tier {new_tier} (record {record.id}); "
            f"keeping {record.validation_frequency_months} months"
        )
        new_frequency = record.validation_frequency_months

    new_due = compute_next_due(record, new_frequency)
    return AffectedRecord(
        record_id=record.id,
        entity_id=record.entity_id,
        name=record.name,
        previous_tier=record.tier,
        new_tier=new_tier,
        tier_changed=new_tier != record.tier,
        previous_frequency=record.validation_frequency_months,
        new_frequency=new_frequency,
        frequency_changed=new_frequency != record.validation_frequency_months,
        previous_due_date=record.next_validation_due,
        new_due_date=new_due,
        due_date_changed=new_due != record.next_validation_due,
    )


def is_affected(projection: AffectedRecord) -> bool:
    return projection.tier_changed or projection.frequency_changed or projection.due_date_changed


def preview_retiering(
    records: Iterable[InventoryRecord],
    frequencies: Mapping[str, int],
    rule_set: Optional[RuleSet] = None,
    include_unchanged: bool = False,
) -> PolicyPreview:
    """Simulate a policy over the inventory.

    Args:
        records: Inventory records (non-Active records are skipped).
        frequencies: Effective tier -> months table of the candidate policy.
        rule_set: Optional full candidate rule set.
        include_unchanged: Also list records whose schedule would not move.

    Returns:
        PolicyPreview with per-record projections and a summary.
    """
    summary = PreviewSummary()
    affected = []

    for record in records:
        if record.status != InventoryStatus.ACTIVE:
            continue
        summary.total_records += 1

        projection = project_record(record, frequencies, reclassified_tier(record, rule_set))
        if is_affected(projection):
            _count(summary, projection)
            affected.append(projection)
        elif include_unchanged:
            affected.append(projection)

    logger.debug(
        f"Preview: {summary.total_affected}/{summary.total_records} records affected "
        f"({summary.earlier_due_dates} earlier, {summary.later_due_dates} later)"
    )
    return PolicyPreview(
        validation_frequencies=dict(frequencies),
        affected_records=affected,
        summary=summary,
    )


def _count(summary: PreviewSummary, projection: AffectedRecord) -> None:
    summary.total_affected += 1
    if projection.tier_changed:
        summary.tier_changes += 1
    if projection.frequency_changed:
        summary.frequency_changes += 1
    if projection.new_due_date < projection.previous_due_date:
        summary.earlier_due_dates += 1
    elif projection.new_due_date > projection.previous_due_date:
        summary.later_due_dates += 1
    summary.by_tier[projection.new_tier] = summary.by_tier.get(projection.new_tier, 0) + 1

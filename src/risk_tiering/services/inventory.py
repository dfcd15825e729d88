"""Inventory tracking: classification, onboarding, validations, status.

The tier, validation_frequency_months and next_validation_due fields of an
InventoryRecord are only written here (classification, onboarding,
validation recording, re-classification) and by policy application.
"""

import logging
import uuid
from datetime import date
from typing import Any, List, Mapping, Optional, Tuple

from risk_tiering.config.registry import ActiveConfiguration
from risk_tiering.engine.classifier import ClassificationEngine
from risk_tiering.exceptions import ConfigError, RecordNotFoundError
from risk_tiering.policy.retier import add_months, compute_next_due
from risk_tiering.schemas.audit import AuditEventType
from risk_tiering.schemas.decision import Decision
from risk_tiering.schemas.inventory import (
    InventoryRecord,
    InventoryStats,
    InventoryStatus,
    ValidationEvent,
    ValidationStatus,
)
from risk_tiering.storage.protocol import RecordFilter, RecordStore

logger = logging.getLogger(__name__)

DEFAULT_UPCOMING_DAYS = 30


def validation_status(
    record: InventoryRecord,
    today: Optional[date] = None,
    upcoming_days: int = DEFAULT_UPCOMING_DAYS,
) -> ValidationStatus:
    """overdue if the due date has passed, upcoming within the window, else current."""
    today = today or date.today()
    days_until_due = (record.next_validation_due - today).days
    if days_until_due < 0:
        return ValidationStatus.OVERDUE
    if days_until_due <= upcoming_days:
        return ValidationStatus.UPCOMING
    return ValidationStatus.CURRENT


class InventoryService:
    """Classifies entities and tracks their validation schedule."""

    def __init__(
        self,
        store: RecordStore,
        configuration: ActiveConfiguration,
        ledger=None,
        upcoming_days: int = DEFAULT_UPCOMING_DAYS,
    ):
        self.store = store
        self.configuration = configuration
        self.engine = ClassificationEngine(configuration)
        self.ledger = ledger
        self.upcoming_days = upcoming_days

    def _audit(self, event_type: AuditEventType, subject_id: str, actor: Optional[str] = None, **details):
        if self.ledger is None:
            return
        try:
            self.ledger.record(event_type, subject_id, actor=actor, **details)
        except IOError as e:
            logger.error(f"Failed to write audit event {event_type.value} for {subject_id}: {e}")

    def _frequency_for(self, tier: str) -> int:
        months = self.configuration.current.frequency_for(tier)
        if months is None:
            raise ConfigError([f"No validation frequency configured for tier {tier}"])
        return months

    def get_record(self, record_id: str) -> InventoryRecord:
        record = self.store.find_record(record_id)
        if record is None:
            raise RecordNotFoundError(f"Inventory record not found: {record_id}")
        return record

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    def classify_entity(
        self,
        entity_id: str,
        attributes: Mapping[str, Any],
        rule_set_version: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Decision:
        """Classify an entity and store the decision."""
        decision = self.engine.classify(attributes, rule_set_version)
        self.store.create_decision(entity_id, decision)
        logger.info(f"Classified {entity_id}: tier {decision.tier}, model={decision.is_model.value}")
        self._audit(
            AuditEventType.CLASSIFICATION,
            entity_id,
            actor=actor,
            tier=decision.tier,
            is_model=decision.is_model.value,
            rule_set_version=decision.rule_set_version,
            triggered_rules=[r.id for r in decision.triggered_rules],
        )
        return decision

    # -------------------------------------------------------------------------
    # Onboarding and validations
    # -------------------------------------------------------------------------

    def add_to_inventory(
        self,
        entity_id: str,
        attributes: Optional[Mapping[str, Any]] = None,
        name: str = "",
        onboarded_at: Optional[date] = None,
        decision: Optional[Decision] = None,
        record_id: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> InventoryRecord:
        """Create an inventory record for a classified entity.

        The entity is classified first unless a decision is supplied or one
        is already stored for it.

        Raises:
            ConfigError: If the decided tier has no validation frequency.
            StoreError: If the record id already exists.
        """
        with self.configuration.write_lock:
            attributes = dict(attributes or {})
            if decision is None:
                stored = self.store.get_decision(entity_id)
                if attributes or stored is None:
                    decision = self.classify_entity(entity_id, attributes, actor=actor)
                else:
                    decision = stored.decision

            onboarded_at = onboarded_at or date.today()
            months = self._frequency_for(decision.tier)
            record = InventoryRecord(
                id=record_id or f"INV-{uuid.uuid4().hex[:8].upper()}",
                entity_id=entity_id,
                name=name,
                tier=decision.tier,
                validation_frequency_months=months,
                onboarded_at=onboarded_at,
                next_validation_due=add_months(onboarded_at, months),
                attributes=attributes,
            )
            self.store.add_record(record)
        logger.info(f"Added {entity_id} to inventory as {record.id} ({record.tier}, due {record.next_validation_due})")
        self._audit(
            AuditEventType.INVENTORY_ADDED,
            record.id,
            actor=actor,
            entity_id=entity_id,
            tier=record.tier,
            next_validation_due=record.next_validation_due.isoformat(),
        )
        return record

    def record_validation(
        self,
        record_id: str,
        validation_date: date,
        validation_type: str = "Periodic",
        validated_by: Optional[str] = None,
        overall_result: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> InventoryRecord:
        """Record a completed validation and reschedule the next one.

        The next due date counts from the most recent validation, using the
        active frequency for the record's tier.
        """
        with self.configuration.write_lock:
            record = self.get_record(record_id)
            event = ValidationEvent(
                validation_date=validation_date,
                validation_type=validation_type,
                validated_by=validated_by,
                overall_result=overall_result,
                notes=notes,
            )

            last = record.last_validation_date
            if last is not None and validation_date < last:
                logger.warning(
                    f"Validation on {validation_date} for {record_id} predates the last one ({last}); "
                    "schedule unchanged"
                )
                last_validation = last
            else:
                last_validation = validation_date

            months = self.configuration.current.frequency_for(record.tier) or record.validation_frequency_months
            updated = self.store.update_record(
                record_id,
                {
                    "last_validation_date": last_validation,
                    "validation_frequency_months": months,
                    "next_validation_due": add_months(last_validation, months),
                    "validations": record.validations + [event],
                },
            )

        logger.info(f"Recorded validation for {record_id}; next due {updated.next_validation_due}")
        self._audit(
            AuditEventType.VALIDATION_RECORDED,
            record_id,
            actor=validated_by,
            validation_date=validation_date.isoformat(),
            overall_result=overall_result,
            next_validation_due=updated.next_validation_due.isoformat(),
        )
        return updated

    def reclassify_record(
        self,
        record_id: str,
        policy_id: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Tuple[InventoryRecord, Decision]:
        """Re-run classification on a record's stored intake attributes.

        The decision is recreated, the tier updated, and the schedule
        recomputed with the active frequency for the new tier.
        """
        with self.configuration.write_lock:
            record = self.get_record(record_id)
            if not record.attributes:
                raise ConfigError([f"Record {record_id} has no intake attributes to re-classify"])

            decision = self.engine.classify(record.attributes)
            self.store.create_decision(record.entity_id, decision, policy_id=policy_id)
            months = self._frequency_for(decision.tier)
            updated = self.store.update_record(
                record_id,
                {
                    "tier": decision.tier,
                    "validation_frequency_months": months,
                    "next_validation_due": compute_next_due(record, months),
                },
            )

        if updated.tier != record.tier:
            logger.info(f"Re-classified {record_id}: {record.tier} -> {updated.tier}")
        self._audit(
            AuditEventType.RECLASSIFICATION,
            record_id,
            actor=actor,
            previous_tier=record.tier,
            tier=updated.tier,
            policy_id=policy_id,
        )
        return updated, decision

    # -------------------------------------------------------------------------
    # Status and statistics
    # -------------------------------------------------------------------------

    def validation_status(self, record: InventoryRecord, today: Optional[date] = None) -> ValidationStatus:
        return validation_status(record, today, self.upcoming_days)

    def list_records(
        self,
        status: Optional[InventoryStatus] = None,
        tier: Optional[str] = None,
        due: Optional[ValidationStatus] = None,
        today: Optional[date] = None,
    ) -> List[InventoryRecord]:
        """List records, optionally filtered by validation status."""
        records = self.store.list_records(RecordFilter(status=status, tier=tier))
        if due is None:
            return list(records)
        return [r for r in records if self.validation_status(r, today) == due]

    def inventory_stats(self, today: Optional[date] = None) -> InventoryStats:
        today = today or date.today()
        stats = InventoryStats(as_of=today)
        for record in self.store.list_records():
            stats.total += 1
            stats.by_tier[record.tier] = stats.by_tier.get(record.tier, 0) + 1
            stats.by_status[record.status.value] = stats.by_status.get(record.status.value, 0) + 1
            if record.status == InventoryStatus.ACTIVE:
                key = self.validation_status(record, today).value
                stats.by_validation_status[key] = stats.by_validation_status.get(key, 0) + 1
        return stats

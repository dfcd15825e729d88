"""Policy governance service.

Drives a PolicyVersion through its lifecycle and applies it to the
inventory:

    create -> analyze (extract + diff) -> approve -> preview -> apply

apply_policy() is the only writer of the active configuration. It runs under
an exclusive lock, streams inventory records in batches, and commits the
governance state (active frequencies, policy statuses) in one store
transaction only after every record has been brought in line. A failed run
leaves the policy Approved with an apply journal and can be re-driven; the
active configuration is untouched until the commit.
"""

import itertools
import logging
import threading
import uuid
from datetime import datetime
from typing import Dict, Iterator, List, Mapping, Optional, Sequence

from risk_tiering.config.loader import check_frequencies, load_rule_set
from risk_tiering.config.registry import ActiveConfiguration
from risk_tiering.engine.classifier import classify
from risk_tiering.exceptions import (
    ConfigError,
    PolicyNotFoundError,
    PolicyTransitionError,
    RiskTieringError,
)
from risk_tiering.policy.diff import diff_policy, effective_frequencies
from risk_tiering.policy.extraction import PolicyExtractor, extract_policy
from risk_tiering.policy.lifecycle import ensure_transition
from risk_tiering.policy.retier import (
    is_affected,
    preview_retiering,
    project_record,
    reclassified_tier,
)
from risk_tiering.schemas.audit import AuditEventType
from risk_tiering.schemas.inventory import InventoryRecord
from risk_tiering.schemas.policy import (
    ActiveConfigurationRecord,
    ApplyResult,
    PolicyDiff,
    PolicyPreview,
    PolicyStatus,
    PolicyVersion,
    RuleMarker,
)
from risk_tiering.schemas.rule_set import RuleSet
from risk_tiering.storage.protocol import ACTIVE_RECORDS, RecordStore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100


def _now_iso() -> str:
    return datetime.utcnow().isoformat() + "Z"


def _batched(items: Iterator[InventoryRecord], size: int) -> Iterator[List[InventoryRecord]]:
    while True:
        batch = list(itertools.islice(items, size))
        if not batch:
            return
        yield batch


class PolicyGovernanceService:
    """Lifecycle, diff, preview and apply for policy versions."""

    def __init__(
        self,
        store: RecordStore,
        configuration: ActiveConfiguration,
        extractor: Optional[PolicyExtractor] = None,
        ledger=None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        """Initialize the service.

        Args:
            store: Record store holding inventory and policy state.
            configuration: Process-wide active configuration.
            extractor: Optional AI extractor; marker parsing is always available.
            ledger: Optional AuditLedger for transition events.
            batch_size: Records per batch during apply.
        """
        self.store = store
        self.configuration = configuration
        self.extractor = extractor
        self.ledger = ledger
        self.batch_size = max(1, batch_size)
        self._apply_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _audit(self, event_type: AuditEventType, subject_id: str, actor: Optional[str] = None, **details):
        if self.ledger is None:
            return
        try:
            self.ledger.record(event_type, subject_id, actor=actor, **details)
        except IOError as e:
            logger.error(f"Failed to write audit event {event_type.value} for {subject_id}: {e}")

    def _candidate_rule_set(self, policy: PolicyVersion) -> Optional[RuleSet]:
        if not policy.rule_set_document:
            return None
        return load_rule_set(policy.rule_set_document)

    def get_policy(self, policy_id: str) -> PolicyVersion:
        """Get a policy version.

        Raises:
            PolicyNotFoundError: If the id is unknown.
        """
        policy = self.store.get_policy(policy_id)
        if policy is None:
            raise PolicyNotFoundError(f"Policy not found: {policy_id}")
        return policy

    def list_policies(self, status: Optional[PolicyStatus] = None) -> List[PolicyVersion]:
        return self.store.list_policies(status)

    def _transition(
        self,
        policy: PolicyVersion,
        target: PolicyStatus,
        supersede: bool = False,
        **updates,
    ) -> PolicyVersion:
        ensure_transition(policy.id, policy.status, target, supersede)
        updated = policy.model_copy(update={"status": target, **updates})
        self.store.save_policy(updated)
        logger.info(f"Policy {policy.id}: {policy.status.value} -> {target.value}")
        return updated

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def create_policy(
        self,
        name: str,
        document_text: Optional[str] = None,
        validation_frequencies: Optional[Mapping[str, int]] = None,
        rule_set_document: Optional[Mapping] = None,
        created_by: Optional[str] = None,
        policy_id: Optional[str] = None,
    ) -> PolicyVersion:
        """Create a Draft policy from a document and/or explicit content.

        Raises:
            ConfigError: If explicit frequencies or the rule set are invalid.
        """
        candidate_rule_set = load_rule_set(rule_set_document) if rule_set_document else None
        tiers_from = candidate_rule_set or self.configuration.current.rule_set

        if validation_frequencies:
            errors = check_frequencies(validation_frequencies, tiers_from)
            if errors:
                raise ConfigError(errors, source=f"policy {name}")

        policy_id = policy_id or f"POL-{uuid.uuid4().hex[:8].upper()}"
        if self.store.get_policy(policy_id) is not None:
            raise PolicyTransitionError(f"Policy already exists: {policy_id}")

        policy = PolicyVersion(
            id=policy_id,
            name=name,
            document_text=document_text,
            created_at=_now_iso(),
            created_by=created_by,
            validation_frequencies=dict(validation_frequencies) if validation_frequencies else None,
            rule_set_document=candidate_rule_set.to_document() if candidate_rule_set else None,
        )
        self.store.save_policy(policy)
        logger.info(f"Created policy {policy.id} ({name})")
        self._audit(AuditEventType.POLICY_CREATED, policy.id, actor=created_by, name=name)
        return policy

    def analyze_policy(self, policy_id: str) -> PolicyVersion:
        """Extract the policy document and compute its diff.

        Extraction failures never fail analysis: the marker parser result is
        used and the fallback is recorded in extraction_notes.
        """
        policy = self.get_policy(policy_id)
        ensure_transition(policy.id, policy.status, PolicyStatus.ANALYZED)

        snapshot = self.configuration.current
        candidate_rule_set = self._candidate_rule_set(policy)
        target_rule_set = candidate_rule_set or snapshot.rule_set

        frequencies: Dict[str, int] = dict(policy.validation_frequencies or {})
        markers: List[RuleMarker] = list(policy.rule_markers)
        extracted_rules = list(policy.extracted_rules)
        confidence = policy.extraction_confidence
        notes: List[str] = []

        if policy.document_text:
            extraction = extract_policy(
                policy.document_text,
                extractor=self.extractor,
                tiers=target_rule_set.tier_keys(),
                current_frequencies=snapshot.frequencies,
            )
            for tier, months in extraction.validation_frequencies.items():
                if tier not in target_rule_set.tiers:
                    notes.append(f"Ignored frequency for unknown tier {tier}")
                    continue
                frequencies.setdefault(tier, months)
            markers = extraction.rule_markers
            extracted_rules = extraction.rules
            confidence = extraction.confidence
            notes.extend(extraction.notes)

        diff = diff_policy(
            snapshot.frequencies,
            frequencies,
            markers,
            current_rule_set=snapshot.rule_set,
            candidate_rule_set=candidate_rule_set,
        )

        updated = self._transition(
            policy,
            PolicyStatus.ANALYZED,
            validation_frequencies=frequencies or None,
            rule_markers=markers,
            extracted_rules=extracted_rules,
            extraction_confidence=confidence,
            extraction_notes=notes,
            diff_summary=diff,
            analyzed_at=_now_iso(),
        )
        self._audit(
            AuditEventType.POLICY_ANALYZED,
            policy.id,
            validation_frequencies=frequencies,
            rule_changes=len(diff.rule_changes),
            confidence=confidence,
        )
        return updated

    def approve_policy(self, policy_id: str, approved_by: Optional[str] = None) -> PolicyVersion:
        policy = self.get_policy(policy_id)
        updated = self._transition(
            policy,
            PolicyStatus.APPROVED,
            approved_at=_now_iso(),
            approved_by=approved_by,
        )
        self._audit(AuditEventType.POLICY_APPROVED, policy.id, actor=approved_by)
        return updated

    def archive_policy(self, policy_id: str, actor: Optional[str] = None) -> PolicyVersion:
        """Soft-delete a policy.

        Raises:
            PolicyTransitionError: For Applied (supersede instead) or already
                Archived policies.
        """
        policy = self.get_policy(policy_id)
        updated = self._transition(policy, PolicyStatus.ARCHIVED, archived_at=_now_iso())
        self._audit(AuditEventType.POLICY_ARCHIVED, policy.id, actor=actor)
        return updated

    # -------------------------------------------------------------------------
    # Diff / preview
    # -------------------------------------------------------------------------

    def diff_candidate(
        self,
        validation_frequencies: Optional[Mapping[str, int]],
        rule_markers: Sequence[RuleMarker] = (),
        rule_set: Optional[RuleSet] = None,
    ) -> PolicyDiff:
        """Diff arbitrary candidate content against the active configuration."""
        snapshot = self.configuration.current
        return diff_policy(
            snapshot.frequencies,
            validation_frequencies,
            rule_markers,
            current_rule_set=snapshot.rule_set,
            candidate_rule_set=rule_set,
        )

    def diff_policy(self, policy_id: str) -> PolicyDiff:
        """Diff a stored policy against the configuration active right now."""
        policy = self.get_policy(policy_id)
        return self.diff_candidate(
            policy.validation_frequencies,
            policy.rule_markers,
            self._candidate_rule_set(policy),
        )

    def preview_candidate(
        self,
        validation_frequencies: Optional[Mapping[str, int]],
        rule_set: Optional[RuleSet] = None,
        include_unchanged: bool = False,
    ) -> PolicyPreview:
        """Simulate candidate content over the Active inventory. Read-only."""
        frequencies = effective_frequencies(self.configuration.current.frequencies, validation_frequencies)
        return preview_retiering(
            self.store.list_records(ACTIVE_RECORDS),
            frequencies,
            rule_set=rule_set,
            include_unchanged=include_unchanged,
        )

    def preview_policy(self, policy_id: str, include_unchanged: bool = False) -> PolicyPreview:
        policy = self.get_policy(policy_id)
        return self.preview_candidate(
            policy.validation_frequencies,
            self._candidate_rule_set(policy),
            include_unchanged=include_unchanged,
        )

    # -------------------------------------------------------------------------
    # Apply
    # -------------------------------------------------------------------------

    def _bring_record_in_line(
        self,
        record: InventoryRecord,
        frequencies: Mapping[str, int],
        rule_set: Optional[RuleSet],
        policy_id: str,
    ) -> bool:
        """Write the policy's schedule (and tier) onto one record.

        Returns:
            True if the record was written.
        """
        decision = None
        if rule_set is not None and record.attributes:
            decision = classify(record.attributes, rule_set)

        projection = project_record(record, frequencies, decision.tier if decision else None)

        if decision is not None:
            stored = self.store.get_decision(record.entity_id)
            if stored is None or stored.decision != decision:
                self.store.create_decision(record.entity_id, decision, policy_id=policy_id)

        if not is_affected(projection):
            return False

        self.store.update_record(
            record.id,
            {
                "tier": projection.new_tier,
                "validation_frequency_months": projection.new_frequency,
                "next_validation_due": projection.new_due_date,
            },
        )
        return True

    def apply_policy(self, policy_id: str, applied_by: Optional[str] = None) -> ApplyResult:
        """Apply an Approved policy (or re-drive an Applied one).

        Raises:
            PolicyNotFoundError: Unknown policy.
            PolicyTransitionError: Policy is not Approved or Applied.
            ConfigError: The policy's content is invalid for the target rule set,
                or an Active record would land on a tier without a frequency.

        Returns:
            ApplyResult. Record-level failures are reported in errors with
            success=False; they never raise.
        """
        with self._apply_lock, self.configuration.write_lock:
            policy = self.get_policy(policy_id)
            if policy.status not in (PolicyStatus.APPROVED, PolicyStatus.APPLIED):
                raise PolicyTransitionError(
                    f"Policy {policy.id} is {policy.status.value}; only Approved policies can be applied"
                )

            snapshot = self.configuration.current
            candidate_rule_set = self._candidate_rule_set(policy)
            target_rule_set = candidate_rule_set or snapshot.rule_set

            frequencies = {
                tier: months
                for tier, months in effective_frequencies(
                    snapshot.frequencies, policy.validation_frequencies
                ).items()
                if tier in target_rule_set.tiers
            }
            errors = check_frequencies(frequencies, target_rule_set)
            errors.extend(self._uncovered_tiers(frequencies, target_rule_set, candidate_rule_set))
            if errors:
                raise ConfigError(errors, source=f"policy {policy.id}")

            policy = policy.model_copy(
                update={
                    "apply_started_at": _now_iso(),
                    "apply_attempts": policy.apply_attempts + 1,
                    "last_apply_errors": [],
                }
            )
            self.store.save_policy(policy)
            logger.info(f"Applying policy {policy.id} (attempt {policy.apply_attempts})")

            processed, changed, failures = self._apply_to_records(
                policy.id, frequencies, candidate_rule_set
            )

            if not failures:
                try:
                    policy = self._commit(policy, frequencies, target_rule_set, candidate_rule_set)
                except RiskTieringError as e:
                    failures.append(f"Commit failed: {e}")

            if failures:
                return self._fail(policy, changed, failures, frequencies, applied_by)

        logger.info(
            f"Applied policy {policy.id}: {processed} records in line, {changed} written"
        )
        self._audit(
            AuditEventType.POLICY_APPLIED,
            policy.id,
            actor=applied_by,
            validation_frequencies=frequencies,
            records_updated=processed,
            records_changed=changed,
        )
        return ApplyResult(
            policy_id=policy.id,
            success=True,
            records_updated=processed,
            records_changed=changed,
            validation_frequencies=frequencies,
            applied_at=policy.applied_at,
        )

    def _uncovered_tiers(
        self,
        frequencies: Mapping[str, int],
        target_rule_set: RuleSet,
        candidate_rule_set: Optional[RuleSet],
    ) -> List[str]:
        """Tiers Active records would land on that the target has no frequency for."""
        uncovered: Dict[str, List[str]] = {}
        for record in self.store.list_records(ACTIVE_RECORDS):
            tier = reclassified_tier(record, candidate_rule_set)
            if tier not in target_rule_set.tiers or tier not in frequencies:
                uncovered.setdefault(tier, []).append(record.id)
        return [
            f"Tier {tier} used by {len(ids)} record(s) ({', '.join(ids[:5])}) has no validation frequency"
            for tier, ids in sorted(uncovered.items())
        ]

    def _apply_to_records(self, policy_id: str, frequencies: Mapping[str, int], rule_set: Optional[RuleSet]):
        processed = 0
        changed = 0
        failures: List[str] = []

        records = self.store.list_records(ACTIVE_RECORDS)
        try:
            for batch_number, batch in enumerate(_batched(records, self.batch_size), start=1):
                for record in batch:
                    try:
                        if self._bring_record_in_line(record, frequencies, rule_set, policy_id):
                            changed += 1
                        processed += 1
                    except RiskTieringError as e:
                        logger.error(f"Failed to update record {record.id}: {e}")
                        failures.append(f"Failed to update record {record.id}: {e}")
                logger.debug(f"Policy {policy_id}: batch {batch_number} done ({processed} records)")
        except RiskTieringError as e:
            logger.error(f"Record scan failed during apply of {policy_id}: {e}")
            failures.append(f"Record scan failed: {e}")

        return processed, changed, failures

    def _commit(
        self,
        policy: PolicyVersion,
        frequencies: Mapping[str, int],
        target_rule_set: RuleSet,
        candidate_rule_set: Optional[RuleSet],
    ) -> PolicyVersion:
        now = _now_iso()
        with self.store.transaction():
            for other in self.store.list_policies(PolicyStatus.APPLIED):
                if other.id == policy.id:
                    continue
                ensure_transition(other.id, other.status, PolicyStatus.ARCHIVED, supersede=True)
                self.store.save_policy(
                    other.model_copy(update={"status": PolicyStatus.ARCHIVED, "archived_at": now})
                )
                logger.info(f"Policy {other.id} superseded by {policy.id}")

            self.store.set_active_configuration(
                ActiveConfigurationRecord(
                    policy_id=policy.id,
                    validation_frequencies=dict(frequencies),
                    rule_set_document=target_rule_set.to_document(),
                    activated_at=now,
                )
            )
            if policy.status != PolicyStatus.APPLIED:
                ensure_transition(policy.id, policy.status, PolicyStatus.APPLIED)
            policy = policy.model_copy(
                update={
                    "status": PolicyStatus.APPLIED,
                    "applied_at": policy.applied_at or now,
                    "last_apply_errors": [],
                }
            )
            self.store.save_policy(policy)

        self.configuration.activate(
            rule_set=candidate_rule_set,
            frequencies=frequencies,
            policy_id=policy.id,
        )
        return policy

    def _fail(
        self,
        policy: PolicyVersion,
        changed: int,
        failures: List[str],
        frequencies: Mapping[str, int],
        applied_by: Optional[str],
    ) -> ApplyResult:
        logger.error(f"Apply of policy {policy.id} failed with {len(failures)} error(s); status stays {policy.status.value}")
        try:
            self.store.save_policy(policy.model_copy(update={"last_apply_errors": failures}))
        except RiskTieringError as e:
            logger.error(f"Could not record apply errors on policy {policy.id}: {e}")
        self._audit(
            AuditEventType.POLICY_APPLY_FAILED,
            policy.id,
            actor=applied_by,
            errors=failures[:20],
            records_changed=changed,
        )
        return ApplyResult(
            policy_id=policy.id,
            success=False,
            records_updated=changed,
            records_changed=changed,
            errors=failures,
            validation_frequencies=dict(frequencies),
        )

"""Active configuration registry.

Holds the rule set and validation frequency table that classification and
scheduling read. The pair is published as one immutable snapshot; activation
replaces the snapshot reference in a single assignment, so a reader either
sees the complete old configuration or the complete new one.
"""

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

from risk_tiering.config.loader import check_frequencies, load_rule_set
from risk_tiering.exceptions import ConfigError
from risk_tiering.schemas.rule_set import RuleSet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfigurationSnapshot:
    """One consistent (rule set, frequencies) pair.

    Attributes:
        rule_set: Active rule set.
        frequencies: Read-only tier -> months table.
        policy_id: Policy that installed this configuration, if any.
        generation: Monotonic counter, bumped on every activation.
    """

    rule_set: RuleSet
    frequencies: Mapping[str, int]
    policy_id: Optional[str] = None
    generation: int = 0

    def frequency_for(self, tier: str) -> Optional[int]:
        return self.frequencies.get(tier)


class ActiveConfiguration:
    """Process-wide holder of the active configuration snapshot.

    Readers call `current` and keep the returned snapshot for the duration
    of their work. Writers (policy application) serialize on `write_lock`.
    Earlier rule set versions are retained so decisions can be re-checked
    against the version they were made with.
    """

    def __init__(
        self,
        rule_set: RuleSet,
        frequencies: Mapping[str, int],
        policy_id: Optional[str] = None,
    ):
        errors = check_frequencies(frequencies, rule_set)
        if errors:
            raise ConfigError(errors, source="initial configuration")

        self.write_lock = threading.RLock()
        self._versions: Dict[str, RuleSet] = {rule_set.version: rule_set}
        self._snapshot = ConfigurationSnapshot(
            rule_set=rule_set,
            frequencies=MappingProxyType(dict(frequencies)),
            policy_id=policy_id,
        )

    @property
    def current(self) -> ConfigurationSnapshot:
        return self._snapshot

    def activate(
        self,
        rule_set: Optional[RuleSet] = None,
        frequencies: Optional[Mapping[str, int]] = None,
        policy_id: Optional[str] = None,
    ) -> ConfigurationSnapshot:
        """Publish a new snapshot.

        Unspecified parts are carried over from the current snapshot.

        Raises:
            ConfigError: If the frequencies are invalid for the rule set. The
                current snapshot stays active.
        """
        with self.write_lock:
            previous = self._snapshot
            new_rule_set = rule_set or previous.rule_set
            new_frequencies = dict(previous.frequencies if frequencies is None else frequencies)

            errors = check_frequencies(new_frequencies, new_rule_set)
            if errors:
                raise ConfigError(errors, source=f"policy {policy_id}" if policy_id else None)

            self._versions[new_rule_set.version] = new_rule_set
            self._snapshot = ConfigurationSnapshot(
                rule_set=new_rule_set,
                frequencies=MappingProxyType(new_frequencies),
                policy_id=policy_id if policy_id is not None else previous.policy_id,
                generation=previous.generation + 1,
            )

        logger.info(
            f"Activated configuration generation {self._snapshot.generation} "
            f"(rule set {new_rule_set.version}, policy {self._snapshot.policy_id})"
        )
        return self._snapshot

    def activate_rule_set(self, source: Union[Path, str, Mapping[str, Any]]) -> ConfigurationSnapshot:
        """Load a rule set and make it active.

        Raises:
            ConfigError: If the rule set is invalid. The previously active
                rule set continues to be used.
        """
        try:
            rule_set = load_rule_set(source)
        except ConfigError as e:
            logger.error(f"Rule set rejected, keeping version {self.current.rule_set.version}: {e}")
            raise
        return self.activate(rule_set=rule_set)

    def get_rule_set(self, version: str) -> RuleSet:
        """Get a retained rule set by version.

        Raises:
            KeyError: If the version was never active in this process.
        """
        try:
            return self._versions[version]
        except KeyError:
            raise KeyError(f"Rule set version not retained: {version}")

    def versions(self):
        return sorted(self._versions)

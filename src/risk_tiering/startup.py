"""Centralized initialization for risk_tiering entry points.

Loads .env, reads runtime settings from the environment, restores the
persisted active configuration (or the bundled defaults), and wires the
store, ledger and services together.

Environment variables:
    RISK_TIERING_HOME              data directory (default: ./output)
    RISK_TIERING_RULES             rule set YAML used when nothing is persisted
    RISK_TIERING_FREQUENCIES       frequency YAML used when nothing is persisted
    RISK_TIERING_AI_ENABLED        "1"/"true" to use the OpenAI policy extractor
    RISK_TIERING_APPLY_BATCH_SIZE  records per apply batch (default: 100)
    RISK_TIERING_UPCOMING_DAYS     "upcoming" validation window (default: 30)
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from risk_tiering.config.loader import (
    load_default_frequencies,
    load_default_rule_set,
    load_rule_set,
    load_validation_frequencies,
)
from risk_tiering.config.registry import ActiveConfiguration
from risk_tiering.exceptions import ConfigError, ExtractionConfigurationError
from risk_tiering.policy.extraction import OpenAIPolicyExtractor
from risk_tiering.policy.service import PolicyGovernanceService
from risk_tiering.services.audit_ledger import AuditLedger
from risk_tiering.services.inventory import InventoryService
from risk_tiering.services.openai_client import ai_credentials_available
from risk_tiering.storage.filesystem import FileRecordStore
from risk_tiering.storage.protocol import RecordStore

logger = logging.getLogger(__name__)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError([f"{name} must be an integer, got {raw!r}"])
    if value <= 0:
        raise ConfigError([f"{name} must be positive, got {value}"])
    return value


@dataclass
class Settings:
    """Runtime settings."""

    home: Path
    rules_path: Optional[Path] = None
    frequencies_path: Optional[Path] = None
    ai_enabled: bool = False
    apply_batch_size: int = 100
    upcoming_days: int = 30

    @property
    def logs_dir(self) -> Path:
        return self.home / "logs"

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "Settings":
        if load_env_file:
            load_dotenv()
        rules = os.getenv("RISK_TIERING_RULES")
        frequencies = os.getenv("RISK_TIERING_FREQUENCIES")
        return cls(
            home=Path(os.getenv("RISK_TIERING_HOME", "output")),
            rules_path=Path(rules) if rules else None,
            frequencies_path=Path(frequencies) if frequencies else None,
            ai_enabled=os.getenv("RISK_TIERING_AI_ENABLED", "").strip().lower() in _TRUE_VALUES,
            apply_batch_size=_env_int("RISK_TIERING_APPLY_BATCH_SIZE", 100),
            upcoming_days=_env_int("RISK_TIERING_UPCOMING_DAYS", 30),
        )


@dataclass
class AppContext:
    """Wired application objects."""

    settings: Settings
    store: RecordStore
    configuration: ActiveConfiguration
    ledger: AuditLedger
    inventory: InventoryService
    policies: PolicyGovernanceService


def restore_configuration(store: RecordStore, settings: Settings) -> ActiveConfiguration:
    """Rebuild the active configuration.

    The configuration persisted by the last policy application wins; without
    one, the configured (or bundled default) rule set and frequencies are used.
    """
    active = store.get_active_configuration()
    if active is not None and active.rule_set_document:
        rule_set = load_rule_set(active.rule_set_document)
        logger.debug(f"Restored active configuration from policy {active.policy_id}")
        return ActiveConfiguration(rule_set, active.validation_frequencies, policy_id=active.policy_id)

    rule_set = load_rule_set(settings.rules_path) if settings.rules_path else load_default_rule_set()
    if settings.frequencies_path:
        frequencies = load_validation_frequencies(settings.frequencies_path, rule_set)
    else:
        frequencies = load_default_frequencies(rule_set)
    return ActiveConfiguration(rule_set, frequencies)


def build_extractor(settings: Settings) -> Optional[OpenAIPolicyExtractor]:
    """Create the AI extractor when enabled and configured; None otherwise."""
    if not settings.ai_enabled:
        return None
    if not ai_credentials_available():
        logger.warning("AI extraction enabled but no OpenAI credentials found; using marker parsing")
        return None
    try:
        return OpenAIPolicyExtractor()
    except ExtractionConfigurationError as e:
        logger.warning(f"AI extraction unavailable, using marker parsing: {e}")
        return None


def build_context(settings: Optional[Settings] = None) -> AppContext:
    """Load settings (if not given) and wire all services."""
    settings = settings or Settings.from_env()
    store = FileRecordStore(settings.home)
    configuration = restore_configuration(store, settings)
    ledger = AuditLedger(settings.logs_dir)

    return AppContext(
        settings=settings,
        store=store,
        configuration=configuration,
        ledger=ledger,
        inventory=InventoryService(store, configuration, ledger, upcoming_days=settings.upcoming_days),
        policies=PolicyGovernanceService(
            store,
            configuration,
            extractor=build_extractor(settings),
            ledger=ledger,
            batch_size=settings.apply_batch_size,
        ),
    )


# Module-level state
_context: Optional[AppContext] = None


def ensure_initialized() -> AppContext:
    """Build the application context once per process.

    Safe to call multiple times; later calls return the same context.
    """
    global _context
    if _context is None:
        _context = build_context()
        logger.debug(f"Initialized risk tiering home at {_context.settings.home}")
    return _context


def reset_for_testing() -> None:
    """Forget the cached context. For tests only."""
    global _context
    _context = None

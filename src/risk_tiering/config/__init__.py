"""Rule set configuration loading and the active configuration registry."""

from risk_tiering.config.loader import (
    check_frequencies,
    find_cycle,
    load_default_frequencies,
    load_default_rule_set,
    load_rule_set,
    load_validation_frequencies,
)
from risk_tiering.config.registry import ActiveConfiguration, ConfigurationSnapshot

__all__ = [
    "ActiveConfiguration",
    "ConfigurationSnapshot",
    "check_frequencies",
    "find_cycle",
    "load_default_frequencies",
    "load_default_rule_set",
    "load_rule_set",
    "load_validation_frequencies",
]

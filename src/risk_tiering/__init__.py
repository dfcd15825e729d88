"""
Risk Tiering - classify models and automated systems into risk tiers.

This package provides a deterministic rule engine for tier assignment and a
governance workflow that turns policy documents into validated frequency and
rule changes applied across an inventory.
"""

__version__ = "0.1.0"

from risk_tiering.config import ActiveConfiguration, load_rule_set
from risk_tiering.engine import ClassificationEngine, classify

__all__ = [
    "ActiveConfiguration",
    "ClassificationEngine",
    "classify",
    "load_rule_set",
]

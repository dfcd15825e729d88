"""Deterministic tiering engine: condition evaluator and classifier."""

from risk_tiering.engine.classifier import ClassificationEngine, classify
from risk_tiering.engine.evaluator import EvaluationAnomaly, evaluate

__all__ = ["ClassificationEngine", "EvaluationAnomaly", "classify", "evaluate"]

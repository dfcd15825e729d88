"""Exception hierarchy for the risk tiering engine."""

from typing import Iterable, List, Optional


class RiskTieringError(Exception):
    """Base exception for all risk tiering errors."""

    pass


class ConfigError(RiskTieringError):
    """Raised when a rule set or frequency table fails validation.

    All problems found during a load are collected so that a single
    rejection reports every broken rule at once.
    """

    def __init__(self, errors: Iterable[str], source: Optional[str] = None):
        self.errors: List[str] = list(errors)
        self.source = source
        prefix = f"Invalid configuration ({source})" if source else "Invalid configuration"
        super().__init__(f"{prefix}: " + "; ".join(self.errors))


class PolicyNotFoundError(RiskTieringError):
    """Raised when a policy version id is unknown."""

    pass


class RecordNotFoundError(RiskTieringError):
    """Raised when an inventory record id is unknown."""

    pass


class PolicyTransitionError(RiskTieringError):
    """Raised for an illegal policy lifecycle transition."""

    pass


class StoreError(RiskTieringError):
    """Raised by record stores when a read or write fails."""

    pass


class ExtractionError(RiskTieringError):
    """Base exception for policy extraction errors."""

    pass


class APIError(ExtractionError):
    """Exception raised for API-related errors."""

    pass


class ExtractionConfigurationError(ExtractionError):
    """Exception raised when the AI extractor cannot be configured."""

    pass

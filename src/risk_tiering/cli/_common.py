"""Shared CLI utilities."""

import json
import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from rich.logging import RichHandler

from risk_tiering.exceptions import ConfigError, RiskTieringError
from risk_tiering.startup import AppContext
from risk_tiering.startup import ensure_initialized as _ensure_initialized


logger = logging.getLogger(__name__)


def ensure_initialized() -> AppContext:
    """Load settings and wire services; exit with an error on bad configuration."""
    try:
        return _ensure_initialized()
    except RiskTieringError as e:
        from risk_tiering.cli._console import print_err
        print_err(f"Initialization failed: {e}")
        raise SystemExit(1)


def setup_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure logging with Rich handler."""
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO

    handler = RichHandler(
        console=None,  # Use default stderr
        show_time=True,
        show_path=False,
        markup=True,
        rich_tracebacks=True,
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # Suppress noisy third-party loggers
    for name in ("openai._base_client", "httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def load_document(path: Path) -> Dict[str, Any]:
    """Read a JSON or YAML mapping from disk.

    Raises:
        ConfigError: If the file is missing, unparseable or not a mapping.
    """
    if not path.exists():
        raise ConfigError([f"File not found: {path}"], source=str(path))
    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError([f"Could not parse document: {e}"], source=str(path))
    if not isinstance(data, dict):
        raise ConfigError(["Document must contain a mapping at the top level"], source=str(path))
    return data


def parse_frequencies(values: Optional[list]) -> Optional[Dict[str, int]]:
    """Parse repeated TIER=MONTHS options.

    Raises:
        ValueError: If an item is not TIER=MONTHS with integer months.
    """
    if not values:
        return None
    frequencies = {}
    for item in values:
        tier, sep, months = item.partition("=")
        if not sep or not tier.strip():
            raise ValueError(f"Invalid frequency '{item}'. Expected TIER=MONTHS, e.g. T3=6")
        try:
            frequencies[tier.strip()] = int(months)
        except ValueError:
            raise ValueError(f"Invalid months in '{item}'. Expected an integer")
    return frequencies


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse an ISO date option (YYYY-MM-DD)."""
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Invalid date '{value}'. Expected YYYY-MM-DD")


def fail(message: str) -> None:
    """Print an error and exit with status 1."""
    from risk_tiering.cli._console import print_err
    print_err(message)
    raise SystemExit(1)

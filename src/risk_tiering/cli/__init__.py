"""CLI package: Typer-based command-line interface.

Usage:
    python -m risk_tiering.cli --help
    python -m risk_tiering.cli policy --help
"""

from risk_tiering.cli._app import app

# Register command modules (side-effect imports)
import risk_tiering.cli.cmd_classify  # noqa: F401
import risk_tiering.cli.cmd_config  # noqa: F401
import risk_tiering.cli.cmd_inventory  # noqa: F401
import risk_tiering.cli.cmd_policy  # noqa: F401
import risk_tiering.cli.cmd_audit  # noqa: F401

__all__ = ["app"]

"""Entry point for ``python -m risk_tiering.cli``."""

from risk_tiering.cli import app

if __name__ == "__main__":
    app()

"""Root Typer application and the options shared by every command."""

from typing import Optional

import typer

app = typer.Typer(
    name="risk-tiering",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=False,
)


def _show_version(value: bool) -> None:
    if value:
        from risk_tiering import __version__

        typer.echo(f"risk-tiering {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug-level logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Warnings and errors only"),
    json_output: bool = typer.Option(False, "--json", help="Machine-readable JSON on stdout"),
    version: Optional[bool] = typer.Option(
        None, "--version", callback=_show_version, is_eager=True, help="Show the version and exit"
    ),
):
    """Classify entities into risk tiers and govern validation policies.

    Data lives under RISK_TIERING_HOME (default: ./output).
    """
    ctx.ensure_object(dict)
    ctx.obj.update(verbose=verbose, quiet=quiet, json=json_output)

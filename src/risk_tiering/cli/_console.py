"""Rich consoles and output helpers shared by the commands.

Messages, tables and prompts go to stderr; --json results go to stdout so
they can be piped to jq.
"""

import json as json_mod
import sys
from typing import List, Optional, Sequence

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

console = Console(stderr=True)
stdout_console = Console(file=sys.stdout)


def print_ok(msg: str) -> None:
    console.print(f"[green]✓[/green] {msg}")


def print_err(msg: str) -> None:
    console.print(f"[red]✗[/red] {msg}")


def print_warn(msg: str) -> None:
    console.print(f"[yellow]![/yellow] {msg}")


def tier_markup(tier: str, tier_keys: Sequence[str]) -> str:
    """Color a tier by its rank: most severe red, least severe green.

    Args:
        tier: Tier key to render.
        tier_keys: All tier keys, most severe first.
    """
    if tier not in tier_keys or len(tier_keys) < 2:
        return f"[bold]{tier}[/bold]"
    rank = list(tier_keys).index(tier)
    if rank == 0:
        color = "red"
    elif rank == len(tier_keys) - 1:
        color = "green"
    else:
        color = "yellow"
    return f"[bold {color}]{tier}[/bold {color}]"


def output_result(data: dict, *, ctx: typer.Context, title: str = "") -> None:
    """Print a result as JSON (stdout) or a Rich panel (stderr)."""
    if ctx.obj.get("json"):
        stdout_console.print_json(data=data)
        return
    formatted = json_mod.dumps(data, indent=2, ensure_ascii=False, default=str)
    if title:
        console.print(Panel(formatted, title=title, border_style="blue"))
    else:
        console.print(formatted)


def output_table(
    rows: List[dict],
    *,
    ctx: typer.Context,
    title: str = "",
    columns: Optional[List[str]] = None,
) -> None:
    """Print rows as a JSON array or a Rich table."""
    if ctx.obj.get("json"):
        stdout_console.print_json(data=rows)
        return

    if not rows:
        console.print("[dim]No data[/dim]")
        return

    cols = columns or list(rows[0].keys())
    table = Table(title=title, show_lines=False)
    for col in cols:
        table.add_column(col)
    for row in rows:
        table.add_row(*[str(row.get(c, "")) for c in cols])
    console.print(table)


def confirm(message: str, *, ctx: typer.Context, assume_yes: bool = False) -> bool:
    """Ask for confirmation on stderr.

    JSON mode and --force never prompt, so scripted runs do not block.
    """
    if assume_yes or ctx.obj.get("json"):
        return True
    return typer.confirm(message, default=False, err=True)

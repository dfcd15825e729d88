"""Config commands: validate rule sets and frequency tables, show the active configuration."""

from pathlib import Path
from typing import Optional

import typer

from risk_tiering.cli._app import app
from risk_tiering.cli._common import ensure_initialized, setup_logging
from risk_tiering.cli._console import console, output_result, print_err, print_ok
from risk_tiering.config.loader import load_rule_set, load_validation_frequencies
from risk_tiering.exceptions import ConfigError

config_app = typer.Typer(
    no_args_is_help=True,
    help="Validate and inspect tiering configuration.",
)
app.add_typer(config_app, name="config")


@config_app.command("validate", help="Validate a rule set (and optional artifacts/frequency files).")
def config_validate(
    ctx: typer.Context,
    rules_file: Path = typer.Argument(..., help="Rule set YAML file"),
    artifacts_file: Optional[Path] = typer.Option(None, "--artifacts", help="Artifact definitions YAML"),
    frequencies_file: Optional[Path] = typer.Option(None, "--frequencies", help="Validation frequency YAML"),
):
    """Load the files and report every problem found."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])

    try:
        rule_set = load_rule_set(rules_file, artifacts_file)
        frequencies = (
            load_validation_frequencies(frequencies_file, rule_set) if frequencies_file else None
        )
    except ConfigError as e:
        if ctx.obj["json"]:
            output_result({"valid": False, "errors": e.errors}, ctx=ctx)
        else:
            print_err(f"Invalid configuration: {len(e.errors)} problem(s)")
            for error in e.errors:
                console.print(f"  - {error}")
        raise SystemExit(1)

    result = {
        "valid": True,
        "version": rule_set.version,
        "tiers": rule_set.tier_keys(),
        "rules": len(rule_set.rules),
        "artifacts": len(rule_set.artifacts),
        "validation_frequencies": frequencies,
    }
    if ctx.obj["json"]:
        output_result(result, ctx=ctx)
        return
    print_ok(
        f"Rule set {rule_set.version} is valid: {len(rule_set.rules)} rules, "
        f"tiers {', '.join(rule_set.tier_keys())}"
    )
    if frequencies:
        console.print("  Frequencies: " + ", ".join(f"{t}={m}mo" for t, m in frequencies.items()))


@config_app.command("show", help="Show the active rule set version and frequencies.")
def config_show(ctx: typer.Context):
    """Show the active configuration."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])
    context = ensure_initialized()

    snapshot = context.configuration.current
    output_result(
        {
            "rule_set_version": snapshot.rule_set.version,
            "policy_id": snapshot.policy_id,
            "generation": snapshot.generation,
            "tiers": snapshot.rule_set.tier_keys(),
            "validation_frequencies": dict(snapshot.frequencies),
        },
        ctx=ctx,
        title="Active configuration",
    )

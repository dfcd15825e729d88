"""Classify command: run the tiering rules over an entity's attributes."""

from pathlib import Path
from typing import Optional

import typer

from risk_tiering.cli._app import app
from risk_tiering.cli._common import ensure_initialized, fail, load_document, setup_logging
from risk_tiering.cli._console import console, output_result, print_ok, print_warn, tier_markup
from risk_tiering.exceptions import RiskTieringError


@app.command("classify", help="Classify an entity from a JSON/YAML attributes file.")
def classify_cmd(
    ctx: typer.Context,
    attributes_file: Path = typer.Argument(..., help="JSON or YAML file with intake attributes"),
    entity_id: Optional[str] = typer.Option(
        None, "--entity-id", "-e", help="Entity id to store the decision under (default: file stem)"
    ),
    rule_set_version: Optional[str] = typer.Option(
        None, "--rule-set-version", help="Classify with a retained earlier rule set version"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Do not store the decision"),
):
    """Classify one entity and print its decision."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])
    context = ensure_initialized()

    try:
        attributes = load_document(attributes_file)
        if dry_run:
            decision = context.inventory.engine.classify(attributes, rule_set_version)
        else:
            decision = context.inventory.classify_entity(
                entity_id or attributes_file.stem, attributes, rule_set_version
            )
    except KeyError as e:
        fail(f"Unknown rule set version: {e}")
    except RiskTieringError as e:
        fail(str(e))

    if ctx.obj["json"]:
        output_result(decision.model_dump(mode="json"), ctx=ctx)
        return

    tier_keys = context.configuration.current.rule_set.tier_keys()
    print_ok(f"Tier {tier_markup(decision.tier, tier_keys)} (model: {decision.is_model.value}, rules {decision.rule_set_version})")
    console.print(f"  {decision.rationale_summary}")
    if decision.triggered_rules:
        console.print("\n  Triggered rules:")
        for rule in decision.triggered_rules:
            console.print(f"    - {rule.id} ({rule.tier}): {rule.name}")
    if decision.required_artifacts:
        console.print(f"\n  Required artifacts: {', '.join(decision.required_artifacts)}")
    if decision.risk_flags:
        console.print(f"  Risk flags: {', '.join(decision.risk_flags)}")
    for artifact in decision.missing_evidence:
        print_warn(f"Missing evidence: {artifact}")

"""Inventory commands: onboard entities, record validations, report status."""

from pathlib import Path
from typing import Optional

import typer

from risk_tiering.cli._app import app
from risk_tiering.cli._common import (
    ensure_initialized,
    fail,
    load_document,
    parse_date,
    setup_logging,
)
from risk_tiering.cli._console import console, output_result, output_table, print_ok, tier_markup
from risk_tiering.exceptions import RiskTieringError
from risk_tiering.schemas.inventory import InventoryStatus, ValidationStatus

inventory_app = typer.Typer(
    no_args_is_help=True,
    help="Track classified entities and their validation schedules.",
)
app.add_typer(inventory_app, name="inventory")


@inventory_app.command("add", help="Classify an entity and add it to the inventory.")
def inventory_add(
    ctx: typer.Context,
    entity_id: str = typer.Argument(..., help="Entity id"),
    attributes_file: Optional[Path] = typer.Option(
        None, "--attributes", "-a", help="JSON/YAML intake attributes (default: stored decision)"
    ),
    name: str = typer.Option("", "--name", "-n", help="Display name"),
    onboarded_at: Optional[str] = typer.Option(None, "--onboarded", help="Onboarding date YYYY-MM-DD"),
    actor: Optional[str] = typer.Option(None, "--by", help="Operator"),
):
    """Add an entity to the inventory."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])
    context = ensure_initialized()

    try:
        record = context.inventory.add_to_inventory(
            entity_id,
            attributes=load_document(attributes_file) if attributes_file else None,
            name=name,
            onboarded_at=parse_date(onboarded_at),
            actor=actor,
        )
    except (RiskTieringError, ValueError) as e:
        fail(str(e))

    if ctx.obj["json"]:
        output_result(record.model_dump(mode="json"), ctx=ctx)
        return
    print_ok(
        f"Added {entity_id} as {record.id}: tier {record.tier}, "
        f"validate every {record.validation_frequency_months} months, next due {record.next_validation_due}"
    )


@inventory_app.command("record-validation", help="Record a completed validation.")
def inventory_record_validation(
    ctx: typer.Context,
    record_id: str = typer.Argument(..., help="Inventory record id"),
    validation_date: str = typer.Option(..., "--date", help="Validation date YYYY-MM-DD"),
    validation_type: str = typer.Option("Periodic", "--type", help="Initial, Periodic, Triggered or Ad-hoc"),
    validated_by: Optional[str] = typer.Option(None, "--by", help="Validator"),
    result: Optional[str] = typer.Option(None, "--result", help="Overall result"),
    notes: Optional[str] = typer.Option(None, "--notes", help="Free-text notes"),
):
    """Record a validation and reschedule."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])
    context = ensure_initialized()

    try:
        record = context.inventory.record_validation(
            record_id,
            parse_date(validation_date),
            validation_type=validation_type,
            validated_by=validated_by,
            overall_result=result,
            notes=notes,
        )
    except (RiskTieringError, ValueError) as e:
        fail(str(e))

    if ctx.obj["json"]:
        output_result(record.model_dump(mode="json"), ctx=ctx)
        return
    print_ok(f"Recorded validation for {record_id}; next due {record.next_validation_due}")


@inventory_app.command("reclassify", help="Re-run classification on a record's stored attributes.")
def inventory_reclassify(
    ctx: typer.Context,
    record_id: str = typer.Argument(..., help="Inventory record id"),
    actor: Optional[str] = typer.Option(None, "--by", help="Operator"),
):
    """Re-classify one record."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])
    context = ensure_initialized()

    try:
        record, decision = context.inventory.reclassify_record(record_id, actor=actor)
    except RiskTieringError as e:
        fail(str(e))

    if ctx.obj["json"]:
        output_result({"record": record.model_dump(mode="json"), "decision": decision.model_dump(mode="json")}, ctx=ctx)
        return
    print_ok(f"{record_id} is tier {record.tier}; next due {record.next_validation_due}")


@inventory_app.command("list", help="List inventory records.")
def inventory_list(
    ctx: typer.Context,
    status: Optional[InventoryStatus] = typer.Option(None, "--status", help="Filter by tracking status"),
    tier: Optional[str] = typer.Option(None, "--tier", help="Filter by tier"),
    due: Optional[ValidationStatus] = typer.Option(None, "--due", help="overdue, upcoming or current"),
):
    """List inventory records."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])
    context = ensure_initialized()

    records = context.inventory.list_records(status=status, tier=tier, due=due)
    output_table(
        [
            {
                "id": r.id,
                "entity": r.entity_id,
                "name": r.name,
                "tier": r.tier,
                "months": r.validation_frequency_months,
                "last_validation": r.last_validation_date.isoformat() if r.last_validation_date else "",
                "next_due": r.next_validation_due.isoformat(),
                "validation": context.inventory.validation_status(r).value,
            }
            for r in records
        ],
        ctx=ctx,
        title="Inventory",
    )


@inventory_app.command("stats", help="Inventory counts by tier, status and validation status.")
def inventory_stats(ctx: typer.Context):
    """Show inventory statistics."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])
    context = ensure_initialized()

    stats = context.inventory.inventory_stats()
    if ctx.obj["json"]:
        output_result(stats.model_dump(mode="json"), ctx=ctx)
        return

    console.print(f"\n[bold]Inventory[/bold] ({stats.total} records, as of {stats.as_of})")
    tier_keys = context.configuration.current.rule_set.tier_keys()
    ordered = [t for t in tier_keys if t in stats.by_tier] + sorted(set(stats.by_tier) - set(tier_keys))
    by_tier = ", ".join(f"{tier_markup(t, tier_keys)}: {stats.by_tier[t]}" for t in ordered)
    console.print(f"  By tier: {by_tier or '-'}")
    for label, counts in (
        ("By status", stats.by_status),
        ("Validation", stats.by_validation_status),
    ):
        rendered = ", ".join(f"{k}: {v}" for k, v in sorted(counts.items())) or "-"
        console.print(f"  {label}: {rendered}")

"""Audit commands: inspect and verify the hash-chained audit ledger."""

from typing import Optional

import typer

from risk_tiering.cli._app import app
from risk_tiering.cli._common import ensure_initialized, setup_logging
from risk_tiering.cli._console import output_result, output_table, print_err, print_ok
from risk_tiering.schemas.audit import AuditEventType

audit_app = typer.Typer(
    no_args_is_help=True,
    help="Inspect the audit ledger.",
)
app.add_typer(audit_app, name="audit")


@audit_app.command("verify", help="Verify the integrity of the audit hash chain.")
def audit_verify(ctx: typer.Context):
    """Walk the ledger and check every link."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])
    context = ensure_initialized()

    report = context.ledger.verify_integrity()
    if ctx.obj["json"]:
        output_result(report.model_dump(mode="json"), ctx=ctx)
    elif report.valid:
        print_ok(f"Audit ledger intact ({report.total_records} entries)")
    else:
        print_err(f"Audit ledger broken: {report.error_type} - {report.error_details}")

    if not report.valid:
        raise SystemExit(1)


@audit_app.command("list", help="List recent audit events.")
def audit_list(
    ctx: typer.Context,
    event_type: Optional[AuditEventType] = typer.Option(None, "--type", help="Filter by event type"),
    subject_id: Optional[str] = typer.Option(None, "--subject", help="Filter by subject id"),
    limit: int = typer.Option(50, "--limit", help="Maximum events to show"),
):
    """List audit events, oldest first."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])
    context = ensure_initialized()

    events = context.ledger.query(event_type=event_type, subject_id=subject_id, limit=limit)
    output_table(
        [
            {
                "created_at": e.created_at,
                "type": e.event_type.value,
                "subject": e.subject_id,
                "actor": e.actor or "",
            }
            for e in events
        ],
        ctx=ctx,
        title="Audit events",
    )

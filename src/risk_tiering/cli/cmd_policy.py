"""Policy commands: create, analyze, diff, preview, approve, apply, archive."""

from pathlib import Path
from typing import List, Optional

import typer

from risk_tiering.cli._app import app
from risk_tiering.cli._common import (
    ensure_initialized,
    fail,
    load_document,
    parse_frequencies,
    setup_logging,
)
from risk_tiering.cli._console import (
    confirm,
    console,
    output_result,
    output_table,
    print_err,
    print_ok,
    print_warn,
)
from risk_tiering.exceptions import RiskTieringError
from risk_tiering.schemas.policy import PolicyDiff, PolicyStatus

policy_app = typer.Typer(
    no_args_is_help=True,
    help="Govern validation policies (create, analyze, approve, apply).",
)
app.add_typer(policy_app, name="policy")


def _print_diff(diff: PolicyDiff) -> None:
    console.print(f"\n  {diff.summary_of_changes}")
    changed = [c for c in diff.frequency_changes if c.changed]
    if changed:
        console.print("\n  Frequency changes:")
        for change in changed:
            current = f"{change.current}mo" if change.current is not None else "-"
            console.print(f"    {change.tier}: {current} -> {change.new}mo ({change.direction.value})")
    if diff.rule_changes:
        console.print("\n  Rule changes:")
        for change in diff.rule_changes:
            console.print(f"    [{change.kind.value}] {change.id}: {change.rationale}")
    if diff.impact_assessment:
        console.print(f"\n  Impact: {diff.impact_assessment}")


@policy_app.command("create", help="Create a Draft policy from a document and/or explicit content.")
def policy_create(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", "-n", help="Policy name"),
    document: Optional[Path] = typer.Option(None, "--document", "-d", help="Policy document (text/markdown)"),
    frequency: Optional[List[str]] = typer.Option(
        None, "--frequency", "-f", help="Explicit frequency TIER=MONTHS (repeatable)"
    ),
    rules_file: Optional[Path] = typer.Option(None, "--rules", help="Full candidate rule set YAML"),
    created_by: Optional[str] = typer.Option(None, "--by", help="Author"),
):
    """Create a policy version."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])
    context = ensure_initialized()

    if document is not None and not document.exists():
        fail(f"Document not found: {document}")

    try:
        policy = context.policies.create_policy(
            name,
            document_text=document.read_text(encoding="utf-8") if document else None,
            validation_frequencies=parse_frequencies(frequency),
            rule_set_document=load_document(rules_file) if rules_file else None,
            created_by=created_by,
        )
    except (RiskTieringError, ValueError) as e:
        fail(str(e))

    if ctx.obj["json"]:
        output_result(policy.model_dump(mode="json", exclude={"document_text"}), ctx=ctx)
        return
    print_ok(f"Created policy {policy.id} ({policy.status.value})")


@policy_app.command("analyze", help="Extract frequencies and rule changes, and compute the diff.")
def policy_analyze(
    ctx: typer.Context,
    policy_id: str = typer.Argument(..., help="Policy id"),
):
    """Analyze a Draft (or re-analyze an Analyzed) policy."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])
    context = ensure_initialized()

    try:
        policy = context.policies.analyze_policy(policy_id)
    except RiskTieringError as e:
        fail(str(e))

    if ctx.obj["json"]:
        output_result(policy.model_dump(mode="json", exclude={"document_text"}), ctx=ctx)
        return

    print_ok(f"Analyzed policy {policy.id} (confidence {policy.extraction_confidence or 0:.2f})")
    for note in policy.extraction_notes:
        print_warn(note)
    if policy.diff_summary:
        _print_diff(policy.diff_summary)


@policy_app.command("diff", help="Diff a policy against the active configuration.")
def policy_diff(
    ctx: typer.Context,
    policy_id: str = typer.Argument(..., help="Policy id"),
):
    """Show what would change."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])
    context = ensure_initialized()

    try:
        diff = context.policies.diff_policy(policy_id)
    except RiskTieringError as e:
        fail(str(e))

    if ctx.obj["json"]:
        output_result(diff.model_dump(mode="json"), ctx=ctx)
        return
    console.print(f"\n[bold]Policy {policy_id} vs active configuration[/bold]")
    _print_diff(diff)


@policy_app.command("preview", help="Simulate the policy over the inventory (read-only).")
def policy_preview(
    ctx: typer.Context,
    policy_id: str = typer.Argument(..., help="Policy id"),
    include_unchanged: bool = typer.Option(False, "--all", help="Also list unaffected records"),
):
    """Show schedule changes the policy would cause."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])
    context = ensure_initialized()

    try:
        preview = context.policies.preview_policy(policy_id, include_unchanged=include_unchanged)
    except RiskTieringError as e:
        fail(str(e))

    if ctx.obj["json"]:
        output_result(preview.model_dump(mode="json"), ctx=ctx)
        return

    summary = preview.summary
    console.print(
        f"\n[bold]{summary.total_affected}[/bold] of {summary.total_records} active records affected "
        f"({summary.earlier_due_dates} earlier, {summary.later_due_dates} later, "
        f"{summary.tier_changes} tier changes)\n"
    )
    output_table(
        [
            {
                "record": r.record_id,
                "entity": r.entity_id,
                "tier": r.new_tier if not r.tier_changed else f"{r.previous_tier} -> {r.new_tier}",
                "frequency": f"{r.previous_frequency} -> {r.new_frequency}",
                "due": f"{r.previous_due_date} -> {r.new_due_date}",
            }
            for r in preview.affected_records
        ],
        ctx=ctx,
        title=f"Preview of {policy_id}",
    )


@policy_app.command("approve", help="Approve an Analyzed policy.")
def policy_approve(
    ctx: typer.Context,
    policy_id: str = typer.Argument(..., help="Policy id"),
    approved_by: Optional[str] = typer.Option(None, "--by", help="Approver"),
):
    """Approve a policy."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])
    context = ensure_initialized()

    try:
        policy = context.policies.approve_policy(policy_id, approved_by=approved_by)
    except RiskTieringError as e:
        fail(str(e))

    if ctx.obj["json"]:
        output_result(policy.model_dump(mode="json", exclude={"document_text"}), ctx=ctx)
        return
    print_ok(f"Approved policy {policy.id}")


@policy_app.command("apply", help="Apply an Approved policy to the inventory and activate it.")
def policy_apply(
    ctx: typer.Context,
    policy_id: str = typer.Argument(..., help="Policy id"),
    applied_by: Optional[str] = typer.Option(None, "--by", help="Operator"),
    force: bool = typer.Option(False, "--force", help="Skip confirmation prompt"),
):
    """Apply a policy."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])
    context = ensure_initialized()

    if not force and not ctx.obj["json"]:
        try:
            preview = context.policies.preview_policy(policy_id)
        except RiskTieringError as e:
            fail(str(e))
        console.print(
            f"\n[bold]About to apply policy {policy_id}[/bold]: "
            f"{preview.summary.total_affected} of {preview.summary.total_records} records will change."
        )
    if not confirm("  Continue?", ctx=ctx, assume_yes=force):
        print_warn("Aborted.")
        return

    try:
        result = context.policies.apply_policy(policy_id, applied_by=applied_by)
    except RiskTieringError as e:
        fail(str(e))

    if ctx.obj["json"]:
        output_result(result.model_dump(mode="json"), ctx=ctx)
    elif result.success:
        print_ok(
            f"Applied policy {policy_id}: {result.records_updated} records in line, "
            f"{result.records_changed} updated"
        )
    else:
        print_err(f"Apply of {policy_id} failed ({len(result.errors)} errors); policy remains Approved")
        for error in result.errors[:20]:
            console.print(f"  - {error}")

    if not result.success:
        raise SystemExit(1)


@policy_app.command("archive", help="Archive a policy that is not Applied.")
def policy_archive(
    ctx: typer.Context,
    policy_id: str = typer.Argument(..., help="Policy id"),
    actor: Optional[str] = typer.Option(None, "--by", help="Operator"),
):
    """Archive a policy."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])
    context = ensure_initialized()

    try:
        policy = context.policies.archive_policy(policy_id, actor=actor)
    except RiskTieringError as e:
        fail(str(e))

    if ctx.obj["json"]:
        output_result(policy.model_dump(mode="json", exclude={"document_text"}), ctx=ctx)
        return
    print_ok(f"Archived policy {policy.id}")


@policy_app.command("list", help="List policies, newest first.")
def policy_list(
    ctx: typer.Context,
    status: Optional[PolicyStatus] = typer.Option(None, "--status", help="Filter by status"),
):
    """List policies."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])
    context = ensure_initialized()

    output_table(
        [
            {
                "id": p.id,
                "name": p.name,
                "status": p.status.value,
                "created_at": p.created_at,
                "applied_at": p.applied_at or "",
            }
            for p in context.policies.list_policies(status)
        ],
        ctx=ctx,
        title="Policies",
    )


@policy_app.command("show", help="Show a policy version.")
def policy_show(
    ctx: typer.Context,
    policy_id: str = typer.Argument(..., help="Policy id"),
):
    """Show a policy."""
    setup_logging(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"])
    context = ensure_initialized()

    try:
        policy = context.policies.get_policy(policy_id)
    except RiskTieringError as e:
        fail(str(e))
    output_result(policy.model_dump(mode="json", exclude={"document_text"}), ctx=ctx, title=policy.id)

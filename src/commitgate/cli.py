"""Commitgate CLI - inspect and act on the autonomous commit audit trail.

Provides commands to:
- List and review queued proposals
- Show decision statistics and recent audit records
- Show threshold adjustment history
- Show or initialize configuration
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import sys
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any, ParamSpec, TypeVar

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from commitgate.config import load_config, save_config
from commitgate.errors import CommitGateError
from commitgate.presets import PRESET_NAMES, get_preset_config
from commitgate.provenance.store import SQLiteProvenanceStore
from commitgate.review.actions import ReviewActions
from commitgate.review.queue import QueueReason, QueueSort, ReviewQueue
from commitgate.types import ReviewStatus

console = Console()

T = TypeVar("T")
P = ParamSpec("P")

STATUS_STYLES = {
    ReviewStatus.AUTO_APPROVED: "cyan",
    ReviewStatus.PENDING_REVIEW: "yellow",
    ReviewStatus.HUMAN_CONFIRMED: "green",
    ReviewStatus.HUMAN_REVERTED: "red",
    ReviewStatus.AUTO_REJECTED: "dim red",
}


def async_command(f: Callable[P, Coroutine[Any, Any, T]]) -> Callable[P, T]:
    """Run an async click command and report CommitGateError cleanly."""

    @functools.wraps(f)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return asyncio.run(f(*args, **kwargs))
        except CommitGateError as e:
            console.print(f"[red]{e}[/red]")
            for hint in e.recovery_hints:
                console.print(f"  [dim]- {hint}[/dim]")
            sys.exit(1)

    return wrapper


def _store(ctx: click.Context) -> SQLiteProvenanceStore:
    return SQLiteProvenanceStore(ctx.obj["db"])


@click.group()
@click.option("--db", type=click.Path(dir_okay=False, path_type=Path),
              default=Path(".commitgate") / "provenance.db", show_default=True,
              help="Audit database")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, db: Path, verbose: bool) -> None:
    """Confidence-gated autonomous commits.

    \b
    Examples:
        commitgate queue --sort confidence_asc
        commitgate approve 3f2c...
        commitgate stats
        commitgate adjustments
    """
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    ctx.ensure_object(dict)
    ctx.obj["db"] = db


@main.command("queue")
@click.option("--sort", "sort_by", type=click.Choice([s.value for s in QueueSort]),
              default=QueueSort.DATE_DESC.value, help="Sort order")
@click.option("--reason", type=click.Choice(["all", *(r.value for r in QueueReason)]),
              default="all", help="Only show items queued for this reason")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
@async_command
async def queue_cmd(ctx: click.Context, sort_by: str, reason: str, json_output: bool) -> None:
    """List proposals waiting for human review."""
    review_queue = ReviewQueue(_store(ctx))
    items = await review_queue.load_items(
        sort=QueueSort(sort_by),
        reason=None if reason == "all" else QueueReason(reason),
    )

    if json_output:
        print(json.dumps([
            {
                **item.provenance.to_dict(),
                "queue_reason": item.queue_reason.value,
            }
            for item in items
        ], indent=2))
        return

    if not items:
        console.print("[green]Review queue is empty.[/green]")
        return

    table = Table(title=f"Review queue ({len(items)})", show_header=True, header_style="bold")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Target")
    table.add_column("Confidence", justify="right")
    table.add_column("Reason")
    table.add_column("Queued", style="dim")
    for item in items:
        p = item.provenance
        table.add_row(
            p.id,
            f"{p.target_type.value}:{p.target_id}",
            f"{p.confidence:.2f}",
            item.queue_reason.value,
            item.queued_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@main.command("approve")
@click.argument("provenance_ids", nargs=-1, required=True)
@click.option("--note", help="Review note (single item only)")
@click.pass_context
@async_command
async def approve_cmd(ctx: click.Context, provenance_ids: tuple[str, ...], note: str | None) -> None:
    """Confirm one or more queued or auto-committed items."""
    actions = ReviewActions(_store(ctx))
    if len(provenance_ids) == 1:
        await actions.approve(provenance_ids[0], note)
        console.print(f"[green]Approved {provenance_ids[0]}[/green]")
        return

    result = await actions.bulk_approve(list(provenance_ids))
    console.print(f"[green]Approved {result.succeeded}[/green], failed {result.failed}")


@main.command("reject")
@click.argument("provenance_ids", nargs=-1, required=True)
@click.option("--reason", help="Rejection reason, recorded on every item")
@click.pass_context
@async_command
async def reject_cmd(ctx: click.Context, provenance_ids: tuple[str, ...], reason: str | None) -> None:
    """Reject one or more queued items.

    Graph objects are not deleted from the command line, so auto-committed
    items are refused. Undo them through the application that owns the graph.
    """
    actions = ReviewActions(_store(ctx))
    if len(provenance_ids) == 1:
        await actions.reject(provenance_ids[0], reason)
        console.print(f"[red]Rejected {provenance_ids[0]}[/red]")
        return

    result = await actions.bulk_reject(list(provenance_ids), reason)
    console.print(f"[red]Rejected {result.succeeded}[/red], failed {result.failed}")


@main.command("stats")
@click.pass_context
@async_command
async def stats_cmd(ctx: click.Context) -> None:
    """Show review queue and 24h decision statistics."""
    stats = await ReviewQueue(_store(ctx)).load_stats()

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Pending review", str(stats.pending_count))
    table.add_row("Avg pending confidence", f"{stats.avg_confidence:.2f}")
    table.add_row("Auto-approved (24h)", str(stats.auto_approved_24h))
    table.add_row("Auto-rejected (24h)", str(stats.auto_rejected_24h))
    table.add_row("Human confirmed (24h)", str(stats.human_confirmed_24h))
    table.add_row("Human reverted (24h)", str(stats.human_reverted_24h))
    table.add_row("Rejection rate (24h)", f"{stats.rejection_rate:.0%}")
    console.print(Panel(table, title="Commitgate", border_style="blue"))


@main.command("history")
@click.option("--limit", "-n", default=20, show_default=True, help="Number of records")
@click.option("--correlation", help="Only records for this correlation id")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_context
@async_command
async def history_cmd(
    ctx: click.Context, limit: int, correlation: str | None, json_output: bool
) -> None:
    """Show recent audit records."""
    store = _store(ctx)
    if correlation:
        records = await store.get_by_correlation(correlation)
    else:
        records = await store.get_recent(limit)

    if json_output:
        print(json.dumps([r.to_dict() for r in records], indent=2))
        return

    if not records:
        console.print("[dim]No audit records.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Status")
    table.add_column("Target")
    table.add_column("Confidence", justify="right")
    table.add_column("Reason")
    table.add_column("Created", style="dim")
    for r in records:
        style = STATUS_STYLES.get(r.review_status, "")
        table.add_row(
            r.id,
            f"[{style}]{r.review_status.value}[/{style}]",
            f"{r.target_type.value}:{r.target_id}",
            f"{r.confidence:.2f}",
            r.decision_reason,
            r.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


@main.command("adjustments")
@click.option("--limit", "-n", default=20, show_default=True, help="Number of events")
@click.pass_context
@async_command
async def adjustments_cmd(ctx: click.Context, limit: int) -> None:
    """Show threshold adjustment history."""
    adjustments = await _store(ctx).get_recent_adjustments(limit)
    if not adjustments:
        console.print("[dim]No threshold adjustments recorded.[/dim]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Time", style="dim")
    table.add_column("Strategy")
    table.add_column("Accept", justify="right")
    table.add_column("Reject", justify="right")
    table.add_column("Rate", justify="right")
    table.add_column("Reason")
    for a in adjustments:
        table.add_row(
            a.timestamp.strftime("%Y-%m-%d %H:%M"),
            a.strategy,
            f"{a.previous_auto_accept:.2f} -> {a.new_auto_accept:.2f}",
            f"{a.previous_auto_reject:.2f} -> {a.new_auto_reject:.2f}",
            f"{a.rejection_rate:.0%}",
            a.reason,
        )
    console.print(table)


@main.group("config")
def config_group() -> None:
    """Show or initialize configuration."""


@config_group.command("show")
@click.option("--root", type=click.Path(exists=True, file_okay=False, path_type=Path),
              default=Path("."), help="Project root")
def config_show(root: Path) -> None:
    """Show the effective configuration."""
    try:
        config = load_config(root)
    except CommitGateError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    console.print(f"[bold]Preset:[/bold] {config.preset}")
    console.print_json(json.dumps(config.to_dict()))


@config_group.command("init")
@click.option("--preset", type=click.Choice(list(PRESET_NAMES)), default="balanced",
              show_default=True)
@click.option("--path", type=click.Path(dir_okay=False, path_type=Path),
              default=Path("commitgate.yaml"), show_default=True)
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def config_init(preset: str, path: Path, force: bool) -> None:
    """Write a configuration file from a preset."""
    if path.exists() and not force:
        console.print(f"[yellow]{path} already exists. Use --force to overwrite.[/yellow]")
        sys.exit(1)
    save_config(get_preset_config(preset), path)
    console.print(f"[green]Wrote {preset} configuration to {path}[/green]")


if __name__ == "__main__":
    main()

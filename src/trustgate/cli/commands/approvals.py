"""Approval commands: inspect and revoke session approvals."""

from __future__ import annotations

import json

import typer

from ..helpers import console, get_store, load_settings, load_snapshot, save_snapshot

approvals_app = typer.Typer(help="Inspect and clear session approvals")


@approvals_app.command("list")
def approvals_list(
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """List persisted session approvals."""
    settings = load_settings()
    snapshot = load_snapshot(get_store(settings))

    if json_output:
        print(json.dumps(snapshot.session_approvals, indent=2))
        return

    if not snapshot.session_approvals:
        console.print("[dim]No session approvals[/dim]")
        return

    console.print(f"[bold]Session approvals ({len(snapshot.session_approvals)}):[/bold]")
    for token in sorted(snapshot.session_approvals):
        console.print(f"  {token}")


@approvals_app.command("clear")
def approvals_clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Revoke every session approval."""
    settings = load_settings()
    store = get_store(settings)
    snapshot = load_snapshot(store)
    count = len(snapshot.session_approvals)

    if count == 0:
        console.print("[dim]No session approvals to clear[/dim]")
        return
    if not yes and not typer.confirm(f"Clear {count} session approvals?"):
        raise typer.Exit(1)

    snapshot.session_approvals = []
    save_snapshot(store, snapshot)
    console.print(f"[green]✓[/green] Cleared {count} session approvals")

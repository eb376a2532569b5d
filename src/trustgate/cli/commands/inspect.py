"""Inspection commands: policies, risk classification and permission checks."""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path

import typer
from rich.table import Table

from trustgate.errors import PolicyConfigError
from trustgate.permissions.manager import ExecutionContext
from trustgate.permissions.modes import PermissionMode
from trustgate.permissions.policy import categories_for
from trustgate.permissions.render import render_risk
from trustgate.permissions.risk import classify_risk
from trustgate.permissions.terminal import PromptToolkitTerminal
from trustgate.runtime import build_permission_manager, build_policies

from ..helpers import console, load_settings, parse_param

# Exit codes for `check`
EXIT_ALLOWED = 0
EXIT_DENIED = 1
EXIT_PLAN_ONLY = 2


def policies(
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """List tool policies, including any from the policy file."""
    settings = load_settings()
    try:
        table_data = build_policies(settings)
    except PolicyConfigError as e:
        console.print(f"[red]Invalid policy file:[/red] {e.message}")
        raise typer.Exit(1)

    if json_output:
        print(json.dumps([policy.model_dump(mode="json") for policy in table_data], indent=2))
        return

    table = Table(show_header=True, title="Tool policies")
    table.add_column("Tool", style="cyan")
    table.add_column("Approval")
    table.add_column("Risk")
    table.add_column("Modes")
    table.add_column("Categories", style="dim")

    for policy in sorted(table_data, key=lambda p: p.tool_name):
        table.add_row(
            policy.tool_name,
            "[yellow]required[/yellow]" if policy.requires_approval else "[green]no[/green]",
            render_risk(policy.risk_level),
            ", ".join(sorted(mode.value for mode in policy.allowed_modes)),
            ", ".join(categories_for(policy.tool_name)),
        )

    console.print(table)


def risk(
    command: str = typer.Option(None, "--command", "-c", help="Shell command to classify"),
    files: list[str] = typer.Option(None, "--file", "-f", help="Path touched (repeatable)"),
    operation: str = typer.Option(None, "--operation", "-o", help="Operation label"),
):
    """Classify the risk of an operation."""
    if not command and not files and not operation:
        console.print("[red]Give at least one of --command, --file or --operation[/red]")
        raise typer.Exit(1)

    level = classify_risk(command=command, files=files or [], operation=operation)
    console.print(f"Risk: {render_risk(level)}")


def check(
    tool: str = typer.Argument(..., help="Tool name, e.g. write_file or bash"),
    param: list[str] = typer.Option(None, "--param", "-p", help="Tool parameter as key=value"),
    cwd: Path = typer.Option(None, "--cwd", help="Working directory for previews"),
    mode: PermissionMode = typer.Option(None, "--mode", "-m", help="Override the starting mode"),
    session_id: str = typer.Option(None, "--session", help="Session id for log records"),
):
    """Run a permission check, prompting in this terminal when needed.

    Exit code 0 when allowed, 1 when denied, 2 when only planned.
    """
    settings = load_settings()
    if mode is not None:
        settings = settings.model_copy(update={"mode": mode})

    params = dict(parse_param(raw) for raw in param or [])
    context = ExecutionContext(
        working_directory=str(cwd) if cwd else os.getcwd(),
        session_id=session_id,
    )

    try:
        manager = build_permission_manager(settings, terminal=PromptToolkitTerminal(console=console))
    except PolicyConfigError as e:
        console.print(f"[red]Invalid policy file:[/red] {e.message}")
        raise typer.Exit(1)

    with manager:
        decision = asyncio.run(manager.check(tool, params, context))

    if decision.plan_only:
        console.print(f"[blue]Planned:[/blue] {decision.reason or tool}")
        raise typer.Exit(EXIT_PLAN_ONLY)
    if decision.allowed:
        console.print(f"[green]✓ Allowed:[/green] {tool}")
        raise typer.Exit(EXIT_ALLOWED)
    console.print(f"[red]✗ Denied:[/red] {decision.reason or tool}")
    raise typer.Exit(EXIT_DENIED)

"""Mode commands: view and change the persisted permission mode."""

from __future__ import annotations

import json

import typer

from trustgate.permissions.modes import MODE_CONFIGS, ModeState, PermissionMode, detect_unattended

from ..helpers import console, get_store, load_settings, load_snapshot, save_snapshot

mode_app = typer.Typer(help="View and change the permission mode")


def _print_mode(mode: PermissionMode) -> None:
    config = MODE_CONFIGS[mode]
    console.print(f"{config.icon} [bold]{mode.value}[/bold]")
    console.print(f"[dim]{config.description}[/dim]")


@mode_app.command("show")
def mode_show(
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Show the persisted mode and the mode the next run would start in."""
    settings = load_settings()
    snapshot = load_snapshot(get_store(settings))
    signal = detect_unattended()

    if json_output:
        data = {
            "persisted_mode": snapshot.mode.value,
            "configured_mode": settings.mode.value if settings.mode else None,
            "unattended_signal": signal,
        }
        print(json.dumps(data, indent=2))
        return

    _print_mode(snapshot.mode)
    if settings.mode is not None:
        console.print(f"[yellow]Configured mode overrides it:[/yellow] {settings.mode.value}")
    elif signal:
        console.print(f"[yellow]Unattended environment ({signal}):[/yellow] runs start in auto_accept")


@mode_app.command("set")
def mode_set(
    mode: PermissionMode = typer.Argument(..., help="normal, auto_accept or plan_only"),
):
    """Persist a new permission mode."""
    settings = load_settings()
    store = get_store(settings)
    snapshot = load_snapshot(store)
    snapshot.mode = mode
    save_snapshot(store, snapshot)
    console.print("[green]✓[/green] Mode set")
    _print_mode(mode)


@mode_app.command("cycle")
def mode_cycle():
    """Advance to the next mode: normal, auto_accept, plan_only."""
    settings = load_settings()
    store = get_store(settings)
    snapshot = load_snapshot(store)
    state = ModeState(snapshot.mode)
    snapshot.mode = state.cycle_mode()
    save_snapshot(store, snapshot)
    _print_mode(snapshot.mode)

"""Shared helpers for CLI modules: console, settings and state access."""

from __future__ import annotations

import json

import typer
from rich.console import Console

from trustgate.config import Settings, configure_logging, get_settings
from trustgate.errors import PersistenceError
from trustgate.state.store import JsonSessionStore, SessionSnapshot

console = Console(highlight=False)


def load_settings() -> Settings:
    """Load settings and apply the configured logging."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format, settings.sanitize_logs)
    return settings


def get_store(settings: Settings) -> JsonSessionStore:
    return JsonSessionStore(settings.state_file)


def load_snapshot(store: JsonSessionStore) -> SessionSnapshot:
    try:
        return store.load()
    except PersistenceError as e:
        console.print(f"[red]Cannot read session state:[/red] {e.message}")
        raise typer.Exit(1)


def save_snapshot(store: JsonSessionStore, snapshot: SessionSnapshot) -> None:
    try:
        store.save(snapshot.mode, snapshot.session_approvals)
    except PersistenceError as e:
        console.print(f"[red]Cannot write session state:[/red] {e.message}")
        raise typer.Exit(1)


def parse_param(raw: str) -> tuple[str, object]:
    """Parse ``key=value``; values that are valid JSON are decoded."""
    if "=" not in raw:
        raise typer.BadParameter(f"Expected key=value, got {raw!r}")
    key, value = raw.split("=", 1)
    key = key.strip()
    if not key:
        raise typer.BadParameter(f"Empty parameter name in {raw!r}")
    try:
        return key, json.loads(value)
    except ValueError:
        return key, value

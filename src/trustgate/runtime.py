"""Process-level construction of the permission manager.

One manager per process: build it at startup from settings and close it
at shutdown so the final session state is flushed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from trustgate.config.settings import Settings, get_settings
from trustgate.permissions.manager import PermissionManager
from trustgate.permissions.modes import ModeState
from trustgate.permissions.policy import PolicyTable
from trustgate.permissions.preview import Filesystem
from trustgate.state.store import JsonSessionStore, SessionStore

logger = logging.getLogger(__name__)


def build_store(settings: Settings) -> SessionStore | None:
    if not settings.persist_state:
        return None
    return JsonSessionStore(settings.state_file)


def build_policies(settings: Settings) -> PolicyTable:
    """Default policies plus any from the configured policy file.

    Raises:
        PolicyConfigError: If the policy file is unreadable or invalid.
    """
    policies = PolicyTable()
    if settings.policy_file is not None:
        policies.load_yaml(settings.policy_file)
    return policies


def build_permission_manager(
    settings: Settings | None = None,
    terminal=None,
    filesystem: Filesystem | None = None,
    store: SessionStore | None = None,
) -> PermissionManager:
    """Create the process's permission manager from settings.

    Args:
        settings: Settings to use. Defaults to ``get_settings()``.
        terminal: Terminal for approval prompts. Defaults to the process TTY.
        filesystem: Workspace view for previews.
        store: Session store overriding the one derived from settings.
    """
    settings = settings or get_settings()
    mode_state = ModeState.initialize(settings.mode)
    manager = PermissionManager(
        mode_state=mode_state,
        policies=build_policies(settings),
        terminal=terminal,
        store=store if store is not None else build_store(settings),
        filesystem=filesystem,
        strict_unregistered=settings.strict_unregistered,
        restore_mode=settings.mode is None,
    )
    logger.debug(f"Permission manager ready in {manager.current_mode().value} mode")
    return manager


@contextmanager
def permission_manager(settings: Settings | None = None, **kwargs) -> Iterator[PermissionManager]:
    """Build a manager and close it when the block exits."""
    manager = build_permission_manager(settings, **kwargs)
    try:
        yield manager
    finally:
        manager.close()

"""Permission modes and the process-wide mode state machine.

Exactly one mode is active at a time:

- normal: ask for approval on sensitive operations
- auto_accept: execute without asking (unattended runs)
- plan_only: describe what would be done, execute nothing
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TextIO

logger = logging.getLogger(__name__)


class PermissionMode(str, Enum):
    """Operating stance controlling whether approval is required."""

    NORMAL = "normal"
    AUTO_ACCEPT = "auto_accept"
    PLAN_ONLY = "plan_only"


@dataclass(frozen=True)
class ModeConfig:
    """Display and behaviour metadata for a mode."""

    mode: PermissionMode
    description: str
    icon: str
    allow_execution: bool
    require_approval: bool


MODE_CONFIGS: dict[PermissionMode, ModeConfig] = {
    PermissionMode.NORMAL: ModeConfig(
        mode=PermissionMode.NORMAL,
        description="Normal mode - Ask for approval on sensitive operations",
        icon="🔒",
        allow_execution=True,
        require_approval=True,
    ),
    PermissionMode.AUTO_ACCEPT: ModeConfig(
        mode=PermissionMode.AUTO_ACCEPT,
        description="Auto-accept - Execute operations without asking",
        icon="🚀",
        allow_execution=True,
        require_approval=False,
    ),
    PermissionMode.PLAN_ONLY: ModeConfig(
        mode=PermissionMode.PLAN_ONLY,
        description="Plan only - Show what would be done but don't execute",
        icon="📋",
        allow_execution=False,
        require_approval=False,
    ),
}

# Cycle order for cycle_mode()
MODE_CYCLE: tuple[PermissionMode, ...] = (
    PermissionMode.NORMAL,
    PermissionMode.AUTO_ACCEPT,
    PermissionMode.PLAN_ONLY,
)

ModeListener = Callable[[PermissionMode], None]

_TRUTHY = ("1", "true", "yes", "on")


def _is_truthy(value: str | None) -> bool:
    return value is not None and value.strip().lower() in _TRUTHY


def _is_tty(stream: TextIO | None) -> bool:
    if stream is None:
        return False
    try:
        return stream.isatty()
    except (AttributeError, ValueError, OSError):
        return False


def detect_unattended(
    environ: Mapping[str, str] | None = None,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
) -> str | None:
    """Return the name of the first unattended-environment signal, if any.

    Signals, in order: explicit headless flag, CI flag, explicit
    auto-accept flag, missing interactive stdin, missing interactive stdout.
    """
    env = os.environ if environ is None else environ
    if _is_truthy(env.get("TRUSTGATE_HEADLESS")):
        return "TRUSTGATE_HEADLESS"
    if _is_truthy(env.get("CI")):
        return "CI"
    if _is_truthy(env.get("TRUSTGATE_AUTO_ACCEPT")):
        return "TRUSTGATE_AUTO_ACCEPT"
    if not _is_tty(sys.stdin if stdin is None else stdin):
        return "stdin is not a TTY"
    if not _is_tty(sys.stdout if stdout is None else stdout):
        return "stdout is not a TTY"
    return None


class ModeState:
    """Single source of truth for the active permission mode.

    Example:
        state = ModeState.initialize()
        state.subscribe(lambda mode: print(f"now {mode.value}"))
        state.cycle_mode()
    """

    def __init__(self, mode: PermissionMode = PermissionMode.NORMAL):
        self._mode = PermissionMode(mode)
        self._listeners: list[ModeListener] = []

    @classmethod
    def initialize(
        cls,
        explicit_mode: PermissionMode | str | None = None,
        environ: Mapping[str, str] | None = None,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
    ) -> ModeState:
        """Create a mode state with an environment-aware default.

        An explicit mode always wins. Otherwise any unattended signal selects
        auto_accept so that no prompt can block a run nobody is watching.
        """
        if explicit_mode is not None:
            return cls(PermissionMode(explicit_mode))

        signal = detect_unattended(environ, stdin, stdout)
        if signal:
            logger.info(f"Unattended environment detected ({signal}), using auto_accept mode")
            return cls(PermissionMode.AUTO_ACCEPT)
        return cls(PermissionMode.NORMAL)

    @property
    def mode(self) -> PermissionMode:
        return self._mode

    @property
    def config(self) -> ModeConfig:
        return MODE_CONFIGS[self._mode]

    def set_mode(self, mode: PermissionMode | str) -> bool:
        """Switch modes and notify subscribers.

        Returns:
            True if the mode changed.
        """
        mode = PermissionMode(mode)
        if mode == self._mode:
            return False

        previous = self._mode
        self._mode = mode
        logger.info(f"Permission mode changed: {previous.value} -> {mode.value}")

        for listener in list(self._listeners):
            try:
                listener(mode)
            except Exception:
                logger.exception("Mode change listener failed")
        return True

    def cycle_mode(self) -> PermissionMode:
        """Advance to the next mode in the fixed cycle."""
        index = MODE_CYCLE.index(self._mode)
        next_mode = MODE_CYCLE[(index + 1) % len(MODE_CYCLE)]
        self.set_mode(next_mode)
        return next_mode

    def subscribe(self, listener: ModeListener) -> Callable[[], None]:
        """Register a mode change listener.

        Returns:
            Callable that removes the listener again.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def can_execute(self) -> bool:
        return self.config.allow_execution

    def should_request_approval(self) -> bool:
        return self.config.require_approval

    def display(self) -> str:
        config = self.config
        return f"{config.icon} {config.mode.value.upper()}"

    def description(self) -> str:
        return self.config.description

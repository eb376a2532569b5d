"""Human approval gate for pending operations.

The gate is the only place where a permission check can suspend. In
plan_only and auto_accept modes it resolves immediately; in normal mode it
renders the request and waits for a key press on the terminal.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from rich.markup import escape

from trustgate.errors import TerminalError
from trustgate.permissions.modes import ModeState, PermissionMode
from trustgate.permissions.policy import RiskLevel
from trustgate.permissions.render import render_menu, render_preview, render_request_header
from trustgate.permissions.risk import classify_risk
from trustgate.permissions.terminal import Terminal

logger = logging.getLogger(__name__)


@dataclass
class ApprovalRequest:
    """An operation waiting for a decision."""

    operation: str
    description: str
    risk: RiskLevel = RiskLevel.LOW
    details: str | None = None
    command: str | None = None
    files: list[str] = field(default_factory=list)
    preview: Any = None
    tool_params: dict[str, Any] = field(default_factory=dict)


@dataclass
class ApprovalResult:
    """Outcome of an approval request."""

    approved: bool
    reason: str | None = None
    new_mode: PermissionMode | None = None
    approve_for_session: bool = False
    cancelled: bool = False
    alternative_requested: bool = False


class ApprovalChoice(str, Enum):
    """Choices offered at the interactive prompt, in display order."""

    YES = "yes"
    YES_SESSION = "yes_session"
    NO = "no"
    ALTERNATIVE = "alternative"


CHOICE_LABELS: dict[ApprovalChoice, str] = {
    ApprovalChoice.YES: "Yes",
    ApprovalChoice.YES_SESSION: "Yes, for the rest of the session",
    ApprovalChoice.NO: "No",
    ApprovalChoice.ALTERNATIVE: "No, suggest something different",
}
CHOICES: tuple[ApprovalChoice, ...] = tuple(CHOICE_LABELS)

PREVIOUS_KEYS = frozenset({"up", "left"})
NEXT_KEYS = frozenset({"down", "right"})
CANCEL_KEYS = frozenset({"escape", "ctrl-c"})
HOTKEYS = {str(index + 1): choice for index, choice in enumerate(CHOICES)}

# Sentinels returned by the key loop besides a committed choice
_CANCELLED = "cancelled"
_SWITCH_TO_AUTO = "switch_to_auto"


def result_for_choice(choice: ApprovalChoice) -> ApprovalResult:
    """Map a committed choice to its result."""
    if choice == ApprovalChoice.YES:
        return ApprovalResult(approved=True)
    if choice == ApprovalChoice.YES_SESSION:
        return ApprovalResult(approved=True, approve_for_session=True)
    if choice == ApprovalChoice.ALTERNATIVE:
        return ApprovalResult(
            approved=False,
            reason="User wants to provide different instructions",
            alternative_requested=True,
        )
    return ApprovalResult(approved=False, reason="User denied approval")


class ApprovalGate:
    """Resolves approval requests according to the current mode.

    Only one request is on screen at a time. Overlapping callers queue on an
    internal lock and are prompted in arrival order.

    Example:
        gate = ApprovalGate(ModeState(PermissionMode.NORMAL), ScriptedTerminal(["1"]))
        result = await gate.request_approval(
            ApprovalRequest(operation="Execute bash", description="ls")
        )
        result.approved  # True
    """

    def __init__(self, mode_state: ModeState, terminal: Terminal):
        """Initialize the gate.

        Args:
            mode_state: Shared mode state consulted on every request.
            terminal: Terminal used for the interactive prompt.
        """
        self.mode_state = mode_state
        self.terminal = terminal
        self._lock = asyncio.Lock()
        self._pending: ApprovalRequest | None = None

    @property
    def pending(self) -> ApprovalRequest | None:
        """Request currently on screen, if any."""
        return self._pending

    @staticmethod
    def analyze_risk(request: ApprovalRequest) -> RiskLevel:
        return classify_risk(command=request.command, files=request.files, operation=request.operation)

    async def request_approval(self, request: ApprovalRequest) -> ApprovalResult:
        """Resolve a request.

        Returns:
            plan_only: an immediate denial.
            auto_accept: an immediate approval, after an audit notice.
            normal: the human's decision.
        """
        mode = self.mode_state.mode

        if mode == PermissionMode.PLAN_ONLY:
            self._show_plan(request)
            return ApprovalResult(
                approved=False,
                reason=f"Plan-only mode: {request.operation} planned but not executed",
            )

        if mode == PermissionMode.AUTO_ACCEPT:
            self.announce_auto_execute(request.operation)
            return ApprovalResult(approved=True)

        async with self._lock:
            self._pending = request
            try:
                return await self._prompt(request)
            finally:
                self._pending = None

    def announce_auto_execute(self, operation: str) -> None:
        """Emit the visible audit notice for an operation run without asking."""
        self.terminal.write_line(f"[bold green]⚡ AUTO-EXECUTING:[/bold green] {escape(operation)}")
        logger.info(f"Auto-executing: {operation}")

    def _show_plan(self, request: ApprovalRequest) -> None:
        self.terminal.write_line("[bold blue]PLAN MODE - Would Execute:[/bold blue]")
        self.terminal.write_line(f"Operation: {escape(request.operation)}")
        if request.description:
            self.terminal.write_line(f"Description: {escape(request.description)}")
        if request.command:
            self.terminal.write_line(f"Command: {escape(request.command)}")
        if request.files:
            self.terminal.write_line(f"Files: {escape(', '.join(request.files))}")
        logger.info(f"Plan-only: {request.operation} not executed")

    @contextmanager
    def _interactive(self) -> Iterator[None]:
        """Hide the cursor and enter raw mode; both are undone on any exit."""
        self.terminal.hide_cursor()
        try:
            with self.terminal.raw_mode():
                yield
        finally:
            self.terminal.show_cursor()

    def _render_request(self, request: ApprovalRequest) -> None:
        for line in render_request_header(request):
            self.terminal.write_line(line)

        if request.preview is None:
            return
        try:
            preview_lines = render_preview(request.preview)
        except Exception as e:
            logger.warning(f"Could not render preview for {request.operation}: {e}")
            self.terminal.write_line("[dim]Preview unavailable[/dim]")
            return
        self.terminal.write_line("")
        for line in preview_lines:
            self.terminal.write_line(line)

    async def _prompt(self, request: ApprovalRequest) -> ApprovalResult:
        try:
            self._render_request(request)
            with self._interactive():
                outcome = await self._select()
        except TerminalError as e:
            logger.error(f"Approval prompt failed for {request.operation}: {e}")
            return ApprovalResult(approved=False, reason=f"Approval prompt failed: {e.message}")
        except Exception as e:
            logger.exception(f"Unexpected error during approval prompt for {request.operation}")
            return ApprovalResult(approved=False, reason=f"Approval prompt failed: {e}")

        if outcome == _CANCELLED:
            self.terminal.write_line("[red]✗ Cancelled[/red]")
            logger.info(f"Approval cancelled: {request.operation}")
            return ApprovalResult(approved=False, reason="User cancelled", cancelled=True)

        if outcome == _SWITCH_TO_AUTO:
            self.terminal.write_line("[green]✓ Approved, switching to auto-accept mode[/green]")
            logger.info(f"Approved with switch to auto_accept: {request.operation}")
            return ApprovalResult(approved=True, new_mode=PermissionMode.AUTO_ACCEPT)

        result = result_for_choice(outcome)
        if result.approved:
            self.terminal.write_line(f"[green]✓ {CHOICE_LABELS[outcome]}[/green]")
        else:
            self.terminal.write_line(f"[red]✗ {CHOICE_LABELS[outcome]}[/red]")
        logger.info(f"Approval decision for {request.operation}: {outcome.value}")
        return result

    async def _select(self) -> ApprovalChoice | str:
        """Run the key loop until a choice is committed or the prompt is cancelled."""
        labels = [CHOICE_LABELS[choice] for choice in CHOICES]
        selected = 0
        menu = render_menu(labels, selected)
        for line in menu:
            self.terminal.write_line(line)

        while True:
            key = await self.terminal.read_key()

            if key in CANCEL_KEYS:
                return _CANCELLED
            if key == "backtab":
                return _SWITCH_TO_AUTO
            if key == "enter":
                return CHOICES[selected]
            if key in HOTKEYS:
                choice = HOTKEYS[key]
                selected = CHOICES.index(choice)
                self._redraw(menu, labels, selected)
                return choice

            if key in PREVIOUS_KEYS:
                selected = (selected - 1) % len(CHOICES)
            elif key in NEXT_KEYS:
                selected = (selected + 1) % len(CHOICES)
            else:
                continue
            menu = self._redraw(menu, labels, selected)

    def _redraw(self, menu: list[str], labels: list[str], selected: int) -> list[str]:
        self.terminal.erase_lines(len(menu))
        menu = render_menu(labels, selected)
        for line in menu:
            self.terminal.write_line(line)
        return menu

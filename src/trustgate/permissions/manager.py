"""Permission manager: the single entry point for tool permission checks.

Every tool invocation attempt calls ``check()`` once, before the tool runs.
The check walks policy, mode, session grants and finally the approval
gate, in that order, and returns a ``PermissionDecision``. Denials are
return values; nothing here raises to the caller for a refused operation.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from trustgate.errors import PersistenceError
from trustgate.permissions.approval import ApprovalGate, ApprovalRequest
from trustgate.permissions.grants import SessionGrants
from trustgate.permissions.modes import ModeListener, ModeState, PermissionMode
from trustgate.permissions.params import extract_files
from trustgate.permissions.policy import PolicyTable, RiskLevel, ToolPolicy
from trustgate.permissions.preview import Filesystem, LocalFilesystem, generate_preview
from trustgate.state.store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class ExecutionContext:
    """Where and on whose behalf a tool is about to run."""

    working_directory: str = field(default_factory=os.getcwd)
    session_id: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class PermissionDecision:
    """Result of a permission check."""

    allowed: bool
    reason: str | None = None
    plan_only: bool = False


def describe_tool(tool_name: str, params: Mapping[str, Any]) -> str:
    """Human-readable one-line description of a tool invocation."""
    if tool_name == "write_file":
        return f"Write content to {params.get('path') or 'file'}"
    if tool_name == "edit_file":
        return f"Edit file {params.get('path') or 'unknown'}"
    if tool_name == "move_file":
        return f"Move {params.get('from') or 'file'} to {params.get('to') or 'destination'}"
    if tool_name == "bash":
        return f"Execute shell command: {params.get('command') or 'unknown command'}"
    if tool_name == "git_commit":
        return f"Commit changes with message: {params.get('message') or 'no message'}"
    if tool_name == "git_add":
        files = params.get("files")
        staged = ", ".join(str(f) for f in files) if isinstance(files, (list, tuple)) and files else ""
        return f"Stage files for commit: {staged or 'all changes'}"
    return f"Execute {tool_name} operation"


def format_params(params: Mapping[str, Any]) -> str:
    """Summarise a parameter bag as ``key: <json>`` pairs."""
    parts = []
    for key, value in params.items():
        if value is None:
            continue
        try:
            rendered = json.dumps(value)
        except (TypeError, ValueError):
            rendered = repr(value)
        parts.append(f"{key}: {rendered}")
    return ", ".join(parts) or "No parameters"


class PermissionManager:
    """Decides whether a tool invocation may run.

    Example:
        manager = PermissionManager(initial_mode=PermissionMode.NORMAL)
        decision = await manager.check("bash", {"command": "ls"}, ExecutionContext("/repo"))
        if decision.allowed:
            ...
    """

    def __init__(
        self,
        *,
        mode_state: ModeState | None = None,
        initial_mode: PermissionMode | str | None = None,
        policies: PolicyTable | None = None,
        terminal=None,
        approval_gate: ApprovalGate | None = None,
        store: SessionStore | None = None,
        filesystem: Filesystem | None = None,
        strict_unregistered: bool = False,
        restore_mode: bool = True,
    ):
        """Initialize the manager.

        Args:
            mode_state: Shared mode state. Created from ``initial_mode`` and
                the environment when omitted.
            initial_mode: Explicit starting mode; ignored if ``mode_state``
                is given.
            policies: Policy table. Defaults to the built-in policies.
            terminal: Terminal for the approval prompt. Defaults to the
                process TTY.
            approval_gate: Pre-built gate. Must share ``mode_state``.
            store: Session persistence collaborator. No persistence if None.
            filesystem: Workspace view for previews. Defaults to the local
                disk rooted at each check's working directory.
            strict_unregistered: Deny tools that have no policy instead of
                allowing them.
            restore_mode: Apply the persisted mode on startup. Persisted
                session approvals are restored either way.
        """
        if mode_state is None:
            mode_state = approval_gate.mode_state if approval_gate else ModeState.initialize(initial_mode)
        self.mode_state = mode_state

        if approval_gate is None:
            if terminal is None:
                from trustgate.permissions.terminal import PromptToolkitTerminal

                terminal = PromptToolkitTerminal()
            approval_gate = ApprovalGate(self.mode_state, terminal)
        self.approval_gate = approval_gate

        self.policies = policies if policies is not None else PolicyTable()
        self.store = store
        self.filesystem = filesystem
        self.strict_unregistered = strict_unregistered
        self.restore_mode = restore_mode
        self.grants = SessionGrants()
        self._closed = False
        self._approval_lock = asyncio.Lock()

        # An auto_accept start neither reads nor writes the store, so an
        # unattended run cannot leak its mode into the next interactive one
        self._persist = self.mode_state.mode != PermissionMode.AUTO_ACCEPT
        if self._persist:
            self._restore_session_state()
        else:
            logger.info("Starting in auto_accept mode, session state is neither restored nor saved")

        self.mode_state.subscribe(self._on_mode_change)

    # Session state

    def _restore_session_state(self) -> None:
        if self.store is None:
            return
        try:
            snapshot = self.store.load()
        except (PersistenceError, OSError, ValueError) as e:
            logger.warning(f"Failed to restore session state, using defaults: {e}")
            return

        if self.restore_mode:
            self.mode_state.set_mode(snapshot.mode)
        restored = self.grants.restore(snapshot.session_approvals)
        if restored:
            logger.info(f"Restored {restored} session approvals from previous session")

    def _save_session_state(self) -> None:
        if self.store is None or not self._persist:
            return
        try:
            self.store.save(self.mode_state.mode, self.grants.to_list())
        except (PersistenceError, OSError, ValueError) as e:
            logger.warning(f"Failed to save session state: {e}")

    def _on_mode_change(self, mode: PermissionMode) -> None:
        self._save_session_state()

    # Check

    def _decide(
        self,
        tool_name: str,
        context: ExecutionContext,
        decision: PermissionDecision,
        risk: RiskLevel | None = None,
    ) -> PermissionDecision:
        if decision.plan_only:
            outcome = "plan_only"
        else:
            outcome = "allowed" if decision.allowed else "denied"
        extra = {
            "tool_name": tool_name,
            "mode": self.mode_state.mode.value,
            "session_id": context.session_id,
            "decision": outcome,
        }
        if risk is not None:
            extra["risk"] = RiskLevel(risk).value
        message = f"Permission {outcome} for {tool_name}"
        if decision.reason:
            message += f": {decision.reason}"
        logger.debug(message, extra=extra)
        return decision

    def _build_request(
        self,
        tool_name: str,
        params: Mapping[str, Any],
        policy: ToolPolicy,
        context: ExecutionContext,
    ) -> ApprovalRequest:
        filesystem = self.filesystem or LocalFilesystem(context.working_directory)
        command = params.get("command")
        request = ApprovalRequest(
            operation=f"Execute {tool_name}",
            description=describe_tool(tool_name, params),
            risk=policy.risk_level,
            details=format_params(params),
            command=command if isinstance(command, str) else None,
            files=extract_files(params),
            preview=generate_preview(tool_name, dict(params), filesystem),
            tool_params=dict(params),
        )
        # Advisory classification can only raise the displayed risk
        request.risk = RiskLevel.highest(policy.risk_level, ApprovalGate.analyze_risk(request))
        return request

    async def check(
        self,
        tool_name: str,
        params: Mapping[str, Any] | None = None,
        context: ExecutionContext | None = None,
    ) -> PermissionDecision:
        """Decide whether ``tool_name`` may run with ``params``.

        Order: policy, mode, session grants, approval gate. Checks that
        need a human wait their turn and re-apply the mode and grant rules
        before prompting.

        Returns:
            PermissionDecision; ``plan_only`` is set when the run is being
            planned rather than executed.
        """
        params = params or {}
        context = context or ExecutionContext()

        policy = self.policies.get_policy(tool_name)
        if policy is None:
            if self.strict_unregistered:
                return self._decide(
                    tool_name,
                    context,
                    PermissionDecision(False, f"Tool {tool_name} has no permission policy"),
                )
            logger.debug(f"No policy registered for {tool_name}, allowing")
            return self._decide(tool_name, context, PermissionDecision(True))

        decision = self._decide_without_prompt(tool_name, policy, context)
        if decision is not None:
            return decision

        async with self._approval_lock:
            # Re-evaluate: an earlier prompt may have granted the session or switched modes
            decision = self._decide_without_prompt(tool_name, policy, context)
            if decision is not None:
                return decision
            return await self._ask(tool_name, params, policy, context)

    def _decide_without_prompt(
        self,
        tool_name: str,
        policy: ToolPolicy,
        context: ExecutionContext,
    ) -> PermissionDecision | None:
        """Apply mode rules and session grants. None means a human must decide."""
        mode = self.mode_state.mode
        if mode not in policy.allowed_modes:
            return self._decide(
                tool_name,
                context,
                PermissionDecision(False, f"Tool {tool_name} not allowed in {mode.value} mode"),
                policy.risk_level,
            )

        if mode == PermissionMode.PLAN_ONLY:
            return self._decide(
                tool_name,
                context,
                PermissionDecision(
                    False,
                    f"Plan-only mode: {tool_name} operation planned but not executed",
                    plan_only=True,
                ),
                policy.risk_level,
            )

        if mode == PermissionMode.AUTO_ACCEPT:
            self.approval_gate.announce_auto_execute(f"Execute {tool_name}")
            return self._decide(tool_name, context, PermissionDecision(True), policy.risk_level)

        if not policy.requires_approval:
            return self._decide(tool_name, context, PermissionDecision(True), policy.risk_level)

        if self.grants.matches(tool_name, policy):
            return self._decide(
                tool_name,
                context,
                PermissionDecision(True, "Approved for this session"),
                policy.risk_level,
            )
        return None

    async def _ask(
        self,
        tool_name: str,
        params: Mapping[str, Any],
        policy: ToolPolicy,
        context: ExecutionContext,
    ) -> PermissionDecision:
        request = self._build_request(tool_name, params, policy, context)
        result = await self.approval_gate.request_approval(request)

        if result.approved and result.approve_for_session:
            self.grants.grant(tool_name, policy)
            self._save_session_state()

        if result.new_mode is not None:
            self.set_mode(result.new_mode)

        decision = PermissionDecision(
            allowed=result.approved,
            reason=result.reason,
            plan_only=result.new_mode == PermissionMode.PLAN_ONLY,
        )
        return self._decide(tool_name, context, decision, request.risk)

    # Mode

    def current_mode(self) -> PermissionMode:
        return self.mode_state.mode

    def set_mode(self, mode: PermissionMode | str) -> None:
        """Switch modes. The new state is persisted."""
        self.mode_state.set_mode(mode)

    def cycle_mode(self) -> PermissionMode:
        return self.mode_state.cycle_mode()

    def mode_display(self) -> str:
        return self.mode_state.display()

    def mode_description(self) -> str:
        return self.mode_state.description()

    def on_mode_changed(self, callback: ModeListener) -> Callable[[], None]:
        """Subscribe to mode changes. Returns an unsubscribe callable."""
        return self.mode_state.subscribe(callback)

    # Policies

    def add_policy(self, policy: ToolPolicy) -> None:
        self.policies.add_policy(policy)

    def get_policy(self, tool_name: str) -> ToolPolicy | None:
        return self.policies.get_policy(tool_name)

    # Session approvals

    def session_approvals(self) -> list[str]:
        return self.grants.to_list()

    def has_session_approvals(self) -> bool:
        return len(self.grants) > 0

    def clear_session_approvals(self) -> int:
        count = self.grants.clear()
        if count:
            logger.info(f"Cleared {count} session approvals")
        self._save_session_state()
        return count

    # Lifecycle

    def close(self) -> None:
        """Flush session state. Safe to call more than once."""
        if self._closed:
            return
        self._save_session_state()
        self._closed = True

    def __enter__(self) -> PermissionManager:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

"""Tests for the permission manager."""

import asyncio
import json

import pytest

from tests.conftest import FakeFilesystem, StubGate
from trustgate.errors import PersistenceError
from trustgate.permissions.approval import ApprovalResult
from trustgate.permissions.manager import (
    ExecutionContext,
    PermissionManager,
    describe_tool,
    format_params,
)
from trustgate.permissions.modes import ModeState, PermissionMode
from trustgate.permissions.policy import PolicyTable, RiskLevel, ToolPolicy
from trustgate.permissions.preview import CommandPreview, FileCreatePreview
from trustgate.permissions.terminal import ScriptedTerminal
from trustgate.state.store import JsonSessionStore, MemorySessionStore, SessionSnapshot

CONTEXT = ExecutionContext(working_directory="/workspace", session_id="test-session")


def make_manager(mode=PermissionMode.NORMAL, result=None, store=None, **kwargs):
    gate = StubGate(ModeState(mode), result)
    kwargs.setdefault("filesystem", FakeFilesystem())
    manager = PermissionManager(approval_gate=gate, store=store, **kwargs)
    return manager, gate


class FailingStore(MemorySessionStore):
    def save(self, mode, session_approvals):
        raise PersistenceError("disk full", path="/state.json")


class TestUnregisteredTools:
    """Tests for tools without a policy."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("mode", list(PermissionMode))
    async def test_allowed_by_default(self, mode):
        manager, gate = make_manager(mode)

        decision = await manager.check("launch_rockets", {}, CONTEXT)

        assert decision.allowed is True
        assert gate.calls == 0

    @pytest.mark.asyncio
    async def test_strict_mode_denies(self):
        manager, gate = make_manager(strict_unregistered=True)

        decision = await manager.check("launch_rockets", {}, CONTEXT)

        assert decision.allowed is False
        assert "no permission policy" in decision.reason


class TestModeRules:
    """Tests for mode handling in check."""

    @pytest.mark.asyncio
    async def test_mode_not_allowed(self):
        manager, gate = make_manager(PermissionMode.AUTO_ACCEPT)
        manager.add_policy(
            ToolPolicy(
                tool_name="deploy",
                requires_approval=True,
                allowed_modes=frozenset({PermissionMode.NORMAL}),
                risk_level=RiskLevel.HIGH,
            )
        )

        decision = await manager.check("deploy", {}, CONTEXT)

        assert decision.allowed is False
        assert decision.reason == "Tool deploy not allowed in auto_accept mode"
        assert gate.announcements == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tool", ["bash", "write_file", "read_file", "git_status"])
    async def test_plan_only_never_allows(self, tool):
        """plan_only denies every registered tool and never prompts."""
        manager, gate = make_manager(PermissionMode.PLAN_ONLY)

        decision = await manager.check(tool, {"command": "ls", "path": "a.txt"}, CONTEXT)

        assert decision.allowed is False
        assert decision.plan_only is True
        assert decision.reason == f"Plan-only mode: {tool} operation planned but not executed"
        assert gate.calls == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tool", ["bash", "move_file", "git_commit", "read_file"])
    async def test_auto_accept_allows_with_notice(self, tool):
        manager, gate = make_manager(PermissionMode.AUTO_ACCEPT)

        decision = await manager.check(tool, {}, CONTEXT)

        assert decision.allowed is True
        assert gate.calls == 0
        assert gate.announcements == [f"Execute {tool}"]

    @pytest.mark.asyncio
    async def test_normal_without_approval(self):
        manager, gate = make_manager()

        decision = await manager.check("read_file", {"path": "a.txt"}, CONTEXT)

        assert decision.allowed is True
        assert gate.calls == 0


class TestApprovalFlow:
    """Tests for checks that reach the approval gate."""

    @pytest.mark.asyncio
    async def test_session_approval_scenario(self):
        """Tool grant then category grant avoid the gate."""
        manager, gate = make_manager()

        first = await manager.check("write_file", {"path": "a.txt", "content": "x"}, CONTEXT)
        assert first.allowed is True
        assert gate.calls == 1

        second = await manager.check("write_file", {"path": "b.txt", "content": "y"}, CONTEXT)
        assert second.allowed is True
        assert gate.calls == 1

        third = await manager.check("edit_file", {"path": "a.txt", "search": "x"}, CONTEXT)
        assert third.allowed is True
        assert gate.calls == 1

    @pytest.mark.asyncio
    async def test_category_grant_does_not_cover_other_risk(self):
        manager, gate = make_manager()

        await manager.check("write_file", {"path": "a.txt"}, CONTEXT)
        await manager.check("move_file", {"from": "a.txt", "to": "b.txt"}, CONTEXT)

        assert gate.calls == 2

    @pytest.mark.asyncio
    async def test_approve_once_does_not_grant(self):
        manager, gate = make_manager(result=ApprovalResult(approved=True))

        await manager.check("bash", {"command": "ls"}, CONTEXT)
        await manager.check("bash", {"command": "ls"}, CONTEXT)

        assert gate.calls == 2
        assert manager.has_session_approvals() is False

    @pytest.mark.asyncio
    async def test_denial(self):
        manager, _ = make_manager(result=ApprovalResult(approved=False, reason="User denied approval"))

        decision = await manager.check("bash", {"command": "ls"}, CONTEXT)

        assert decision.allowed is False
        assert decision.reason == "User denied approval"
        assert decision.plan_only is False

    @pytest.mark.asyncio
    async def test_denied_session_flag_is_ignored(self):
        """approve_for_session only counts together with an approval."""
        result = ApprovalResult(approved=False, approve_for_session=True)
        manager, _ = make_manager(result=result)

        await manager.check("bash", {"command": "ls"}, CONTEXT)

        assert manager.session_approvals() == []

    @pytest.mark.asyncio
    async def test_clear_reinstates_prompt(self):
        manager, gate = make_manager()
        await manager.check("git_commit", {"message": "fix"}, CONTEXT)

        assert manager.clear_session_approvals() == 2
        assert manager.session_approvals() == []

        await manager.check("git_commit", {"message": "again"}, CONTEXT)
        assert gate.calls == 2

    @pytest.mark.asyncio
    async def test_new_mode_applied(self):
        manager, _ = make_manager(result=ApprovalResult(approved=True, new_mode=PermissionMode.AUTO_ACCEPT))

        await manager.check("bash", {"command": "ls"}, CONTEXT)

        assert manager.current_mode() == PermissionMode.AUTO_ACCEPT

    @pytest.mark.asyncio
    async def test_new_mode_plan_only_flags_decision(self):
        manager, _ = make_manager(result=ApprovalResult(approved=False, new_mode=PermissionMode.PLAN_ONLY))

        decision = await manager.check("bash", {"command": "ls"}, CONTEXT)

        assert decision.plan_only is True
        assert manager.current_mode() == PermissionMode.PLAN_ONLY

    @pytest.mark.asyncio
    async def test_request_contents(self):
        manager, gate = make_manager()

        await manager.check("bash", {"command": "rm -rf build"}, CONTEXT)

        [request] = gate.requests
        assert request.operation == "Execute bash"
        assert request.description == "Execute shell command: rm -rf build"
        assert request.command == "rm -rf build"
        assert request.details == 'command: "rm -rf build"'
        assert request.risk == RiskLevel.HIGH
        assert isinstance(request.preview, CommandPreview)
        assert request.tool_params == {"command": "rm -rf build"}

    @pytest.mark.asyncio
    async def test_request_for_new_file(self):
        manager, gate = make_manager()

        await manager.check("write_file", {"path": "notes.md", "content": "# Notes"}, CONTEXT)

        [request] = gate.requests
        assert request.files == ["notes.md"]
        assert request.risk == RiskLevel.MEDIUM
        assert isinstance(request.preview, FileCreatePreview)

    @pytest.mark.asyncio
    async def test_sensitive_path_raises_displayed_risk(self):
        manager, gate = make_manager()

        await manager.check("write_file", {"path": ".env", "content": "KEY=1"}, CONTEXT)

        assert gate.requests[0].risk == RiskLevel.HIGH
        # The grant still uses the static policy level
        assert "category:file_operations:medium" in manager.session_approvals()

    @pytest.mark.asyncio
    async def test_preview_from_working_directory(self, tmp_path):
        """Without an injected filesystem, previews read from the working directory."""
        (tmp_path / "a.txt").write_text("old\n")
        gate = StubGate(ModeState(PermissionMode.NORMAL))
        manager = PermissionManager(approval_gate=gate)

        context = ExecutionContext(working_directory=str(tmp_path))
        await manager.check("write_file", {"path": "a.txt", "content": "new\n"}, context)

        [change] = gate.requests[0].preview.changes
        assert change.before_content == "old\n"

    @pytest.mark.asyncio
    async def test_filesystem_error_still_prompts(self):
        class ScopedFilesystem(FakeFilesystem):
            def read_file(self, path):
                raise ValueError(f"{path} is outside the workspace")

        manager, gate = make_manager(filesystem=ScopedFilesystem({"../x": "old"}))

        decision = await manager.check("write_file", {"path": "../x", "content": "new"}, CONTEXT)

        assert decision.allowed is True
        assert gate.calls == 1
        assert gate.requests[0].preview is None


class TestInteractiveIntegration:
    """Tests running the real gate against a scripted terminal."""

    @pytest.mark.asyncio
    async def test_session_approval_via_prompt(self):
        terminal = ScriptedTerminal(["2"])
        manager = PermissionManager(
            mode_state=ModeState(PermissionMode.NORMAL),
            terminal=terminal,
            filesystem=FakeFilesystem(),
        )

        first = await manager.check("edit_file", {"path": "a.py", "search": "x"}, CONTEXT)
        second = await manager.check("write_file", {"path": "b.py", "content": ""}, CONTEXT)

        assert first.allowed is True
        assert second.allowed is True
        assert terminal.raw_mode_entries == 1

    @pytest.mark.asyncio
    async def test_cancel_via_prompt(self):
        terminal = ScriptedTerminal(["escape"])
        manager = PermissionManager(mode_state=ModeState(PermissionMode.NORMAL), terminal=terminal)

        decision = await manager.check("bash", {"command": "ls"}, CONTEXT)

        assert decision.allowed is False
        assert decision.reason == "User cancelled"

    @pytest.mark.asyncio
    async def test_backtab_switches_mode(self):
        terminal = ScriptedTerminal(["backtab"])
        manager = PermissionManager(mode_state=ModeState(PermissionMode.NORMAL), terminal=terminal)

        decision = await manager.check("bash", {"command": "ls"}, CONTEXT)
        follow_up = await manager.check("bash", {"command": "ls"}, CONTEXT)

        assert decision.allowed is True
        assert follow_up.allowed is True
        assert manager.current_mode() == PermissionMode.AUTO_ACCEPT
        assert "⚡ AUTO-EXECUTING: Execute bash" in terminal.output

    @pytest.mark.asyncio
    async def test_queued_check_honours_session_grant(self):
        terminal = ScriptedTerminal(["2", "3"])
        manager = PermissionManager(
            mode_state=ModeState(PermissionMode.NORMAL),
            terminal=terminal,
            filesystem=FakeFilesystem(),
        )

        first, second = await asyncio.gather(
            manager.check("write_file", {"path": "a.py", "content": "a"}, CONTEXT),
            manager.check("write_file", {"path": "b.py", "content": "b"}, CONTEXT),
        )

        assert first.allowed is True
        assert second.allowed is True
        assert second.reason == "Approved for this session"
        assert terminal.keys_read == ["2"]

    @pytest.mark.asyncio
    async def test_queued_check_honours_mode_switch(self):
        terminal = ScriptedTerminal(["backtab", "3"])
        manager = PermissionManager(mode_state=ModeState(PermissionMode.NORMAL), terminal=terminal)

        first, second = await asyncio.gather(
            manager.check("bash", {"command": "ls"}, CONTEXT),
            manager.check("bash", {"command": "pwd"}, CONTEXT),
        )

        assert first.allowed is True
        assert second.allowed is True
        assert terminal.keys_read == ["backtab"]
        assert "⚡ AUTO-EXECUTING: Execute bash" in terminal.output


class TestPersistence:
    """Tests for session state persistence."""

    def test_restore_on_startup(self):
        store = MemorySessionStore(SessionSnapshot(PermissionMode.PLAN_ONLY, ["tool:bash"]))

        manager, _ = make_manager(store=store)

        assert manager.current_mode() == PermissionMode.PLAN_ONLY
        assert manager.session_approvals() == ["tool:bash"]
        assert store.saves == 0

    def test_restore_keeps_explicit_mode(self):
        store = MemorySessionStore(SessionSnapshot(PermissionMode.PLAN_ONLY, ["tool:bash"]))

        manager, _ = make_manager(store=store, restore_mode=False)

        assert manager.current_mode() == PermissionMode.NORMAL
        assert manager.session_approvals() == ["tool:bash"]

    def test_no_restore_in_auto_accept(self):
        store = MemorySessionStore(SessionSnapshot(PermissionMode.PLAN_ONLY, ["tool:bash"]))

        manager, _ = make_manager(PermissionMode.AUTO_ACCEPT, store=store)

        assert manager.current_mode() == PermissionMode.AUTO_ACCEPT
        assert manager.session_approvals() == []

    def test_unattended_run_leaves_store_untouched(self):
        store = MemorySessionStore(SessionSnapshot(PermissionMode.NORMAL, ["tool:write_file"]))
        gate = StubGate(ModeState.initialize(environ={"CI": "true"}))
        unattended = PermissionManager(approval_gate=gate, store=store, filesystem=FakeFilesystem())
        assert unattended.current_mode() == PermissionMode.AUTO_ACCEPT

        unattended.set_mode(PermissionMode.NORMAL)
        unattended.close()

        assert store.saves == 0
        assert store.snapshot == SessionSnapshot(PermissionMode.NORMAL, ["tool:write_file"])

    @pytest.mark.asyncio
    async def test_interactive_run_after_unattended_run_prompts(self):
        store = MemorySessionStore()
        with make_manager(PermissionMode.AUTO_ACCEPT, store=store)[0]:
            pass

        manager, gate = make_manager(store=store)
        decision = await manager.check("bash", {"command": "rm -rf /"}, CONTEXT)

        assert manager.current_mode() == PermissionMode.NORMAL
        assert decision.allowed is True
        assert gate.calls == 1

    def test_corrupt_state_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "session-state.json"
        path.write_text("{not json")

        manager, _ = make_manager(store=JsonSessionStore(path))

        assert manager.current_mode() == PermissionMode.NORMAL
        assert manager.session_approvals() == []

    def test_mode_change_persisted(self, store):
        manager, _ = make_manager(store=store)

        manager.set_mode(PermissionMode.PLAN_ONLY)

        assert store.saves == 1
        assert store.snapshot.mode == PermissionMode.PLAN_ONLY

    def test_cycle_persisted(self, store):
        manager, _ = make_manager(store=store)

        assert manager.cycle_mode() == PermissionMode.AUTO_ACCEPT
        assert store.snapshot.mode == PermissionMode.AUTO_ACCEPT

    @pytest.mark.asyncio
    async def test_grant_persisted(self, store):
        manager, _ = make_manager(store=store)

        await manager.check("write_file", {"path": "a.txt"}, CONTEXT)

        assert store.snapshot.session_approvals == ["category:file_operations:medium", "tool:write_file"]

    @pytest.mark.asyncio
    async def test_save_failure_does_not_reach_caller(self):
        manager, _ = make_manager(store=FailingStore())

        decision = await manager.check("write_file", {"path": "a.txt"}, CONTEXT)
        manager.set_mode(PermissionMode.PLAN_ONLY)

        assert decision.allowed is True
        assert manager.current_mode() == PermissionMode.PLAN_ONLY

    def test_json_round_trip_through_manager(self, tmp_path):
        store = JsonSessionStore(tmp_path / "state" / "session-state.json")
        manager, _ = make_manager(store=store)
        manager.set_mode(PermissionMode.PLAN_ONLY)

        data = json.loads(store.path.read_text())
        assert data["permissions"]["mode"] == "plan_only"

        restored, _ = make_manager(store=store)
        assert restored.current_mode() == PermissionMode.PLAN_ONLY

    def test_close_flushes_once(self, store):
        manager, _ = make_manager(store=store)

        manager.close()
        manager.close()

        assert store.saves == 1

    def test_context_manager_closes(self, store):
        with make_manager(store=store)[0] as manager:
            assert manager.current_mode() == PermissionMode.NORMAL
        assert store.saves == 1


class TestManagerAccessors:
    """Tests for the manager's convenience methods."""

    def test_on_mode_changed(self):
        manager, _ = make_manager()
        seen = []
        unsubscribe = manager.on_mode_changed(seen.append)

        manager.set_mode(PermissionMode.PLAN_ONLY)
        unsubscribe()
        manager.set_mode(PermissionMode.NORMAL)

        assert seen == [PermissionMode.PLAN_ONLY]

    def test_policy_access(self):
        manager, _ = make_manager(policies=PolicyTable(include_defaults=False))
        assert manager.get_policy("bash") is None

        manager.add_policy(ToolPolicy(tool_name="bash", requires_approval=False))
        assert manager.get_policy("bash").requires_approval is False

    def test_mode_display(self):
        manager, _ = make_manager()
        assert manager.mode_display() == "🔒 NORMAL"
        assert manager.mode_description().startswith("Normal mode")


class TestDescriptions:
    """Tests for request descriptions and parameter summaries."""

    @pytest.mark.parametrize(
        "tool,params,expected",
        [
            ("write_file", {"path": "a.txt"}, "Write content to a.txt"),
            ("write_file", {}, "Write content to file"),
            ("edit_file", {"path": "a.py"}, "Edit file a.py"),
            ("move_file", {"from": "a", "to": "b"}, "Move a to b"),
            ("bash", {"command": "ls"}, "Execute shell command: ls"),
            ("git_commit", {}, "Commit changes with message: no message"),
            ("git_add", {"files": ["a", "b"]}, "Stage files for commit: a, b"),
            ("git_add", {}, "Stage files for commit: all changes"),
            ("deploy", {}, "Execute deploy operation"),
        ],
    )
    def test_describe_tool(self, tool, params, expected):
        assert describe_tool(tool, params) == expected

    def test_format_params(self):
        assert format_params({"path": "a.txt", "line_number": 3, "skip": None}) == 'path: "a.txt", line_number: 3'

    def test_format_no_params(self):
        assert format_params({}) == "No parameters"

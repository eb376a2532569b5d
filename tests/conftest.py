"""Pytest configuration and fixtures."""

from __future__ import annotations

import pytest

from trustgate.config.settings import get_settings
from trustgate.permissions.approval import ApprovalResult
from trustgate.permissions.modes import ModeState, PermissionMode
from trustgate.permissions.terminal import ScriptedTerminal
from trustgate.state.store import MemorySessionStore

_TRUSTGATE_ENV = (
    "TRUSTGATE_MODE",
    "TRUSTGATE_STATE_DIR",
    "TRUSTGATE_PERSIST_STATE",
    "TRUSTGATE_POLICY_FILE",
    "TRUSTGATE_STRICT_UNREGISTERED",
    "TRUSTGATE_LOG_LEVEL",
    "TRUSTGATE_LOG_FORMAT",
    "TRUSTGATE_SANITIZE_LOGS",
    "TRUSTGATE_HEADLESS",
    "TRUSTGATE_AUTO_ACCEPT",
)


class FakeFilesystem:
    """In-memory filesystem keyed by path."""

    def __init__(self, files: dict[str, str | bytes] | None = None):
        self.files: dict[str, bytes] = {}
        for path, content in (files or {}).items():
            self.add(path, content)
        self.reads: list[str] = []

    def add(self, path: str, content: str | bytes) -> None:
        self.files[path] = content.encode("utf-8") if isinstance(content, str) else content

    def exists(self, path: str) -> bool:
        return path in self.files

    def read_file(self, path: str) -> bytes:
        self.reads.append(path)
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]


class StubGate:
    """Approval gate that answers every request with a fixed result."""

    def __init__(self, mode_state: ModeState, result: ApprovalResult | None = None):
        self.mode_state = mode_state
        self.result = result or ApprovalResult(approved=True, approve_for_session=True)
        self.requests = []
        self.announcements: list[str] = []

    async def request_approval(self, request):
        self.requests.append(request)
        return self.result

    def announce_auto_execute(self, operation: str) -> None:
        self.announcements.append(operation)

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    """Keep host environment variables and cached settings out of tests."""
    for name in _TRUSTGATE_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("CI", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def normal_state():
    return ModeState(PermissionMode.NORMAL)


@pytest.fixture
def terminal():
    return ScriptedTerminal()


@pytest.fixture
def store():
    return MemorySessionStore()


@pytest.fixture
def filesystem():
    return FakeFilesystem()

"""Session state persistence.

Only two values survive a restart: the active permission mode and the
session approval tokens. The store is a collaborator of the permission
manager; writes are best-effort from the manager's point of view.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from trustgate.errors import PersistenceError
from trustgate.permissions.modes import PermissionMode

logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = "session-state.json"

# Restrictive permissions for the state directory and file.
_DIR_MODE = 0o700  # rwx------
_FILE_MODE = 0o600  # rw-------


@dataclass
class SessionSnapshot:
    """Persisted session state."""

    mode: PermissionMode = PermissionMode.NORMAL
    session_approvals: list[str] = field(default_factory=list)


class SessionStore(Protocol):
    def load(self) -> SessionSnapshot: ...

    def save(self, mode: PermissionMode, session_approvals: list[str]) -> None: ...


class MemorySessionStore:
    """In-process store for tests and ephemeral runs."""

    def __init__(self, snapshot: SessionSnapshot | None = None):
        self.snapshot = snapshot or SessionSnapshot()
        self.saves = 0

    def load(self) -> SessionSnapshot:
        return SessionSnapshot(self.snapshot.mode, list(self.snapshot.session_approvals))

    def save(self, mode: PermissionMode, session_approvals: list[str]) -> None:
        self.snapshot = SessionSnapshot(PermissionMode(mode), list(session_approvals))
        self.saves += 1


class JsonSessionStore:
    """Session state stored as a JSON document.

    Layout::

        {
          "permissions": {"mode": "normal", "session_approvals": [...]},
          "updated_at": "2024-01-01T00:00:00+00:00"
        }
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    @classmethod
    def in_directory(cls, state_dir: str | Path) -> JsonSessionStore:
        return cls(Path(state_dir) / DEFAULT_STATE_FILE)

    def load(self) -> SessionSnapshot:
        """Read the snapshot; a missing file yields defaults.

        Raises:
            PersistenceError: If the file is unreadable or malformed.
        """
        if not self.path.exists():
            return SessionSnapshot()

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Cannot read session state: {e}", path=str(self.path), cause=e) from e

        permissions = data.get("permissions") if isinstance(data, dict) else None
        if not isinstance(permissions, dict):
            raise PersistenceError("Session state has no 'permissions' section", path=str(self.path))

        try:
            mode = PermissionMode(permissions.get("mode", PermissionMode.NORMAL.value))
        except ValueError as e:
            raise PersistenceError(f"Unknown permission mode in session state: {e}", path=str(self.path)) from e

        approvals = permissions.get("session_approvals", [])
        if not isinstance(approvals, list):
            raise PersistenceError("'session_approvals' must be a list", path=str(self.path))

        return SessionSnapshot(mode=mode, session_approvals=list(approvals))

    def save(self, mode: PermissionMode, session_approvals: list[str]) -> None:
        """Write the snapshot with owner-only permissions.

        Raises:
            PersistenceError: If the file cannot be written.
        """
        document = {
            "permissions": {
                "mode": PermissionMode(mode).value,
                "session_approvals": list(session_approvals),
            },
            "updated_at": datetime.now(UTC).isoformat(),
        }
        directory = self.path.parent
        tmp_path: Path | None = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            try:
                os.chmod(directory, _DIR_MODE)
            except OSError:
                logger.debug(f"Could not restrict permissions on {directory}")

            # Written beside the target, then swapped in atomically
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=directory,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_path = Path(tmp.name)
                json.dump(document, tmp, indent=2)
                tmp.flush()
                os.fsync(tmp.fileno())
            try:
                os.chmod(tmp_path, _FILE_MODE)
            except OSError:
                logger.debug(f"Could not restrict permissions on {tmp_path}")
            os.replace(tmp_path, self.path)
        except OSError as e:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
            raise PersistenceError(f"Cannot write session state: {e}", path=str(self.path), cause=e) from e

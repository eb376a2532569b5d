"""Static per-tool risk and approval policies.

A tool without a registered policy is implicitly allowed; the manager
decides whether to honour that (see ``PermissionManager.strict_unregistered``).
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from trustgate.errors import PolicyConfigError
from trustgate.permissions.modes import PermissionMode

logger = logging.getLogger(__name__)


class RiskLevel(str, Enum):
    """Coarse risk classification of an operation."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]

    @classmethod
    def highest(cls, *levels: RiskLevel) -> RiskLevel:
        return max(levels, key=lambda level: level.rank, default=cls.LOW)


_RISK_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}

ALL_MODES: frozenset[PermissionMode] = frozenset(PermissionMode)


class ToolPolicy(BaseModel):
    """Approval policy for a single tool."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    tool_name: str = Field(..., min_length=1, description="Tool this policy applies to")
    requires_approval: bool = Field(..., description="Ask a human in normal mode")
    allowed_modes: frozenset[PermissionMode] = Field(
        default=ALL_MODES, description="Modes in which the tool may be considered at all"
    )
    risk_level: RiskLevel = Field(default=RiskLevel.LOW, description="Static risk level")


# Fixed tool groupings used to widen session grants
FILE_OPERATIONS = frozenset({"write_file", "edit_file", "append_to_file", "move_file"})
MULTI_FILE_OPERATIONS = frozenset({"multi_file_replace", "rename_symbol", "organize_imports"})
GIT_PREFIX = "git_"


def categories_for(tool_name: str) -> list[str]:
    """Return the session-grant categories a tool belongs to."""
    categories = []
    if tool_name in FILE_OPERATIONS:
        categories.append("file_operations")
    if tool_name.startswith(GIT_PREFIX):
        categories.append("git_operations")
    if tool_name in MULTI_FILE_OPERATIONS:
        categories.append("multi_file_operations")
    return categories


def _policy(name: str, requires_approval: bool, risk: RiskLevel) -> ToolPolicy:
    return ToolPolicy(tool_name=name, requires_approval=requires_approval, risk_level=risk)


DEFAULT_POLICIES: tuple[ToolPolicy, ...] = (
    # File operations
    _policy("write_file", True, RiskLevel.MEDIUM),
    _policy("edit_file", True, RiskLevel.MEDIUM),
    _policy("append_to_file", True, RiskLevel.MEDIUM),
    _policy("move_file", True, RiskLevel.HIGH),
    # Multi-file operations
    _policy("multi_file_replace", True, RiskLevel.MEDIUM),
    _policy("rename_symbol", True, RiskLevel.MEDIUM),
    # Git operations
    _policy("git_commit", True, RiskLevel.MEDIUM),
    _policy("git_add", False, RiskLevel.LOW),
    _policy("git_status", False, RiskLevel.LOW),
    # Shell operations
    _policy("bash", True, RiskLevel.HIGH),
    # Read operations
    _policy("read_file", False, RiskLevel.LOW),
    _policy("list_files", False, RiskLevel.LOW),
)


class PolicyTable:
    """Upsertable mapping of tool name to ToolPolicy.

    Read-mostly: populated at startup, then consulted on every check.

    Example:
        table = PolicyTable()
        table.add_policy(ToolPolicy(tool_name="deploy", requires_approval=True,
                                    risk_level=RiskLevel.HIGH))
        table.get_policy("deploy").risk_level  # RiskLevel.HIGH
    """

    def __init__(self, policies: list[ToolPolicy] | None = None, include_defaults: bool = True):
        self._policies: dict[str, ToolPolicy] = {}
        if include_defaults:
            for policy in DEFAULT_POLICIES:
                self.add_policy(policy)
        for policy in policies or []:
            self.add_policy(policy)

    def add_policy(self, policy: ToolPolicy) -> None:
        """Insert or replace the policy for ``policy.tool_name``."""
        self._policies[policy.tool_name] = policy

    def get_policy(self, tool_name: str) -> ToolPolicy | None:
        return self._policies.get(tool_name)

    def remove_policy(self, tool_name: str) -> bool:
        return self._policies.pop(tool_name, None) is not None

    def tool_names(self) -> list[str]:
        return list(self._policies.keys())

    def __iter__(self) -> Iterator[ToolPolicy]:
        return iter(list(self._policies.values()))

    def __len__(self) -> int:
        return len(self._policies)

    def __contains__(self, tool_name: object) -> bool:
        return tool_name in self._policies

    def update_from_mapping(self, data: Mapping[str, Any], source: str = "<mapping>") -> int:
        """Upsert policies from a ``{tool_name: {field: value}}`` mapping.

        Returns:
            Number of policies loaded.

        Raises:
            PolicyConfigError: If any entry fails validation.
        """
        count = 0
        for tool_name, fields in data.items():
            if not isinstance(fields, Mapping):
                raise PolicyConfigError(
                    f"Policy for {tool_name!r} must be a mapping", tool_name=tool_name, source=source
                )
            try:
                policy = ToolPolicy(tool_name=tool_name, **fields)
            except (ValidationError, TypeError) as e:
                raise PolicyConfigError(
                    f"Invalid policy for {tool_name!r}: {e}", tool_name=tool_name, source=source
                ) from e
            self.add_policy(policy)
            count += 1
        return count

    def load_yaml(self, path: str | Path) -> int:
        """Upsert policies from a YAML file with a top-level ``policies`` key.

        Raises:
            PolicyConfigError: If the file is unreadable or malformed.
        """
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise PolicyConfigError(f"Cannot load policy file: {e}", source=str(path)) from e

        policies = data.get("policies", {}) if isinstance(data, Mapping) else None
        if not isinstance(policies, Mapping):
            raise PolicyConfigError("'policies' must be a mapping", source=str(path))

        count = self.update_from_mapping(policies, source=str(path))
        logger.info(f"Loaded {count} tool policies from {path}")
        return count

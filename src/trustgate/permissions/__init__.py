"""Permission checks for agent tool invocations."""

from trustgate.permissions.approval import (
    ApprovalChoice,
    ApprovalGate,
    ApprovalRequest,
    ApprovalResult,
)
from trustgate.permissions.grants import SessionGrants
from trustgate.permissions.manager import ExecutionContext, PermissionDecision, PermissionManager
from trustgate.permissions.modes import ModeState, PermissionMode
from trustgate.permissions.policy import PolicyTable, RiskLevel, ToolPolicy
from trustgate.permissions.preview import LocalFilesystem, generate_preview
from trustgate.permissions.risk import classify_risk
from trustgate.permissions.terminal import PromptToolkitTerminal, ScriptedTerminal

__all__ = [
    "ApprovalChoice",
    "ApprovalGate",
    "ApprovalRequest",
    "ApprovalResult",
    "ExecutionContext",
    "LocalFilesystem",
    "ModeState",
    "PermissionDecision",
    "PermissionManager",
    "PermissionMode",
    "PolicyTable",
    "PromptToolkitTerminal",
    "RiskLevel",
    "ScriptedTerminal",
    "SessionGrants",
    "ToolPolicy",
    "classify_risk",
    "generate_preview",
]

"""trustgate - permission gate between a coding agent and the workspace."""

__version__ = "0.1.0"

from .config import Settings, get_settings
from .errors import PersistenceError, PolicyConfigError, TerminalError, TrustGateError
from .permissions import (
    ExecutionContext,
    PermissionDecision,
    PermissionManager,
    PermissionMode,
    RiskLevel,
    ToolPolicy,
)
from .runtime import build_permission_manager, permission_manager

__all__ = [
    "ExecutionContext",
    "PermissionDecision",
    "PermissionManager",
    "PermissionMode",
    "PersistenceError",
    "PolicyConfigError",
    "RiskLevel",
    "Settings",
    "TerminalError",
    "ToolPolicy",
    "TrustGateError",
    "build_permission_manager",
    "get_settings",
    "permission_manager",
]

"""trustgate Error Hierarchy.

Structured exception types for configuration and persistence faults.
Permission denials are never raised; they are returned as decisions.
"""

from __future__ import annotations


class TrustGateError(Exception):
    """Base error for all trustgate exceptions."""

    code = "TRUSTGATE_ERROR"

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# Policy Errors
class PolicyConfigError(TrustGateError):
    """A policy definition could not be loaded or validated."""

    code = "POLICY_CONFIG"

    def __init__(self, message: str, tool_name: str = None, source: str = None):
        super().__init__(message, {"tool_name": tool_name, "source": source})
        self.tool_name = tool_name
        self.source = source


# State Errors
class PersistenceError(TrustGateError):
    """Session state could not be read or written."""

    code = "PERSISTENCE_ERROR"

    def __init__(self, message: str, path: str = None, cause: Exception = None):
        details = {"path": path}
        if cause:
            details["cause"] = str(cause)
        super().__init__(message, details)
        self.path = path
        self.cause = cause


# Terminal Errors
class TerminalError(TrustGateError):
    """The interactive terminal could not be used."""

    code = "TERMINAL_ERROR"


class ScriptExhaustedError(TerminalError):
    """A scripted terminal ran out of key presses."""

    code = "SCRIPT_EXHAUSTED"

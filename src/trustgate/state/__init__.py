"""Session state persistence."""

from trustgate.state.store import (
    JsonSessionStore,
    MemorySessionStore,
    SessionSnapshot,
    SessionStore,
)

__all__ = ["JsonSessionStore", "MemorySessionStore", "SessionSnapshot", "SessionStore"]

"""Session-scoped approval grants.

Grants are opaque string tokens of two shapes:

- ``tool:<name>``: blanket grant for one tool
- ``category:<group>:<risk>``: grant for every tool in a fixed group at
  the same static risk level

The set only grows during a session; ``clear()`` empties it entirely.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator

from trustgate.permissions.policy import RiskLevel, ToolPolicy, categories_for

logger = logging.getLogger(__name__)

_TOKEN_PATTERN = re.compile(
    r"^(tool:.+|category:(file_operations|git_operations|multi_file_operations):(low|medium|high))$"
)


def tool_token(tool_name: str) -> str:
    return f"tool:{tool_name}"


def category_tokens(tool_name: str, risk: RiskLevel) -> list[str]:
    return [f"category:{category}:{RiskLevel(risk).value}" for category in categories_for(tool_name)]


class SessionGrants:
    """Set of session approval tokens."""

    def __init__(self, tokens: Iterable[str] = ()):
        self._tokens: set[str] = set()
        self.restore(tokens)

    def matches(self, tool_name: str, policy: ToolPolicy) -> bool:
        """True if a tool grant or one of the tool's category grants is present."""
        if tool_token(tool_name) in self._tokens:
            return True
        return any(token in self._tokens for token in category_tokens(tool_name, policy.risk_level))

    def grant(self, tool_name: str, policy: ToolPolicy) -> list[str]:
        """Add the tool grant and all its category grants.

        Returns:
            Tokens that were not present before.
        """
        tokens = [tool_token(tool_name), *category_tokens(tool_name, policy.risk_level)]
        added = [token for token in tokens if token not in self._tokens]
        self._tokens.update(tokens)
        if added:
            logger.info(f"Session approval granted for {tool_name}: {', '.join(added)}")
        return added

    def restore(self, tokens: Iterable[str]) -> int:
        """Add previously persisted tokens, skipping malformed ones."""
        restored = 0
        for token in tokens:
            if not isinstance(token, str) or not _TOKEN_PATTERN.match(token):
                logger.warning(f"Ignoring malformed session approval token: {token!r}")
                continue
            self._tokens.add(token)
            restored += 1
        return restored

    def clear(self) -> int:
        count = len(self._tokens)
        self._tokens.clear()
        return count

    def to_list(self) -> list[str]:
        return sorted(self._tokens)

    def __contains__(self, token: object) -> bool:
        return token in self._tokens

    def __iter__(self) -> Iterator[str]:
        return iter(self.to_list())

    def __len__(self) -> int:
        return len(self._tokens)

    def __bool__(self) -> bool:
        return bool(self._tokens)

"""Terminal abstraction used by the approval prompt.

Two implementations:

- PromptToolkitTerminal: real TTY. Key presses come from prompt_toolkit's
  input (raw mode, attached to the running asyncio loop); output goes
  through a rich Console.
- ScriptedTerminal: replays a fixed list of keys and records output, for
  tests and other unattended callers.

Key names are normalised to: "up", "down", "left", "right", "enter",
"escape", "ctrl-c", "backtab" or the literal character typed.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from typing import Protocol

from rich.console import Console
from rich.text import Text

from trustgate.errors import ScriptExhaustedError, TerminalError

logger = logging.getLogger(__name__)

# Delay before a lone ESC is treated as the Escape key
ESCAPE_FLUSH_DELAY = 0.05


class Terminal(Protocol):
    """Line/keypress terminal used by the approval gate."""

    def raw_mode(self): ...

    async def read_key(self) -> str: ...

    def hide_cursor(self) -> None: ...

    def show_cursor(self) -> None: ...

    def write_line(self, text: str = "") -> None: ...

    def erase_lines(self, count: int) -> None: ...


class PromptToolkitTerminal:
    """Interactive terminal backed by prompt_toolkit input and rich output."""

    def __init__(self, console: Console | None = None, input_factory=None):
        """Initialize the terminal.

        Args:
            console: Console for output. Defaults to a new rich Console.
            input_factory: Callable returning a prompt_toolkit Input. Defaults
                to ``prompt_toolkit.input.create_input``.
        """
        self.console = console or Console(highlight=False)
        self._input_factory = input_factory
        self._queue: asyncio.Queue[str] | None = None

    def _create_input(self):
        if self._input_factory is not None:
            return self._input_factory()
        from prompt_toolkit.input import create_input

        try:
            return create_input()
        except (OSError, ValueError) as e:
            raise TerminalError(f"No interactive input available: {e}") from e

    @contextmanager
    def raw_mode(self) -> Iterator[None]:
        """Put stdin in raw mode and route key presses into a queue.

        Must be entered from inside a running event loop. Terminal state is
        restored when the block exits, however it exits.
        """
        from prompt_toolkit.keys import Keys

        key_names = {
            Keys.Up: "up",
            Keys.Down: "down",
            Keys.Left: "left",
            Keys.Right: "right",
            Keys.ControlM: "enter",
            Keys.ControlJ: "enter",
            Keys.Escape: "escape",
            Keys.ControlC: "ctrl-c",
            Keys.BackTab: "backtab",
        }

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[str] = asyncio.Queue()
        term_input = self._create_input()
        pending_flush: list[asyncio.TimerHandle] = []

        def push(key_presses) -> None:
            for key_press in key_presses:
                queue.put_nowait(key_names.get(key_press.key) or key_press.data)

        def flush() -> None:
            pending_flush.clear()
            push(term_input.flush_keys())

        def keys_ready() -> None:
            push(term_input.read_keys())
            for handle in pending_flush:
                handle.cancel()
            pending_flush[:] = [loop.call_later(ESCAPE_FLUSH_DELAY, flush)]

        try:
            with term_input.raw_mode(), term_input.attach(keys_ready):
                self._queue = queue
                try:
                    yield
                finally:
                    self._queue = None
        finally:
            for handle in pending_flush:
                handle.cancel()
            term_input.close()

    async def read_key(self) -> str:
        if self._queue is None:
            raise TerminalError("read_key() called outside raw_mode()")
        return await self._queue.get()

    def hide_cursor(self) -> None:
        self.console.show_cursor(False)

    def show_cursor(self) -> None:
        self.console.show_cursor(True)

    def write_line(self, text: str = "") -> None:
        self.console.print(text)

    def erase_lines(self, count: int) -> None:
        if count <= 0 or not self.console.is_terminal:
            return
        self.console.file.write("\x1b[1A\x1b[2K" * count)
        self.console.file.flush()


class ScriptedTerminal:
    """Terminal stub that replays key presses and records output.

    Example:
        terminal = ScriptedTerminal(["down", "enter"])
        ...
        assert terminal.raw_mode_active is False
    """

    def __init__(self, keys: Iterable[str] = ()):
        self._keys = deque(keys)
        self.lines: list[str] = []
        self.raw_mode_active = False
        self.raw_mode_entries = 0
        self.cursor_hidden = False
        self.keys_read: list[str] = []

    def feed(self, *keys: str) -> None:
        self._keys.extend(keys)

    @contextmanager
    def raw_mode(self) -> Iterator[None]:
        self.raw_mode_active = True
        self.raw_mode_entries += 1
        try:
            yield
        finally:
            self.raw_mode_active = False

    async def read_key(self) -> str:
        if not self.raw_mode_active:
            raise TerminalError("read_key() called outside raw_mode()")
        if not self._keys:
            raise ScriptExhaustedError("No scripted key presses left")
        # Let other tasks run between key presses
        await asyncio.sleep(0)
        key = self._keys.popleft()
        self.keys_read.append(key)
        return key

    def hide_cursor(self) -> None:
        self.cursor_hidden = True

    def show_cursor(self) -> None:
        self.cursor_hidden = False

    def write_line(self, text: str = "") -> None:
        self.lines.append(Text.from_markup(text).plain)

    def erase_lines(self, count: int) -> None:
        del self.lines[max(0, len(self.lines) - count):]

    @property
    def output(self) -> str:
        return "\n".join(self.lines)

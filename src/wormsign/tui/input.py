"""Single-key terminal input for the browser (POSIX cbreak mode)."""

from __future__ import annotations

import os
import selectors
import sys
import termios
import tty
from types import TracebackType

# Bytes after ESC for cursor keys
_ARROWS = {
    "[A": "up",
    "[B": "down",
    "[C": "right",
    "[D": "left",
    "OA": "up",
    "OB": "down",
    "OC": "right",
    "OD": "left",
}

# Single bytes with a symbolic name
_NAMED = {
    "\r": "enter",
    "\n": "enter",
    "\x7f": "backspace",
    "\x08": "backspace",
    " ": "space",
}


def normalize_key(raw: str) -> str:
    """Map a raw single-character read to the name used by key handlers."""
    return _NAMED.get(raw, raw)


class KeyboardInput:
    """Context manager that switches stdin to cbreak mode and reads keys.

    Bytes are read straight from the file descriptor with ``os.read`` so the
    selector and the reader agree on what is pending; going through
    ``sys.stdin`` would buffer the tail of an escape sequence out of sight.

    Usage::

        with KeyboardInput() as kb:
            key = kb.read(timeout=0.1)  # "up", "enter", "q", ... or None
    """

    def __init__(self) -> None:
        self._fd = sys.stdin.fileno()
        self._saved: list | None = None
        self._selector = selectors.DefaultSelector()

    def __enter__(self) -> KeyboardInput:
        self._saved = termios.tcgetattr(self._fd)
        tty.setcbreak(self._fd)
        self._selector.register(self._fd, selectors.EVENT_READ)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self._selector.unregister(self._fd)
        self._selector.close()
        if self._saved is not None:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved)

    def read(self, timeout: float = 0.1) -> str | None:
        """Return the next key name, or None if nothing arrived in time."""
        if not self._selector.select(timeout=timeout):
            return None

        ch = self._read_char()
        if ch != "\x1b":
            return normalize_key(ch)

        tail = ""
        for _ in range(2):
            if not self._selector.select(timeout=0.02):
                break
            tail += self._read_char()
        return _ARROWS.get(tail, "escape")

    def _read_char(self) -> str:
        return os.read(self._fd, 1).decode("utf-8", errors="replace")

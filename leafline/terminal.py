"""Terminal output using Blessed: fullscreen session handle and draw surface."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Optional, Protocol, TextIO

import blessed

from .text_metrics import truncate_to


@dataclass(frozen=True)
class Rect:
    """Screen rectangle in 0-based cells."""
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height


class Surface(Protocol):
    def write(self, bounds: Rect, row: int, col: int, text: str) -> None: ...


class TerminalSession:
    """Reference-counted fullscreen handle around one blessed.Terminal.

    Nested users call acquire()/release() (or use the session as a context
    manager); the terminal enters fullscreen on the first acquire and is
    restored on the last release.
    """

    def __init__(self, terminal: Optional[blessed.Terminal] = None, stream: Optional[TextIO] = None):
        self.term = terminal or blessed.Terminal()
        self.stream = stream or sys.stdout
        self._depth = 0

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def is_fullscreen(self) -> bool:
        return self._depth > 0

    def acquire(self) -> "TerminalSession":
        if self._depth == 0:
            self.stream.write(self.term.enter_fullscreen + self.term.hide_cursor + self.term.clear)
            self.stream.flush()
        self._depth += 1
        return self

    def release(self) -> None:
        if self._depth == 0:
            return
        self._depth -= 1
        if self._depth == 0:
            self.stream.write(self.term.normal + self.term.exit_fullscreen + self.term.normal_cursor)
            self.stream.flush()

    def __enter__(self) -> "TerminalSession":
        return self.acquire()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    @property
    def width(self) -> int:
        return self.term.width

    @property
    def height(self) -> int:
        return self.term.height


class BlessedSurface:
    """Surface that writes styled strings through a blessed terminal."""

    def __init__(self, terminal: blessed.Terminal, stream: Optional[TextIO] = None):
        self.term = terminal
        self.stream = stream or sys.stdout

    def write(self, bounds: Rect, row: int, col: int, text: str) -> None:
        """Write text at (row, col) relative to bounds, clipped to them."""
        if row < 0 or row >= bounds.height or col < 0 or col >= bounds.width:
            return
        clipped = truncate_to(text, bounds.width - col, start_column=col)
        if not clipped:
            return
        self.stream.write(self.term.move_yx(bounds.y + row, bounds.x + col) + clipped + self.term.normal)

    def clear(self) -> None:
        self.stream.write(self.term.home + self.term.clear)

    def flush(self) -> None:
        self.stream.flush()

"""Screen geometry of rendered lines.

Each line drawn to the screen is recorded as a LineGeometry: where it sits
(page, column, row, column origin), which wrapped line it came from, and
the screen position of every grapheme cluster in its plain text. Selection
works purely from these records, never from styled output.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Hashable, Optional

from .text_metrics import cell_data_for, expand_tabs, strip_ansi

GeometryKey = tuple[Hashable, int, int, int]


@dataclass(frozen=True)
class LineCell:
    cluster: str
    char_start: int
    char_end: int
    display_width: int
    screen_x: int  # absolute screen column


@dataclass(frozen=True)
class LineGeometry:
    page_id: Hashable
    column_id: int
    row: int
    column_origin: int
    line_offset: int
    plain_text: str
    styled_text: str
    cells: tuple[LineCell, ...]

    @property
    def key(self) -> GeometryKey:
        return (self.page_id, self.column_id, self.row, self.column_origin)

    @property
    def display_width(self) -> int:
        return sum(cell.display_width for cell in self.cells)

    @property
    def end_x(self) -> int:
        """Screen column just past the last cell."""
        return self.column_origin + self.display_width

    def char_index_for_cell(self, cell_index: int) -> int:
        """Character offset of a cell boundary in plain_text."""
        if cell_index <= 0 or not self.cells:
            return 0
        if cell_index >= len(self.cells):
            return len(self.plain_text)
        return self.cells[cell_index].char_start

    def ordering(self) -> tuple:
        return (page_sort_key(self.page_id), self.line_offset, self.column_id, self.row, self.column_origin)


def page_sort_key(value: Hashable):
    # Page ids are ints in practice; keep mixed types comparable
    return (0, value, "") if isinstance(value, int) else (1, 0, str(value))


class GeometryBuilder:
    """Build LineGeometry records from rendered text."""

    @staticmethod
    def build(page_id: Hashable, column_id: int, row: int, column_origin: int, line_offset: int,
              plain_text: str, styled_text: Optional[str] = None,
              zero_width: bool = False) -> LineGeometry:
        plain = expand_tabs(strip_ansi(plain_text or ""))
        if zero_width:
            plain = ""
        cells = tuple(
            LineCell(
                cluster=cell.cluster,
                char_start=cell.char_start,
                char_end=cell.char_end,
                display_width=cell.display_width,
                screen_x=column_origin + cell.screen_x,
            )
            for cell in cell_data_for(plain)
        )
        return LineGeometry(
            page_id=page_id,
            column_id=column_id,
            row=row,
            column_origin=column_origin,
            line_offset=line_offset,
            plain_text=plain,
            styled_text=styled_text if styled_text is not None else plain,
            cells=cells,
        )


class RenderedLinesBuffer:
    """Frame-scoped geometry store with atomic commit.

    A renderer calls begin_frame(), record() for every line it draws and
    commit() when the frame is complete. Readers only ever see the last
    committed frame.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._committed: dict[GeometryKey, LineGeometry] = {}
        self._pending: Optional[dict[GeometryKey, LineGeometry]] = None

    def begin_frame(self) -> None:
        self._pending = {}

    def record(self, geometry: LineGeometry) -> None:
        if self._pending is None:
            self._pending = {}
        # Same screen position in one frame overwrites
        self._pending[geometry.key] = geometry

    def commit(self) -> None:
        frame = self._pending if self._pending is not None else {}
        self._pending = None
        with self._lock:
            self._committed = frame

    def discard(self) -> None:
        self._pending = None

    def clear(self) -> None:
        self._pending = None
        with self._lock:
            self._committed = {}

    def snapshot(self) -> dict[GeometryKey, LineGeometry]:
        with self._lock:
            return dict(self._committed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._committed)

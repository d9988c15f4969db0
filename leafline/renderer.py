"""Draw pages to a Surface and record their geometry for selection."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Hashable, Mapping, Optional, Sequence

from .blocks import DisplayLine, Line, line_text
from .constants import LayoutConstants
from .geometry import GeometryBuilder, GeometryKey, RenderedLinesBuffer
from .layout import LayoutConfig, LayoutMetrics
from .terminal import Rect, Surface
from .text_metrics import display_width_for, graphemes, pad_right, truncate_to

# Style flag -> blessed attribute name
_STYLE_ATTRIBUTES = (
    ("bold", "bold"),
    ("italic", "italic"),
    ("underline", "underline"),
    ("link", "underline"),
    ("code", "reverse"),
    ("separator", "dim"),
    ("quote_prefix", "dim"),
)


class MessageSlot:
    """A transient status message with a polled expiry.

    show() replaces any current message; the renderer asks for current()
    each frame and the message disappears once its deadline has passed.
    """

    def __init__(self, duration: float = LayoutConstants.MESSAGE_DURATION,
                 clock: Callable[[], float] = time.monotonic):
        self.duration = duration
        self._clock = clock
        self._text: Optional[str] = None
        self._expires_at = 0.0

    def show(self, text: str, duration: Optional[float] = None) -> None:
        self._text = text
        self._expires_at = self._clock() + (self.duration if duration is None else duration)

    def current(self) -> Optional[str]:
        if self._text is not None and self._clock() >= self._expires_at:
            self._text = None
        return self._text

    def poll(self) -> bool:
        """Expire the message if due. Returns True if one was cleared."""
        had_message = self._text is not None
        return had_message and self.current() is None

    def clear(self) -> None:
        self._text = None


class LineComposer:
    """Turn DisplayLine segments into styled terminal strings."""

    def __init__(self, terminal):
        self.term = terminal

    def _attributes(self, styles: Mapping, selected: bool) -> tuple[str, ...]:
        names = []
        for flag, attribute in _STYLE_ATTRIBUTES:
            if styles.get(flag) and attribute not in names:
                names.append(attribute)
        if selected:
            names = [name for name in names if name != "reverse"]
            names.append("reverse")
        return tuple(names)

    def compose(self, line: Line, width: int, selection: Optional[tuple[int, int]] = None) -> str:
        """Render a line to a styled string padded to width.

        selection is a [start, end) range of cell indexes drawn reversed.
        """
        if isinstance(line, DisplayLine):
            segments = [(segment.text, segment.styles) for segment in line.segments]
        else:
            segments = [(str(line), {})]

        runs: list[tuple[tuple[str, ...], list[str]]] = []
        used = 0
        cell_index = 0
        for text, styles in segments:
            for cluster in graphemes(truncate_to(text, width - used, start_column=used)):
                cluster_width = display_width_for(cluster)
                if used + cluster_width > width:
                    break
                selected = selection is not None and selection[0] <= cell_index < selection[1]
                attrs = self._attributes(styles, selected)
                if runs and runs[-1][0] == attrs:
                    runs[-1][1].append(cluster)
                else:
                    runs.append((attrs, [cluster]))
                used += cluster_width
                cell_index += 1

        out: list[str] = []
        for attrs, clusters in runs:
            if attrs:
                out.append(self.term.normal + "".join(getattr(self.term, name) for name in attrs))
                out.append("".join(clusters))
                out.append(self.term.normal)
            else:
                out.append("".join(clusters))
        out.append(" " * max(0, width - used))
        return "".join(out)


@dataclass(frozen=True)
class PageView:
    """What one column shows: which page and the lines it holds."""
    page_id: Hashable
    lines: Sequence[Line]
    start_line: int = 0


def column_bounds(width: int, height: int, config: LayoutConfig) -> list[Rect]:
    """Screen rectangles of the text columns for a terminal size."""
    column_width = LayoutMetrics.column_width(width, config.view_mode)
    content_height = LayoutMetrics.content_height(height)
    top = LayoutConstants.CONTENT_TOP_PADDING
    if config.view_mode == "split":
        left = LayoutConstants.SPLIT_LEFT_MARGIN
        right = left + column_width + LayoutConstants.SPLIT_COLUMN_GAP
        return [Rect(left, top, column_width, content_height),
                Rect(right, top, column_width, content_height)]
    return [Rect(max((width - column_width) // 2, 0), top, column_width, content_height)]


def status_bounds(width: int, height: int) -> Rect:
    return Rect(0, max(height - 1, 0), width, 1)


def header_bounds(width: int) -> Rect:
    return Rect(0, 0, width, 1)


class PageRenderer:
    """Draws pages column by column and commits each frame's geometry."""

    def __init__(self, surface: Surface, composer: LineComposer,
                 buffer: Optional[RenderedLinesBuffer] = None,
                 messages: Optional[MessageSlot] = None,
                 line_spacing: str = "compact"):
        self.surface = surface
        self.composer = composer
        self.buffer = buffer or RenderedLinesBuffer()
        self.messages = messages or MessageSlot()
        self.line_spacing = line_spacing

    @property
    def row_step(self) -> int:
        return 2 if self.line_spacing == "relaxed" else 1

    def render_frame(self, columns: Sequence[tuple[Rect, Optional[PageView]]],
                     status: str = "", status_rect: Optional[Rect] = None,
                     header: str = "", header_rect: Optional[Rect] = None,
                     selection: Optional[Mapping[GeometryKey, tuple[int, int]]] = None) -> None:
        self.buffer.begin_frame()
        try:
            if header_rect is not None:
                self.surface.write(header_rect, 0, 0, pad_right(header, header_rect.width))
            for column_id, (bounds, view) in enumerate(columns):
                self._draw_column(bounds, view, column_id, selection or {})
            if status_rect is not None:
                text = self.messages.current() or status
                self.surface.write(status_rect, 0, 0, pad_right(text, status_rect.width))
        except Exception:
            self.buffer.discard()
            raise
        self.buffer.commit()

    def render_page(self, bounds: Rect, view: Optional[PageView], **kwargs) -> None:
        """Single view: one column."""
        self.render_frame([(bounds, view)], **kwargs)

    def render_spread(self, left: Rect, right: Rect, left_view: Optional[PageView],
                      right_view: Optional[PageView], **kwargs) -> None:
        """Split view: two side-by-side columns, left column first in reading order."""
        self.render_frame([(left, left_view), (right, right_view)], **kwargs)

    def _draw_column(self, bounds: Rect, view: Optional[PageView], column_id: int,
                     selection: Mapping[GeometryKey, tuple[int, int]]) -> None:
        lines = list(view.lines) if view is not None else []
        drawn_rows = set()
        for index, line in enumerate(lines):
            row = index * self.row_step
            if row >= bounds.height:
                break
            drawn_rows.add(row)
            screen_row = bounds.y + row
            is_image = isinstance(line, DisplayLine) and line.is_image
            key = (view.page_id, column_id, screen_row, bounds.x)
            if is_image:
                # Image rows reserve space only
                styled = " " * bounds.width
            else:
                styled = self.composer.compose(line, bounds.width, selection.get(key))
            self.surface.write(bounds, row, 0, styled)
            self.buffer.record(GeometryBuilder.build(
                page_id=view.page_id,
                column_id=column_id,
                row=screen_row,
                column_origin=bounds.x,
                line_offset=view.start_line + index,
                plain_text=truncate_to(line_text(line), bounds.width),
                styled_text=styled,
                zero_width=is_image,
            ))
        blank = " " * bounds.width
        for row in range(bounds.height):
            if row not in drawn_rows:
                self.surface.write(bounds, row, 0, blank)

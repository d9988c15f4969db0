"""Map screen points to text positions and extract selected text."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Hashable, Iterable, Mapping, Optional, Union

from .geometry import GeometryKey, LineGeometry, RenderedLinesBuffer, page_sort_key

logger = logging.getLogger(__name__)

BIASES = ("leading", "trailing", "nearest")

RenderedLines = Union[RenderedLinesBuffer, Mapping[GeometryKey, LineGeometry], Iterable[LineGeometry]]


@dataclass(frozen=True)
class ScreenPoint:
    row: int
    col: int

    @classmethod
    def coerce(cls, value: Any) -> Optional["ScreenPoint"]:
        if isinstance(value, ScreenPoint):
            return value
        if isinstance(value, Mapping):
            if "row" in value and "col" in value:
                return cls(int(value["row"]), int(value["col"]))
            if "y" in value and "x" in value:
                return cls(int(value["y"]), int(value["x"]))
            return None
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return cls(int(value[0]), int(value[1]))
        return None


@dataclass(frozen=True)
class SelectionAnchor:
    """One end of a selection, addressed by rendered-line geometry."""
    page_id: Hashable
    column_id: int
    geometry_key: GeometryKey
    line_offset: int
    cell_index: int
    row: int
    column_origin: int

    def sort_key(self) -> tuple:
        return (page_sort_key(self.page_id), self.line_offset, self.column_id,
                self.row, self.column_origin, self.cell_index)

    def __lt__(self, other):
        return self.sort_key() < other.sort_key()

    def __ge__(self, other):
        return not self < other

    def to_dict(self) -> dict[str, Any]:
        return {
            "page_id": self.page_id,
            "column_id": self.column_id,
            "geometry_key": list(self.geometry_key),
            "line_offset": self.line_offset,
            "cell_index": self.cell_index,
            "row": self.row,
            "column_origin": self.column_origin,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SelectionAnchor":
        page_id = data["page_id"]
        column_id = int(data.get("column_id", 0))
        row = int(data["row"])
        column_origin = int(data.get("column_origin", 0))
        key = data.get("geometry_key")
        geometry_key = tuple(key) if key is not None else (page_id, column_id, row, column_origin)
        return cls(
            page_id=page_id,
            column_id=column_id,
            geometry_key=geometry_key,
            line_offset=int(data.get("line_offset", 0)),
            cell_index=int(data.get("cell_index", 0)),
            row=row,
            column_origin=column_origin,
        )

    @classmethod
    def for_geometry(cls, geometry: LineGeometry, cell_index: int) -> "SelectionAnchor":
        return cls(
            page_id=geometry.page_id,
            column_id=geometry.column_id,
            geometry_key=geometry.key,
            line_offset=geometry.line_offset,
            cell_index=cell_index,
            row=geometry.row,
            column_origin=geometry.column_origin,
        )


@dataclass(frozen=True)
class SelectionRange:
    start: SelectionAnchor
    end: SelectionAnchor


def _geometries(rendered_lines: RenderedLines) -> list[LineGeometry]:
    if isinstance(rendered_lines, RenderedLinesBuffer):
        return list(rendered_lines.snapshot().values())
    if isinstance(rendered_lines, Mapping):
        return list(rendered_lines.values())
    return list(rendered_lines or [])


def _endpoints(selection: Any) -> Optional[tuple[Any, Any]]:
    if isinstance(selection, SelectionRange):
        return selection.start, selection.end
    if isinstance(selection, Mapping):
        if "start" in selection and "end" in selection:
            return selection["start"], selection["end"]
        return None
    if isinstance(selection, (tuple, list)) and len(selection) == 2:
        return selection[0], selection[1]
    return None


def _is_anchor_dict(value: Any) -> bool:
    return isinstance(value, Mapping) and "page_id" in value and "cell_index" in value


class CoordinateService:
    """Resolve screen points against the last committed frame."""

    def anchor_from_point(self, point: Any, rendered_lines: RenderedLines,
                          bias: str = "leading") -> Optional[SelectionAnchor]:
        """Find the anchor for a 0-based (row, col) screen point.

        The point must be on a rendered row. Within the row, the line whose
        column span contains the point wins, else the nearest one. Points
        left of a line snap to its first cell and points right of it to the
        boundary after its last cell.

        Args:
            point: ScreenPoint, (row, col) tuple, or a dict with row/col.
            rendered_lines: Committed geometry to search.
            bias: "leading" picks the cell under the point, "trailing" the
                boundary after it, "nearest" whichever boundary is closer.
        """
        if bias not in BIASES:
            raise ValueError(f"bias must be one of {BIASES}, got {bias!r}")
        point = ScreenPoint.coerce(point)
        if point is None:
            return None
        candidates = [g for g in _geometries(rendered_lines) if g.row == point.row]
        if not candidates:
            return None
        geometry = min(candidates, key=lambda g: (self._distance(g, point.col), g.column_origin))
        return SelectionAnchor.for_geometry(geometry, self._cell_index(geometry, point.col, bias))

    @staticmethod
    def _distance(geometry: LineGeometry, col: int) -> int:
        if col < geometry.column_origin:
            return geometry.column_origin - col
        if col >= geometry.end_x:
            return col - geometry.end_x + (1 if geometry.cells else 0)
        return 0

    @staticmethod
    def _cell_index(geometry: LineGeometry, col: int, bias: str) -> int:
        cells = geometry.cells
        if not cells or col < geometry.column_origin:
            return 0
        if col >= geometry.end_x:
            return len(cells)
        for index, cell in enumerate(cells):
            if cell.display_width and cell.screen_x <= col < cell.screen_x + cell.display_width:
                if bias == "leading":
                    return index
                if bias == "trailing":
                    return index + 1
                return index if (col - cell.screen_x) * 2 < cell.display_width else index + 1
        return len(cells)

    def normalize_selection_range(self, selection: Any,
                                  rendered_lines: RenderedLines) -> Optional[SelectionRange]:
        """Order two endpoints into a (start, end) range.

        Endpoints may be anchors, anchor dicts or screen points. The later
        endpoint's cell index is an exclusive boundary, so a point endpoint
        that ends up last is resolved with trailing bias to include the
        cell under it.
        """
        endpoints = _endpoints(selection)
        if endpoints is None:
            return None
        resolved = []
        for endpoint in endpoints:
            if isinstance(endpoint, SelectionAnchor):
                resolved.append((endpoint, None))
            elif _is_anchor_dict(endpoint):
                try:
                    resolved.append((SelectionAnchor.from_dict(endpoint), None))
                except (KeyError, TypeError, ValueError):
                    return None
            else:
                anchor = self.anchor_from_point(endpoint, rendered_lines, "leading")
                if anchor is None:
                    return None
                resolved.append((anchor, endpoint))
        (first, first_point), (second, second_point) = resolved
        if second < first:
            first, second = second, first
            first_point, second_point = second_point, first_point
        if second_point is not None:
            second = self.anchor_from_point(second_point, rendered_lines, "trailing") or second
        return SelectionRange(first, second)


class SelectionService:
    """Extract plain text for a selection from committed geometry."""

    def __init__(self, coordinates: Optional[CoordinateService] = None):
        self.coordinates = coordinates or CoordinateService()

    def _ordered_span(self, selection: Any,
                      rendered_lines: RenderedLines) -> Optional[tuple[SelectionRange, list[LineGeometry]]]:
        if not isinstance(selection, SelectionRange):
            selection = self.coordinates.normalize_selection_range(selection, rendered_lines)
        if selection is None:
            return None
        ordered = sorted(_geometries(rendered_lines), key=LineGeometry.ordering)
        keys = [g.key for g in ordered]
        try:
            start_index = keys.index(tuple(selection.start.geometry_key))
            end_index = keys.index(tuple(selection.end.geometry_key))
        except ValueError:
            logger.debug("Selection refers to geometry that is no longer rendered")
            return None
        if end_index < start_index:
            return None
        return selection, ordered[start_index:end_index + 1]

    def cell_spans(self, selection: Any,
                   rendered_lines: RenderedLines) -> dict[GeometryKey, tuple[int, int]]:
        """Selected [start, end) cell range for each covered geometry."""
        span = self._ordered_span(selection, rendered_lines)
        if span is None:
            return {}
        selection, geometries = span
        result: dict[GeometryKey, tuple[int, int]] = {}
        for geometry in geometries:
            start = selection.start.cell_index if geometry.key == tuple(selection.start.geometry_key) else 0
            end = selection.end.cell_index if geometry.key == tuple(selection.end.geometry_key) \
                else len(geometry.cells)
            start = max(0, min(start, len(geometry.cells)))
            end = max(start, min(end, len(geometry.cells)))
            result[geometry.key] = (start, end)
        return result

    def extract_text(self, selection: Any, rendered_lines: RenderedLines) -> str:
        """Plain text between two anchors, one line per geometry.

        Zero-width geometries (image placeholders, blank rows) are passed
        over. A stale anchor yields "".
        """
        span = self._ordered_span(selection, rendered_lines)
        if span is None:
            return ""
        selection, geometries = span
        spans = self.cell_spans(selection, geometries)
        pieces: list[str] = []
        for geometry in geometries:
            if geometry.display_width == 0:
                continue
            start, end = spans[geometry.key]
            text = geometry.plain_text[geometry.char_index_for_cell(start):geometry.char_index_for_cell(end)]
            pieces.append(text)
        return "\n".join(pieces)

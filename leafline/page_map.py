"""Page map builders for absolute (per-chapter) and dynamic (global) paging."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .blocks import Line
from .document import DocumentLike

LineSource = Callable[[int, int], list[Line]]
ProgressCallback = Callable[[int, int], None]

_COMPACT_FIELDS = ("chapter_index", "page_in_chapter", "total_pages_in_chapter", "start_line", "end_line")


@dataclass
class PageRecord:
    """One page: an inclusive range of wrapped lines within a chapter.

    lines is None for stubs loaded from the pagination cache until the
    page calculator hydrates them.
    """
    chapter_index: int
    start_line: int
    end_line: int
    page_in_chapter: int
    total_pages_in_chapter: int
    lines: Optional[list[Line]] = None

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1

    def contains(self, line_offset: int) -> bool:
        return self.start_line <= line_offset <= self.end_line

    def to_compact(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in _COMPACT_FIELDS}

    @classmethod
    def from_compact(cls, data: dict[str, Any]) -> "PageRecord":
        values = {}
        for name in _COMPACT_FIELDS:
            value = data[name]
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValueError(f"Page field {name} must be an int, got {value!r}")
            values[name] = value
        if values["start_line"] > values["end_line"] or values["start_line"] < 0:
            raise ValueError(f"Invalid page line range {values['start_line']}..{values['end_line']}")
        return cls(**values)


def _pages_for(line_count: int, lines_per_page: int) -> int:
    if line_count <= 0:
        return 0
    return math.ceil(line_count / lines_per_page)


def _check_lines_per_page(lines_per_page: int) -> None:
    if lines_per_page <= 0:
        raise ValueError(f"lines_per_page must be positive, got {lines_per_page}")


class AbsolutePageMapBuilder:
    """Count pages per chapter; readers address lines by (chapter, offset)."""

    def build(self, document: DocumentLike, col_width: int, lines_per_page: int,
              line_source: LineSource, progress: Optional[ProgressCallback] = None) -> list[int]:
        _check_lines_per_page(lines_per_page)
        total = document.chapter_count
        counts: list[int] = []
        for chapter_index in range(total):
            lines = line_source(chapter_index, col_width)
            counts.append(_pages_for(len(lines), lines_per_page))
            if progress:
                progress(chapter_index + 1, total)
        return counts


class DynamicPageMapBuilder:
    """Build one flat list of pages spanning every chapter in order."""

    def build(self, document: DocumentLike, col_width: int, lines_per_page: int,
              line_source: LineSource, progress: Optional[ProgressCallback] = None) -> list[PageRecord]:
        _check_lines_per_page(lines_per_page)
        total = document.chapter_count
        pages: list[PageRecord] = []
        for chapter_index in range(total):
            lines = line_source(chapter_index, col_width)
            page_count = _pages_for(len(lines), lines_per_page)
            for page_in_chapter in range(page_count):
                start = page_in_chapter * lines_per_page
                end = min(start + lines_per_page, len(lines)) - 1
                pages.append(PageRecord(
                    chapter_index=chapter_index,
                    start_line=start,
                    end_line=end,
                    page_in_chapter=page_in_chapter,
                    total_pages_in_chapter=page_count,
                    lines=list(lines[start:end + 1]),
                ))
            if progress:
                progress(chapter_index + 1, total)
        return pages

"""Page map orchestration, page lookup and lazy hydration."""

from __future__ import annotations

import bisect
import logging
import threading
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional, Union

from .blocks import DisplayLine, Line
from .document import DocumentLike
from .formatting import FormattingService
from .layout import Layout, LayoutConfig, LayoutMetrics
from .page_map import AbsolutePageMapBuilder, DynamicPageMapBuilder, PageRecord, ProgressCallback
from .pagination_cache import PaginationCache
from .wrapping import WrappingService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingPosition:
    """A saved reading position waiting to be mapped onto a new page map.

    line_offset is exact; page_in_chapter is the coarser fallback used by
    older saves that only remember which page of the chapter was open.
    """
    chapter_index: int
    line_offset: Optional[int] = None
    page_in_chapter: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PendingPosition":
        def _int(name):
            value = data.get(name)
            return value if isinstance(value, int) and not isinstance(value, bool) else None
        return cls(
            chapter_index=_int("chapter_index") or 0,
            line_offset=_int("line_offset"),
            page_in_chapter=_int("page_index") if _int("page_in_chapter") is None else _int("page_in_chapter"),
        )


class PageCalculator:
    def __init__(self, formatting: FormattingService,
                 wrapping: Optional[WrappingService] = None,
                 pagination_cache: Optional[PaginationCache] = None):
        self.formatting = formatting
        self.wrapping = wrapping or formatting.wrapping
        self.pagination_cache = pagination_cache
        self._pages: list[PageRecord] = []
        self._hydrated: set[int] = set()
        self._chapter_pages: dict[int, tuple[list[int], list[int]]] = {}
        self._absolute_pages: list[int] = []
        self._document: Optional[DocumentLike] = None
        self._config: Optional[LayoutConfig] = None
        self._layout: Optional[Layout] = None
        self._lock = threading.Lock()

    @property
    def layout(self) -> Optional[Layout]:
        return self._layout

    def _line_source(self, document: DocumentLike, config: LayoutConfig, layout: Layout):
        max_rows = layout.max_image_rows if config.image_rendering else None

        def source(chapter_index: int, col_width: int) -> list[Line]:
            chapter = document.get_chapter(chapter_index)
            if chapter is None:
                return []
            if not getattr(chapter, "raw_content", None):
                return self.wrapping.wrap_lines(chapter.lines or [], chapter_index, col_width)
            return self.formatting.wrap_all(document, chapter_index, col_width,
                                            config.rendering_mode, max_rows)
        return source

    @staticmethod
    def cache_key(width: int, height: int, config: LayoutConfig) -> str:
        key = PaginationCache.layout_key(width, height, config.view_mode, config.line_spacing)
        # Image placeholders change line counts, so they get their own entry
        return f"{key}_img" if config.image_rendering else key

    def build_page_map(self, width: int, height: int, document: DocumentLike,
                       config: LayoutConfig, progress: Optional[ProgressCallback] = None) -> list[PageRecord]:
        """Build (or load) the dynamic page map for a document.

        Does nothing and returns [] unless config selects dynamic page
        numbering. A matching pagination cache entry is used as-is (pages
        come back as stubs); otherwise the map is built and written back.
        """
        layout = LayoutMetrics.layout(width, height, config)
        if not config.dynamic:
            self._set_pages([], document, config, layout)
            return []

        key = self.cache_key(width, height, config)
        pages = self._load_cached(document, key)
        if pages is not None:
            if progress:
                progress(document.chapter_count, document.chapter_count)
        else:
            pages = DynamicPageMapBuilder().build(
                document, layout.column_width, layout.lines_per_page,
                self._line_source(document, config, layout), progress)
            if self.pagination_cache is not None:
                self.pagination_cache.save_for_document(document, key, [p.to_compact() for p in pages])

        self._set_pages(pages, document, config, layout)
        return list(pages)

    def _load_cached(self, document: DocumentLike, key: str) -> Optional[list[PageRecord]]:
        if self.pagination_cache is None:
            return None
        compact = self.pagination_cache.load_for_document(document, key)
        if not compact:
            return None
        try:
            pages = [PageRecord.from_compact(page) for page in compact]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding pagination cache entry {key}: {e}")
            return None
        if any(page.chapter_index >= document.chapter_count for page in pages):
            logger.warning(f"Pagination cache entry {key} references missing chapters, rebuilding")
            return None
        return pages

    def _set_pages(self, pages: list[PageRecord], document: DocumentLike,
                   config: LayoutConfig, layout: Layout) -> None:
        index: dict[int, tuple[list[int], list[int]]] = {}
        for position, page in enumerate(pages):
            ends, positions = index.setdefault(page.chapter_index, ([], []))
            ends.append(page.end_line)
            positions.append(position)
        with self._lock:
            self._pages = list(pages)
            self._hydrated = {i for i, page in enumerate(pages) if not self.is_stub(page)}
            self._chapter_pages = index
            self._document = document
            self._config = config
            self._layout = layout

    def build_absolute_page_map(self, width: int, height: int, document: DocumentLike,
                                config: LayoutConfig,
                                progress: Optional[ProgressCallback] = None) -> list[int]:
        """Count pages per chapter for absolute page numbering."""
        layout = LayoutMetrics.layout(width, height, config)
        counts = AbsolutePageMapBuilder().build(
            document, layout.column_width, layout.lines_per_page,
            self._line_source(document, config, layout), progress)
        with self._lock:
            self._absolute_pages = counts
            self._document = document
            self._config = config
            self._layout = layout
        return list(counts)

    def absolute_pages_for(self, chapter_index: int) -> int:
        if 0 <= chapter_index < len(self._absolute_pages):
            return self._absolute_pages[chapter_index]
        return 0

    @property
    def total_absolute_pages(self) -> int:
        return sum(self._absolute_pages)

    @property
    def total_pages(self) -> int:
        return len(self._pages)

    def get_page(self, page_index: int) -> Optional[PageRecord]:
        """Return a page, clamping the index and hydrating stubs on first access."""
        with self._lock:
            if not self._pages:
                return None
            page_index = max(0, min(page_index, len(self._pages) - 1))
            page = self._pages[page_index]
            if page_index in self._hydrated and page.lines is not None:
                return page
        hydrated = self._hydrate(page)
        with self._lock:
            if page_index < len(self._pages) and self._pages[page_index] is page:
                self._pages[page_index] = hydrated
                self._hydrated.add(page_index)
        return hydrated

    def _hydrate(self, page: PageRecord) -> PageRecord:
        document, config, layout = self._document, self._config, self._layout
        fallback = page.lines if page.lines is not None else []
        if document is None or config is None or layout is None:
            return replace(page, lines=list(fallback))
        try:
            lines = self._line_source(document, config, layout)(page.chapter_index, layout.column_width)
            window = list(lines[page.start_line:page.end_line + 1])
        except Exception as e:
            # Keep whatever the page already had rather than failing the render
            logger.warning(f"Could not hydrate page for chapter {page.chapter_index}: {e}")
            return replace(page, lines=list(fallback))
        if not window and fallback:
            return replace(page, lines=list(fallback))
        return replace(page, lines=window)

    @staticmethod
    def is_stub(page: PageRecord) -> bool:
        """True when a page has no lines or only raw strings."""
        if page.lines is None:
            return True
        return bool(page.lines) and not any(isinstance(line, DisplayLine) for line in page.lines)

    def find_page_index(self, chapter_index: int, line_offset: int) -> int:
        """Global index of the page containing line_offset in a chapter.

        Returns the chapter's last page when line_offset lies beyond it,
        and 0 when the chapter has no pages.
        """
        entry = self._chapter_pages.get(chapter_index)
        if not entry:
            return 0
        ends, positions = entry
        pos = bisect.bisect_left(ends, line_offset)
        if pos >= len(ends):
            return positions[-1]
        return positions[pos]

    def restore_position(self, pending: Union[PendingPosition, Mapping[str, Any]]) -> int:
        """Map a saved position onto the current page map.

        An exact line offset wins; otherwise the saved page within the
        chapter is converted to a line offset using lines_per_page.
        """
        if not isinstance(pending, PendingPosition):
            pending = PendingPosition.from_dict(pending)
        if pending.line_offset is not None:
            return self.find_page_index(pending.chapter_index, max(pending.line_offset, 0))
        lines_per_page = self._layout.lines_per_page if self._layout else 1
        page_in_chapter = max(pending.page_in_chapter or 0, 0)
        return self.find_page_index(pending.chapter_index, page_in_chapter * lines_per_page)

"""Parse and wrap caches for formatted chapters.

The formatting service owns two caches:

* a parse cache mapping a chapter's raw markup (by SHA1 checksum) to its
  ContentBlocks, and
* a wrap cache mapping (width, rendering variant) to the DisplayLines
  built from those blocks.

Chapters without raw markup, or whose markup fails to parse, fall back to
their plain-text lines wrapped by the WrappingService so the reader keeps
working.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .blocks import ContentBlock, Line, plain_lines_for
from .constants import LayoutConstants
from .content_parser import ContentParser
from .document import ChapterLike, DocumentLike
from .line_assembler import LineAssembler, RenderingMode
from .wrapping import WrappingService

logger = logging.getLogger(__name__)

Variant = Union[RenderingMode, str]


@dataclass(frozen=True)
class FormattedChapter:
    checksum: str
    blocks: tuple[ContentBlock, ...]


def content_checksum(raw_content: str) -> str:
    return hashlib.sha1(raw_content.encode("utf-8", "surrogatepass")).hexdigest()


def _rendering_mode(variant: Variant) -> RenderingMode:
    if isinstance(variant, RenderingMode):
        return variant
    return RenderingMode.IMAGES if str(variant).lower() in ("images", "img", "image") else RenderingMode.TEXT


def wrap_cache_key(width: int, variant: Variant = RenderingMode.TEXT,
                   max_image_rows: Optional[int] = None) -> str:
    """Key for one wrap-cache bucket.

    Image-enabled wrapping is keyed on the row limit too, so a height
    change that shrinks images does not reuse stale placeholder rows.
    """
    if _rendering_mode(variant) is RenderingMode.IMAGES:
        return f"{width}|img|{max_image_rows}"
    return f"{width}|txt"


def document_key(document: DocumentLike) -> str:
    return getattr(document, "canonical_path", None) or f"id:{id(document)}"


class FormattingService:
    def __init__(self,
                 parser_factory: Callable[[str], ContentParser] = ContentParser,
                 wrapping: Optional[WrappingService] = None,
                 prefetch_pages: int = LayoutConstants.PREFETCH_PAGES,
                 executor: Optional[ThreadPoolExecutor] = None):
        self.parser_factory = parser_factory
        self.wrapping = wrapping or WrappingService(prefetch_pages=prefetch_pages)
        self.prefetch_pages = prefetch_pages
        self._formatted: dict[tuple[str, int], FormattedChapter] = {}
        self._wrapped: dict[tuple[str, int], dict[str, list[Line]]] = {}
        self._widths: OrderedDict[int, None] = OrderedDict()
        self._lock = threading.Lock()
        self._executor = executor

    def ensure_formatted(self, document: DocumentLike, chapter_index: int,
                         chapter: Optional[ChapterLike] = None) -> Optional[FormattedChapter]:
        """Parse a chapter's markup into blocks, reusing cached results.

        Returns None when the chapter has no raw markup or the markup could
        not be parsed; callers then use the chapter's plain lines.
        """
        if chapter is None:
            chapter = document.get_chapter(chapter_index)
        if chapter is None:
            return None
        raw = getattr(chapter, "raw_content", None)
        if not raw:
            return None

        key = (document_key(document), chapter_index)
        checksum = content_checksum(raw)
        with self._lock:
            cached = self._formatted.get(key)
        if cached is not None and cached.checksum == checksum:
            if getattr(chapter, "blocks", None) is None:
                chapter.blocks = list(cached.blocks)
            return cached

        try:
            blocks = self.parser_factory(raw).parse()
        except Exception as e:
            # Malformed chapter markup must never take down rendering
            logger.warning(f"Could not parse chapter {chapter_index} of {key[0]}: {e}")
            return None

        formatted = FormattedChapter(checksum=checksum, blocks=tuple(blocks))
        with self._lock:
            self._formatted[key] = formatted
            self._wrapped.pop(key, None)
        chapter.blocks = list(blocks)
        if not getattr(chapter, "lines", None):
            chapter.lines = plain_lines_for(list(blocks))
        return formatted

    def wrap_all(self, document: DocumentLike, chapter_index: int, width: int,
                 variant: Variant = RenderingMode.TEXT,
                 max_image_rows: Optional[int] = None) -> list[Line]:
        """All wrapped lines of a chapter at the given width."""
        if width <= 0:
            return []
        chapter = document.get_chapter(chapter_index)
        if chapter is None:
            return []
        formatted = self.ensure_formatted(document, chapter_index, chapter)
        if formatted is None:
            return self.wrapping.wrap_lines(getattr(chapter, "lines", None) or [], chapter_index, width)

        key = (document_key(document), chapter_index)
        bucket_key = wrap_cache_key(width, variant, max_image_rows)
        with self._lock:
            cached = self._wrapped.get(key, {}).get(bucket_key)
            if cached is not None:
                self._use_width(width)
                return cached

        lines: list[Line] = list(LineAssembler(
            width,
            chapter_index=chapter_index,
            rendering_mode=_rendering_mode(variant),
            max_image_rows=max_image_rows,
        ).build(list(formatted.blocks)))
        with self._lock:
            self._use_width(width)
            return self._wrapped.setdefault(key, {}).setdefault(bucket_key, lines)

    def wrap_window(self, document: DocumentLike, chapter_index: int, width: int,
                    offset: int, length: int, variant: Variant = RenderingMode.TEXT,
                    max_image_rows: Optional[int] = None) -> list[Line]:
        """Wrapped lines [offset, offset + length) of a chapter, clamped.

        Serving a window schedules a background prefetch of the pages and
        chapters around it.
        """
        if width <= 0 or length <= 0:
            return []
        chapter = document.get_chapter(chapter_index)
        if chapter is None:
            return []
        offset = max(0, offset)
        if self.ensure_formatted(document, chapter_index, chapter) is None:
            lines = getattr(chapter, "lines", None) or []
            window = self.wrapping.wrap_window(lines, chapter_index, width, offset, length)
            self.wrapping.prefetch_windows(lines, chapter_index, width, offset, length)
            return window

        window = self.wrap_all(document, chapter_index, width, variant, max_image_rows)[offset:offset + length]
        self.prefetch(document, chapter_index, width, offset, length, variant, max_image_rows)
        return window

    def prefetch(self, document: DocumentLike, chapter_index: int, width: int,
                 offset: int, length: int, variant: Variant = RenderingMode.TEXT,
                 max_image_rows: Optional[int] = None) -> Optional[Future]:
        """Wrap neighbouring content in the background.

        Warms the current chapter and, when the visible window is within
        prefetch_pages pages of a chapter edge, the adjacent chapter too.
        """
        if width <= 0 or length <= 0 or self.prefetch_pages <= 0:
            return None
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=LayoutConstants.PREFETCH_WORKERS,
                    thread_name_prefix="leafline-prefetch",
                )
            executor = self._executor
        return executor.submit(self._prefetch, document, chapter_index, width, offset, length,
                               variant, max_image_rows)

    def _prefetch(self, document, chapter_index, width, offset, length, variant, max_image_rows) -> None:
        try:
            span = self.prefetch_pages * length
            total = len(self.wrap_all(document, chapter_index, width, variant, max_image_rows))
            neighbours = []
            if offset + length + span >= total:
                neighbours.append(chapter_index + 1)
            if offset - span < 0:
                neighbours.append(chapter_index - 1)
            for index in neighbours:
                if 0 <= index < document.chapter_count:
                    self.wrap_all(document, index, width, variant, max_image_rows)
        except Exception as e:
            # Prefetch only warms caches; failures have no visible effect
            logger.debug(f"Prefetch failed for chapter {chapter_index}: {e}")

    def _use_width(self, width: int) -> None:
        # Caller holds the lock; buckets of the least recently used widths go
        self._widths[width] = None
        self._widths.move_to_end(width)
        while len(self._widths) > LayoutConstants.WRAP_CACHE_WIDTHS:
            stale, _ = self._widths.popitem(last=False)
            prefix = f"{stale}|"
            for buckets in self._wrapped.values():
                for bucket_key in [k for k in buckets if k.startswith(prefix)]:
                    del buckets[bucket_key]

    def is_wrapped(self, document: DocumentLike, chapter_index: int, width: int,
                   variant: Variant = RenderingMode.TEXT, max_image_rows: Optional[int] = None) -> bool:
        key = (document_key(document), chapter_index)
        with self._lock:
            return wrap_cache_key(width, variant, max_image_rows) in self._wrapped.get(key, {})

    def invalidate(self, document: DocumentLike) -> None:
        """Drop every cache entry belonging to one document."""
        doc = document_key(document)
        with self._lock:
            for cache in (self._formatted, self._wrapped):
                for key in [k for k in cache if k[0] == doc]:
                    del cache[key]
        self.wrapping.clear_cache()

    def clear(self) -> None:
        with self._lock:
            self._formatted.clear()
            self._wrapped.clear()
            self._widths.clear()
        self.wrapping.clear_cache()

    def shutdown(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)
        self.wrapping.shutdown()

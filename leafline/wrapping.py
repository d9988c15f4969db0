"""Word wrapping for chapters that only have plain-text lines."""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from .blocks import LineMetadata, TextSegment
from .constants import LayoutConstants
from .line_assembler import TextWrapper, Tokenizer
from .text_metrics import expand_tabs

logger = logging.getLogger(__name__)


def wrap_plain_line(line: str, width: int) -> list[str]:
    """Wrap one raw line; blank lines stay as a single empty string."""
    text = expand_tabs(line.rstrip("\r\n"))
    if not text.strip():
        return [""]
    indent = text[:len(text) - len(text.lstrip())]
    tokens = Tokenizer().tokenize([TextSegment(text.lstrip())])
    prefix = [(indent, {})] if indent and len(indent) < width else []
    wrapped = TextWrapper(width).wrap(tokens, LineMetadata(), prefix, [])
    return [display.text for display in wrapped] or [""]


class WrappingService:
    """Wraps raw chapter lines and caches results per (chapter, width).

    Cache entries remember the list object they were built from, so a
    chapter whose lines were replaced is re-wrapped instead of served
    stale. Only the most recently used widths are kept, and the window
    cache is bounded.
    """

    def __init__(self, prefetch_pages: int = LayoutConstants.PREFETCH_PAGES,
                 executor: Optional[ThreadPoolExecutor] = None):
        self.prefetch_pages = prefetch_pages
        self._chapter_cache: dict[tuple[Optional[int], int], tuple[list, list[str]]] = {}
        self._window_cache: OrderedDict[tuple[Optional[int], int, int, int], tuple[list, list[str]]] = OrderedDict()
        self._widths: OrderedDict[int, None] = OrderedDict()
        self._lock = threading.Lock()
        self._executor = executor

    def wrap_lines(self, lines: list[str], chapter_index: Optional[int], width: int) -> list[str]:
        if width < LayoutConstants.MIN_WRAP_WIDTH or lines is None:
            return []
        key = (chapter_index, width)
        with self._lock:
            cached = self._chapter_cache.get(key)
            if cached is not None and cached[0] is lines:
                self._use_width(width)
                return cached[1]

        wrapped: list[str] = []
        for line in lines:
            wrapped.extend(wrap_plain_line(str(line), width))

        with self._lock:
            current = self._chapter_cache.get(key)
            if current is not None and current[0] is lines:
                return current[1]
            self._use_width(width)
            self._chapter_cache[key] = (lines, wrapped)
        return wrapped

    def wrap_window(self, lines: list[str], chapter_index: Optional[int], width: int,
                    offset: int, length: int) -> list[str]:
        if length <= 0 or width < LayoutConstants.MIN_WRAP_WIDTH:
            return []
        offset = max(0, offset)
        key = (chapter_index, width, offset, length)
        with self._lock:
            cached = self._window_cache.get(key)
            if cached is not None and cached[0] is lines:
                self._window_cache.move_to_end(key)
                return cached[1]

        window = self.wrap_lines(lines, chapter_index, width)[offset:offset + length]
        with self._lock:
            self._window_cache[key] = (lines, window)
            self._window_cache.move_to_end(key)
            while len(self._window_cache) > LayoutConstants.WINDOW_CACHE_SIZE:
                self._window_cache.popitem(last=False)
        return window

    def prefetch_windows(self, lines: list[str], chapter_index: Optional[int], width: int,
                         offset: int, length: int) -> Optional[Future]:
        """Warm the window cache for pages around the visible one."""
        if length <= 0 or self.prefetch_pages <= 0:
            return None
        return self._submit(self._prefetch, lines, chapter_index, width, offset, length)

    def _prefetch(self, lines, chapter_index, width, offset, length) -> None:
        try:
            total = len(self.wrap_lines(lines, chapter_index, width))
            for step in range(1, self.prefetch_pages + 1):
                for window_offset in (offset + step * length, offset - step * length):
                    if 0 <= window_offset < total:
                        self.wrap_window(lines, chapter_index, width, window_offset, length)
        except Exception as e:
            # Prefetch only warms caches; the foreground path recomputes on a miss
            logger.debug(f"Prefetch failed for chapter {chapter_index}: {e}")

    def _submit(self, fn, *args) -> Future:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=LayoutConstants.PREFETCH_WORKERS,
                    thread_name_prefix="leafline-wrap-prefetch",
                )
            executor = self._executor
        return executor.submit(fn, *args)

    def _use_width(self, width: int) -> None:
        # Caller holds the lock
        self._widths[width] = None
        self._widths.move_to_end(width)
        while len(self._widths) > LayoutConstants.WRAP_CACHE_WIDTHS:
            stale, _ = self._widths.popitem(last=False)
            self._drop_width(stale)

    def _drop_width(self, width: int) -> None:
        for key in [k for k in self._chapter_cache if k[1] == width]:
            del self._chapter_cache[key]
        for key in [k for k in self._window_cache if k[1] == width]:
            del self._window_cache[key]

    def clear_cache_for_width(self, width: int) -> None:
        with self._lock:
            self._widths.pop(width, None)
            self._drop_width(width)

    def clear_cache(self) -> None:
        with self._lock:
            self._chapter_cache.clear()
            self._window_cache.clear()
            self._widths.clear()

    def shutdown(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

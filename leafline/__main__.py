"""leafline CLI entry point.

Allows running via `python -m leafline FILE` and provides the console
script declared in `pyproject.toml`. Pages an .xhtml/.html/.txt file in
the terminal, or prints page text with --dump.
"""

from __future__ import annotations

import argparse
import logging
import shutil
import sys
from typing import Optional

from .blocks import line_text
from .constants import LINE_SPACINGS, VIEW_MODES
from .document import Document
from .formatting import FormattingService
from .layout import LayoutConfig, LayoutMetrics
from .page_calculator import PageCalculator
from .pagination_cache import PaginationCache
from .renderer import PageView
from .settings_persistence import SettingsPersistence, get_persistence
from .version import get_version_string

logger = logging.getLogger(__name__)


class Pager:
    """Uniform page access over dynamic and absolute page numbering."""

    def __init__(self, document: Document, config: LayoutConfig, width: int, height: int,
                 pagination_cache: Optional[PaginationCache] = None):
        self.document = document
        self.config = config
        self.formatting = FormattingService()
        self.calculator = PageCalculator(self.formatting, pagination_cache=pagination_cache)
        self.layout = LayoutMetrics.layout(width, height, config)
        self._absolute: list[tuple[int, int]] = []
        if config.dynamic:
            self.calculator.build_page_map(width, height, document, config)
        else:
            counts = self.calculator.build_absolute_page_map(width, height, document, config)
            self._absolute = [(chapter, page) for chapter, count in enumerate(counts) for page in range(count)]

    @property
    def page_count(self) -> int:
        if self.config.dynamic:
            return self.calculator.total_pages
        return len(self._absolute)

    def view(self, index: int) -> Optional[PageView]:
        if index < 0 or index >= self.page_count:
            return None
        if self.config.dynamic:
            page = self.calculator.get_page(index)
            return PageView(index, page.lines or [], page.start_line)
        chapter, page_in_chapter = self._absolute[index]
        start = page_in_chapter * self.layout.lines_per_page
        lines = self.formatting.wrap_window(
            self.document, chapter, self.layout.column_width, start, self.layout.lines_per_page,
            self.config.rendering_mode, self.layout.max_image_rows if self.config.image_rendering else None)
        return PageView(index, lines, start)

    def position(self, index: int) -> tuple[int, int]:
        """(chapter_index, line_offset) of a page."""
        if self.config.dynamic:
            page = self.calculator.get_page(index)
            return (page.chapter_index, page.start_line) if page else (0, 0)
        if 0 <= index < len(self._absolute):
            chapter, page_in_chapter = self._absolute[index]
            return chapter, page_in_chapter * self.layout.lines_per_page
        return 0, 0

    def index_for(self, chapter_index: int, line_offset: int) -> int:
        if self.config.dynamic:
            return self.calculator.restore_position({"chapter_index": chapter_index, "line_offset": line_offset})
        target = (chapter_index, line_offset // self.layout.lines_per_page)
        return self._absolute.index(target) if target in self._absolute else 0

    def close(self) -> None:
        self.formatting.shutdown()


def _parse_args(argv: Optional[list[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="leafline", description="Page through a chapter file in the terminal.")
    parser.add_argument("file", nargs="?", help=".xhtml, .html or .txt file to read")
    parser.add_argument("--width", type=int, help="terminal width to lay out for")
    parser.add_argument("--height", type=int, help="terminal height to lay out for")
    parser.add_argument("--view", choices=VIEW_MODES, help="single or split (two-column) view")
    parser.add_argument("--spacing", choices=LINE_SPACINGS, help="line spacing")
    parser.add_argument("--page", type=int, help="1-based page to open")
    parser.add_argument("--dump", action="store_true", help="print page text instead of paging")
    parser.add_argument("--no-cache", action="store_true", help="do not read or write the pagination cache")
    parser.add_argument("--debug", action="store_true", help="log to stderr")
    parser.add_argument("--version", "-V", action="store_true", help="print version and exit")
    return parser.parse_args(argv)


def _dump(pager: Pager, page: Optional[int], out=None) -> None:
    out = out or sys.stdout
    indexes = [page] if page is not None else range(pager.page_count)
    for position, index in enumerate(indexes):
        view = pager.view(index)
        if view is None:
            continue
        if position:
            out.write("\f\n")
        for line in view.lines:
            out.write(line_text(line) + "\n")


def _run_interactive(pager: Pager, start: int, persistence: SettingsPersistence) -> None:
    import blessed

    from .renderer import (LineComposer, MessageSlot, PageRenderer, column_bounds, header_bounds,
                           status_bounds)
    from .terminal import BlessedSurface, TerminalSession

    term = blessed.Terminal()
    session = TerminalSession(term)
    surface = BlessedSurface(term)
    messages = MessageSlot()
    renderer = PageRenderer(surface, LineComposer(term), messages=messages,
                            line_spacing=pager.config.line_spacing)
    columns = column_bounds(term.width, term.height, pager.config)
    step = len(columns)
    index = max(0, min(start, pager.page_count - 1))
    messages.show(f"{pager.page_count} pages - n/p to turn, q to quit")

    with session, term.cbreak():
        while True:
            views = [pager.view(index + offset) for offset in range(step)]
            status = f"Page {index + 1} of {pager.page_count}"
            renderer.render_frame(
                list(zip(columns, views)),
                status=status, status_rect=status_bounds(term.width, term.height),
                header=pager.document.chapters[0].title if pager.document.chapters else "",
                header_rect=header_bounds(term.width),
            )
            surface.flush()
            key = term.inkey(timeout=0.5)
            if not key:
                continue
            if key in ("q", "Q") or key.name == "KEY_ESCAPE":
                break
            if key in ("n", " ") or key.name in ("KEY_RIGHT", "KEY_PGDOWN"):
                if index + step < pager.page_count:
                    index += step
                else:
                    messages.show("Last page")
            elif key == "p" or key.name in ("KEY_LEFT", "KEY_PGUP"):
                if index > 0:
                    index = max(0, index - step)
                else:
                    messages.show("First page")

    chapter_index, line_offset = pager.position(index)
    persistence.save_position(pager.document.canonical_path, chapter_index, line_offset=line_offset)


def main(argv: Optional[list[str]] = None) -> int:
    args = _parse_args(argv)
    if args.version:
        print(get_version_string())
        return 0
    if not args.file:
        print("usage: leafline FILE [options]", file=sys.stderr)
        return 2
    if args.debug:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    try:
        document = Document.from_file(args.file)
    except (OSError, UnicodeDecodeError) as e:
        print(f"leafline: cannot read {args.file}: {e}", file=sys.stderr)
        return 1

    persistence = get_persistence()
    settings = persistence.load_settings(document.canonical_path)
    if args.view:
        settings["view_mode"] = args.view
    if args.spacing:
        settings["line_spacing"] = args.spacing
    config = LayoutConfig.from_settings(settings)

    size = shutil.get_terminal_size()
    width = args.width or size.columns
    height = args.height or size.lines
    try:
        pager = Pager(document, config, width, height,
                      pagination_cache=None if args.no_cache else PaginationCache())
    except ValueError as e:
        print(f"leafline: {e}", file=sys.stderr)
        return 1

    try:
        if args.page is not None:
            start = args.page - 1
        else:
            pending = persistence.load_position(document.canonical_path)
            start = pager.index_for(pending.chapter_index, pending.line_offset or 0) if pending else 0
        if args.dump:
            _dump(pager, start if args.page is not None else None)
        else:
            _run_interactive(pager, start, persistence)
    finally:
        pager.close()
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())

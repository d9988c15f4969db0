"""Terminal text measurement: grapheme clusters, display widths, ANSI handling.

Every width computation in leafline goes through this module so that
wrapping, truncation and selection geometry agree on how many terminal
cells a piece of text occupies.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass

import grapheme
import wcwidth as _wcwidth

from .constants import LayoutConstants

# CSI sequences: ESC[ <params> <intermediates> <final byte>
_CSI_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]")
# OSC sequences terminated by BEL or ST (hyperlinks, titles)
_OSC_RE = re.compile(r"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)")
_STRIP_RE = re.compile(_CSI_RE.pattern + "|" + _OSC_RE.pattern)

_SOFT_HYPHEN = "\u00ad"
_ZWJ = "\u200d"
_VS16 = "\ufe0f"


@dataclass(frozen=True)
class CellData:
    """One grapheme cluster's position in a line of plain text."""
    cluster: str
    char_start: int
    char_end: int
    display_width: int
    screen_x: int


def strip_ansi(text: str) -> str:
    """Remove CSI and OSC escape sequences."""
    if not text:
        return ""
    return _STRIP_RE.sub("", text)


def graphemes(text: str) -> list[str]:
    """Split text into user-perceived characters."""
    if not text:
        return []
    return list(grapheme.graphemes(text))


def display_width_for(cluster: str) -> int:
    """Return the number of terminal columns a single cluster occupies.

    Tabs count as TAB_SIZE (callers that care about tab stops expand them
    first), soft hyphens are invisible, emoji sequences are two columns,
    and anything wcwidth reports as non-printable but non-empty counts as
    one column so it can still be selected.
    """
    if not cluster:
        return 0
    if cluster == "\t":
        return LayoutConstants.TAB_SIZE
    if cluster == _SOFT_HYPHEN:
        return 0
    if len(cluster) == 1:
        width = _wcwidth.wcwidth(cluster)
        return width if width > 0 else (0 if unicodedata.combining(cluster) else 1)
    # Multi-codepoint cluster
    if _ZWJ in cluster or _VS16 in cluster:
        return 2
    width = _wcwidth.wcswidth(cluster)
    if width < 0:
        # Fall back on the base character
        width = _wcwidth.wcwidth(cluster[0])
    return width if width > 0 else 1


def expand_tabs(text: str, tab_size: int = LayoutConstants.TAB_SIZE, start_column: int = 0) -> str:
    if "\t" not in text:
        return text
    column = start_column
    out: list[str] = []
    for cluster in graphemes(text):
        if cluster == "\t":
            spaces = tab_size - (column % tab_size)
            out.append(" " * spaces)
            column += spaces
        else:
            out.append(cluster)
            column += display_width_for(cluster)
    return "".join(out)


def cell_data_for(text: str) -> list[CellData]:
    """Return per-cluster cells for text (tabs expanded, ANSI not stripped).

    char_start/char_end index into the tab-expanded text; screen_x is
    relative to the start of the text.
    """
    expanded = expand_tabs(text or "")
    cells: list[CellData] = []
    char_index = 0
    screen_x = 0
    for cluster in graphemes(expanded):
        width = display_width_for(cluster)
        cells.append(CellData(
            cluster=cluster,
            char_start=char_index,
            char_end=char_index + len(cluster),
            display_width=width,
            screen_x=screen_x,
        ))
        char_index += len(cluster)
        screen_x += width
    return cells


def visible_length(text: str) -> int:
    """Display width of text after stripping escape sequences."""
    plain = strip_ansi(text)
    if not plain:
        return 0
    if plain.isascii() and plain.isprintable() and "\t" not in plain:
        return len(plain)
    return sum(cell.display_width for cell in cell_data_for(plain))


def _tokens(text: str):
    """Yield escape sequences and grapheme clusters in order."""
    pos = 0
    for match in _STRIP_RE.finditer(text):
        if match.start() > pos:
            yield from grapheme.graphemes(text[pos:match.start()])
        yield match.group(0)
        pos = match.end()
    if pos < len(text):
        yield from grapheme.graphemes(text[pos:])


def truncate_to(text: str, width: int, start_column: int = 0) -> str:
    """Clip text to at most width columns without splitting clusters.

    Escape sequences are kept. Tabs expand relative to start_column and
    newlines become single spaces.
    """
    if width <= 0 or not text:
        return ""
    if not ("\t" in text or "\n" in text or "\r" in text) and visible_length(text) <= width:
        return text

    out: list[str] = []
    used = 0
    column = start_column
    for token in _tokens(text):
        if token.startswith("\x1b"):
            out.append(token)
            continue
        remaining = width - used
        if remaining <= 0:
            break
        if token == "\t":
            spaces = LayoutConstants.TAB_SIZE - (column % LayoutConstants.TAB_SIZE)
            take = min(spaces, remaining)
            out.append(" " * take)
            used += take
            column += take
        elif token in ("\n", "\r", "\r\n"):
            out.append(" ")
            used += 1
            column += 1
        else:
            token_width = display_width_for(token)
            if token_width > remaining:
                break
            out.append(token)
            used += token_width
            column += token_width
    return "".join(out)


def pad_right(text: str, width: int, start_column: int = 0) -> str:
    if width <= 0:
        return ""
    clipped = truncate_to(text, width, start_column=start_column)
    return clipped + " " * max(0, width - visible_length(clipped))


def split_to_width(text: str, width: int) -> list[str]:
    """Break text into chunks of at most width columns at cluster boundaries."""
    if width <= 0:
        return [text] if text else []
    chunks: list[str] = []
    current: list[str] = []
    used = 0
    for cluster in graphemes(text):
        cw = display_width_for(cluster)
        if used and used + cw > width:
            chunks.append("".join(current))
            current = []
            used = 0
        current.append(cluster)
        used += cw
    if current:
        chunks.append("".join(current))
    return chunks

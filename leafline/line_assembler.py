"""Wrap semantic content blocks into fixed-width display lines."""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .blocks import (BlockType, ContentBlock, DisplayLine, ImagePlacement, ImageRef,
                     LineMetadata, StyleValue, TextSegment)
from .constants import LayoutConstants
from .content_parser import is_renderable_image
from .text_metrics import expand_tabs, split_to_width, truncate_to, visible_length

_TOKEN_RE = re.compile(r"\S+\s*")
_NEWLINE_RE = re.compile(r"\r?\n")


class RenderingMode(Enum):
    TEXT = "text"
    IMAGES = "images"


@dataclass
class Token:
    text: str = ""
    styles: dict[str, StyleValue] = field(default_factory=dict)
    newline: bool = False
    image: Optional[ImageRef] = None

    @property
    def width(self) -> int:
        return visible_length(self.text)

    @property
    def word_width(self) -> int:
        """Width without trailing whitespace."""
        return visible_length(self.text.rstrip())

    @property
    def is_whitespace(self) -> bool:
        return not self.newline and self.image is None and not self.text.strip()


class Tokenizer:
    """Split styled segments into wrap tokens.

    Words keep their trailing whitespace so inter-word spacing survives
    wrapping, and literal newlines become newline tokens.
    """

    def __init__(self, images_enabled: bool = False):
        self.images_enabled = images_enabled

    def tokenize(self, segments, extra_styles: Optional[dict] = None) -> list[Token]:
        tokens: list[Token] = []
        for segment in segments:
            styles = dict(segment.styles)
            if extra_styles:
                styles.update(extra_styles)
            src = styles.get("image_src")
            if src:
                if self.images_enabled and is_renderable_image(str(src)):
                    alt = str(styles.get("image_alt") or "")
                    tokens.append(Token(image=ImageRef(str(src), alt)))
                    continue
                styles = {k: v for k, v in styles.items() if k not in ("image_src", "image_alt")}
            tokens.extend(self._split(segment.text, styles))
        return tokens

    @staticmethod
    def _split(text: str, styles: dict) -> list[Token]:
        tokens: list[Token] = []
        parts = _NEWLINE_RE.split(text)
        for index, part in enumerate(parts):
            if index > 0:
                tokens.append(Token(newline=True))
            leading = len(part) - len(part.lstrip())
            if leading:
                # Whitespace at a segment boundary; dropped again at line start
                tokens.append(Token(part[:leading], dict(styles)))
            for match in _TOKEN_RE.finditer(part):
                tokens.append(Token(match.group(0), dict(styles)))
        return tokens


def _merge_segments(parts: list[tuple[str, dict]]) -> tuple[TextSegment, ...]:
    merged: list[list] = []
    for text, styles in parts:
        if not text:
            continue
        if merged and merged[-1][1] == styles:
            merged[-1][0] += text
        else:
            merged.append([text, styles])
    # Right-strip the line, dropping segments that end up empty
    while merged:
        stripped = merged[-1][0].rstrip()
        if stripped:
            merged[-1][0] = stripped
            break
        merged.pop()
    return tuple(TextSegment(text, styles) for text, styles in merged)


@dataclass
class LineState:
    """The line currently being filled by the wrapper."""
    prefix: list[tuple[str, dict]]
    parts: list[tuple[str, dict]] = field(default_factory=list)
    used: int = 0

    @property
    def has_content(self) -> bool:
        return any(text.strip() for text, _ in self.parts)

    def append(self, text: str, styles: dict) -> None:
        self.parts.append((text, styles))
        self.used += visible_length(text)


class ImageBuilder:
    """Produce placeholder rows reserving screen space for an image."""

    def __init__(self, chapter_index: Optional[int] = None, max_image_rows: Optional[int] = None):
        self.chapter_index = chapter_index
        self.max_image_rows = max_image_rows

    def rows_for(self, cols: int) -> int:
        rows = round(cols * LayoutConstants.IMAGE_ROWS_PER_COL)
        rows = max(LayoutConstants.MIN_IMAGE_ROWS, min(LayoutConstants.MAX_IMAGE_ROWS, rows))
        if self.max_image_rows is not None:
            rows = min(rows, max(1, self.max_image_rows))
        return rows

    def placement_id(self, image: ImageRef, position: int) -> int:
        key = f"{self.chapter_index}:{position}:{image.src}".encode("utf-8")
        value = int(hashlib.sha1(key).hexdigest()[:8], 16) & LayoutConstants.MAX_PLACEMENT_ID
        return value or 1

    def build(self, image: ImageRef, cols: int, position: int = 0,
              col_offset: int = 0, inline: bool = False) -> list[DisplayLine]:
        cols = max(1, cols)
        rows = self.rows_for(cols)
        placement = ImagePlacement(
            src=image.src,
            alt=image.alt,
            cols=cols,
            rows=rows,
            placement_id=self.placement_id(image, position),
            col_offset=col_offset,
            inline=inline,
        )
        first = DisplayLine(text="", segments=(), metadata=LineMetadata(
            block_type=BlockType.IMAGE, chapter_index=self.chapter_index, image=placement))
        return [first.with_image_row(row) for row in range(rows)]


class TextWrapper:
    """Greedy word wrap with first-line and continuation prefixes."""

    def __init__(self, width: int, images: Optional[ImageBuilder] = None):
        self.width = width
        self.images = images

    def wrap(self, tokens: list[Token], metadata: LineMetadata,
             first_prefix: Optional[list[tuple[str, dict]]] = None,
             continuation_prefix: Optional[list[tuple[str, dict]]] = None,
             position: int = 0) -> list[DisplayLine]:
        first_prefix = first_prefix or []
        continuation_prefix = continuation_prefix if continuation_prefix is not None else first_prefix
        lines: list[DisplayLine] = []
        state = self._new_state(first_prefix)

        def finalize(force: bool = False) -> None:
            nonlocal state
            if force or state.has_content:
                segments = _merge_segments(state.prefix + state.parts)
                text = "".join(segment.text for segment in segments)
                lines.append(DisplayLine(text=text, segments=segments, metadata=metadata))
            state = self._new_state(continuation_prefix)

        for token in tokens:
            available = self.width - state.used
            if token.newline:
                finalize(force=True)
                continue
            if token.image is not None:
                finalize()
                if self.images is not None:
                    lines.extend(self.images.build(token.image, self.width, position=position + len(lines),
                                                   inline=True))
                continue
            if token.is_whitespace:
                if state.parts and token.width <= available:
                    state.append(token.text, token.styles)
                continue
            if token.word_width <= available:
                state.append(token.text, token.styles)
                continue
            if state.has_content:
                finalize()
                available = self.width - state.used
                if token.word_width <= available:
                    state.append(token.text, token.styles)
                    continue
            # Single word wider than the line
            trailing = token.text[len(token.text.rstrip()):]
            chunks = split_to_width(token.text.rstrip(), max(1, available))
            for chunk in chunks[:-1]:
                state.append(chunk, token.styles)
                finalize()
            state.append(chunks[-1] + trailing, token.styles)
        finalize()
        return lines

    def _new_state(self, prefix: list[tuple[str, dict]]) -> LineState:
        state = LineState(prefix=list(prefix))
        state.used = sum(visible_length(text) for text, _ in prefix)
        return state


_QUOTE_STYLE = {"quote_prefix": True}


class LineAssembler:
    """Convert a chapter's ContentBlocks into DisplayLines at a fixed width.

    Headings and paragraphs wrap with no prefix, quotes carry a "│ " bar
    on every line, list items get an indented marker with a hanging
    continuation indent, and code/table blocks are emitted line for line
    without re-wrapping. One blank spacer line separates blocks, except
    between a block and a following list item; code, table and image
    blocks are always followed by a spacer.
    """

    def __init__(self, width: int, chapter_index: Optional[int] = None,
                 rendering_mode: RenderingMode = RenderingMode.TEXT,
                 max_image_rows: Optional[int] = None):
        self.width = max(int(width), LayoutConstants.MIN_WRAP_WIDTH)
        self.chapter_index = chapter_index
        self.rendering_mode = rendering_mode
        self.images_enabled = rendering_mode is RenderingMode.IMAGES
        self.image_builder = ImageBuilder(chapter_index, max_image_rows)
        self.tokenizer = Tokenizer(images_enabled=self.images_enabled)
        self.wrapper = TextWrapper(self.width, self.image_builder if self.images_enabled else None)

    def build(self, blocks: list[ContentBlock]) -> list[DisplayLine]:
        lines: list[DisplayLine] = []
        previous: Optional[ContentBlock] = None
        for block in blocks:
            block_lines = self.lines_for_block(block, position=len(lines))
            if not block_lines:
                continue
            if previous is not None and self._needs_spacer(previous, block):
                lines.append(self._spacer())
            lines.extend(block_lines)
            previous = block
        return lines

    @staticmethod
    def _needs_spacer(previous: ContentBlock, block: ContentBlock) -> bool:
        if previous.type.preformatted or previous.type is BlockType.IMAGE:
            return True
        return block.type is not BlockType.LIST_ITEM

    def _spacer(self) -> DisplayLine:
        return DisplayLine(text="", segments=(), metadata=LineMetadata(
            spacer=True, chapter_index=self.chapter_index))

    def _metadata(self, block: ContentBlock, **overrides) -> LineMetadata:
        values = dict(
            block_type=block.type,
            list_item=block.type is BlockType.LIST_ITEM,
            quoted=block.type is BlockType.QUOTE or block.metadata.quoted,
            chapter_index=self.chapter_index,
        )
        values.update(overrides)
        return LineMetadata(**values)

    def lines_for_block(self, block: ContentBlock, position: int = 0) -> list[DisplayLine]:
        if block.type.preformatted:
            return self._preformatted(block)
        if block.type is BlockType.SEPARATOR:
            rule = LayoutConstants.SEPARATOR_CHAR * min(self.width, LayoutConstants.SEPARATOR_MAX_WIDTH)
            return [DisplayLine(text=rule, segments=(TextSegment(rule, {"separator": True}),),
                                metadata=self._metadata(block))]
        if block.type is BlockType.BREAK:
            return [DisplayLine(text="", segments=(), metadata=self._metadata(block))]
        if block.type is BlockType.IMAGE:
            return self._image(block, position)
        if not block.text.strip():
            return []

        metadata = self._metadata(block)
        quote_prefix = [(LayoutConstants.QUOTE_PREFIX, _QUOTE_STYLE)] if metadata.quoted else []
        extra_styles = {"bold": True} if block.type is BlockType.HEADING else None
        tokens = self.tokenizer.tokenize(block.segments, extra_styles)

        if block.type is BlockType.LIST_ITEM:
            marker = block.metadata.marker or LayoutConstants.DEFAULT_LIST_MARKER
            used = visible_length(LayoutConstants.QUOTE_PREFIX) if quote_prefix else 0
            head = self._list_head(block.level, marker, used)
            first = quote_prefix + [(head, {})]
            continuation = quote_prefix + [(" " * visible_length(head), {})]
            return self.wrapper.wrap(tokens, metadata, first, continuation, position=position)
        return self.wrapper.wrap(tokens, metadata, quote_prefix, quote_prefix, position=position)

    def _list_head(self, level: int, marker: str, used: int) -> str:
        """Nesting indent plus marker, kept to half of the free columns."""
        limit = max((self.width - used) // 2, 1)
        head = f"{marker} "
        if visible_length(head) > limit:
            clipped = truncate_to(marker, limit - 1)
            return f"{clipped} " if clipped else ""
        indent = min(2 * max(level - 1, 0), limit - visible_length(head))
        return " " * indent + head

    def _preformatted(self, block: ContentBlock) -> list[DisplayLine]:
        rows = [expand_tabs(row).rstrip() for row in _NEWLINE_RE.split(block.text)]
        while rows and not rows[-1]:
            rows.pop()
        styles = {"code": True} if block.type is BlockType.CODE else {}
        metadata = self._metadata(block)
        return [
            DisplayLine(text=row, segments=(TextSegment(row, dict(styles)),) if row else (),
                        metadata=metadata)
            for row in rows
        ]

    def _image(self, block: ContentBlock, position: int) -> list[DisplayLine]:
        image = block.metadata.image
        if image is None:
            return []
        if self.images_enabled and is_renderable_image(image.src):
            return self.image_builder.build(image, self.width, position=position)
        # Text mode: a wrapped "[Image: alt]" placeholder
        label = f"[Image: {image.alt}]" if image.alt else "[Image]"
        tokens = self.tokenizer.tokenize([TextSegment(label, {"italic": True})])
        return self.wrapper.wrap(tokens, self._metadata(block, block_type=BlockType.PARAGRAPH),
                                 position=position)

"""Semantic content model: blocks, styled segments and wrapped display lines."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Union

StyleValue = Union[bool, str]


class BlockType(Enum):
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    LIST_ITEM = "list_item"
    QUOTE = "quote"
    CODE = "code"
    TABLE = "table"
    SEPARATOR = "separator"
    BREAK = "break"
    IMAGE = "image"

    @property
    def preformatted(self) -> bool:
        return self in (BlockType.CODE, BlockType.TABLE)


@dataclass(frozen=True)
class TextSegment:
    """Smallest styled run of text.

    styles maps a style name (bold, italic, underline, code, link, ...) to
    True or a value such as a link target.
    """
    text: str
    styles: dict[str, StyleValue] = field(default_factory=dict)


@dataclass(frozen=True)
class ImageRef:
    src: str
    alt: str = ""


@dataclass(frozen=True)
class BlockMetadata:
    marker: Optional[str] = None  # list marker, e.g. "•" or "3."
    quoted: bool = False  # block sits inside a blockquote
    preserve_whitespace: bool = False
    image: Optional[ImageRef] = None


@dataclass(frozen=True)
class ContentBlock:
    type: BlockType
    segments: tuple[TextSegment, ...] = ()
    level: int = 0
    metadata: BlockMetadata = field(default_factory=BlockMetadata)

    @property
    def text(self) -> str:
        return "".join(segment.text for segment in self.segments)


@dataclass(frozen=True)
class ImagePlacement:
    """Where an image placeholder sits and how big it is, in cells."""
    src: Optional[str]
    alt: Optional[str]
    cols: int
    rows: int
    placement_id: int
    col_offset: int = 0
    line_index: int = 0
    inline: bool = False

    @property
    def render_line(self) -> bool:
        """True on the first row, where the image itself gets drawn."""
        return self.line_index == 0


@dataclass(frozen=True)
class LineMetadata:
    block_type: Optional[BlockType] = None
    spacer: bool = False
    list_item: bool = False
    quoted: bool = False
    chapter_index: Optional[int] = None
    image: Optional[ImagePlacement] = None


@dataclass(frozen=True)
class DisplayLine:
    """One screen row of wrapped content."""
    text: str
    segments: tuple[TextSegment, ...] = ()
    metadata: LineMetadata = field(default_factory=LineMetadata)

    @property
    def is_image(self) -> bool:
        return self.metadata.image is not None

    def __str__(self) -> str:
        return self.text

    @classmethod
    def blank(cls) -> "DisplayLine":
        return cls(text="", segments=(), metadata=LineMetadata(spacer=True))

    @classmethod
    def plain(cls, text: str, chapter_index: Optional[int] = None) -> "DisplayLine":
        segments = (TextSegment(text),) if text else ()
        return cls(text=text, segments=segments,
                   metadata=LineMetadata(block_type=BlockType.PARAGRAPH, chapter_index=chapter_index))

    def with_image_row(self, index: int) -> "DisplayLine":
        if self.metadata.image is None:
            raise ValueError("with_image_row needs a line that carries an image")
        image = replace(self.metadata.image, line_index=index)
        return replace(self, metadata=replace(self.metadata, image=image))


Line = Union[DisplayLine, str]


def line_text(line: Line) -> str:
    """Plain text of a wrapped line, whether formatted or a raw string."""
    if isinstance(line, DisplayLine):
        return line.text
    return str(line)


def plain_lines_for(blocks: list[ContentBlock]) -> list[str]:
    """Build the unwrapped plain-text fallback lines for a chapter.

    One line per block (code/table blocks contribute one line per physical
    line), with blank lines between blocks the way the assembler spaces them.
    """
    lines: list[str] = []
    for index, block in enumerate(blocks):
        if block.type.preformatted:
            lines.extend(row.rstrip() for row in block.text.splitlines())
        elif block.type is BlockType.BREAK:
            lines.append("")
        elif block.type is BlockType.IMAGE:
            alt = block.metadata.image.alt if block.metadata.image else ""
            lines.append(f"[Image: {alt}]" if alt else "[Image]")
        else:
            text = " ".join(block.text.split())
            if block.type is BlockType.LIST_ITEM:
                text = f"{block.metadata.marker or '•'} {text}"
            if text:
                lines.append(text)
        if index < len(blocks) - 1 and blocks[index + 1].type is not BlockType.LIST_ITEM:
            lines.append("")
    return lines

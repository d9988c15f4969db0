"""Parse chapter XHTML into semantic content blocks."""

from __future__ import annotations

import logging
import re
import warnings
from dataclasses import dataclass, field
from typing import Optional

from bs4 import BeautifulSoup, NavigableString, Tag, XMLParsedAsHTMLWarning
from bs4.element import Comment, Declaration, Doctype, ProcessingInstruction

from .blocks import BlockMetadata, BlockType, ContentBlock, ImageRef, TextSegment, StyleValue
from .constants import LayoutConstants

logger = logging.getLogger(__name__)

INLINE_NEWLINE = "\n"

BLOCK_TAGS = {"p", "div", "section", "article", "aside", "header", "footer",
              "figure", "figcaption", "main", "body", "nav"}
HEADING_TAGS = {"h1", "h2", "h3", "h4", "h5", "h6"}
LIST_TAGS = {"ul", "ol"}
SKIP_TAGS = {"script", "style", "head", "title"}

_WHITESPACE_RE = re.compile(r"\s+")
_DISPLAY_BLOCK_RE = re.compile(r"display\s*:\s*(block|list-item)", re.I)
_IGNORED_STRINGS = (Comment, Declaration, Doctype, ProcessingInstruction)


class ContentParseError(ValueError):
    """Raised when markup has text but yields no usable blocks."""


@dataclass
class _ListContext:
    ordered: bool
    index: int = 1


@dataclass
class _Context:
    list_stack: list[_ListContext] = field(default_factory=list)
    in_quote: bool = False


def _soup_from_markup(markup: str) -> BeautifulSoup:
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)
        return BeautifulSoup(markup, "html.parser")


def _styles_for(tag: Tag) -> dict[str, StyleValue]:
    name = tag.name.lower()
    if name in ("strong", "b"):
        return {"bold": True}
    if name in ("em", "i", "cite"):
        return {"italic": True}
    if name == "u":
        return {"underline": True}
    if name in ("code", "kbd", "samp", "tt"):
        return {"code": True}
    styles: dict[str, StyleValue] = {}
    if name == "a" and tag.get("href"):
        styles["link"] = str(tag.get("href"))
    style_attr = str(tag.get("style") or "")
    if style_attr:
        if re.search(r"font-weight\s*:\s*(bold|[6-9]00)", style_attr, re.I):
            styles["bold"] = True
        if re.search(r"font-style\s*:\s*italic", style_attr, re.I):
            styles["italic"] = True
        if re.search(r"text-decoration\s*:\s*underline", style_attr, re.I):
            styles["underline"] = True
    return styles


def _image_ref(tag: Tag) -> Optional[ImageRef]:
    src = tag.get("src") or tag.get("xlink:href") or tag.get("href")
    if not src:
        return None
    return ImageRef(src=str(src), alt=str(tag.get("alt") or ""))


def _image_placeholder_text(image: ImageRef) -> str:
    return f"[Image: {image.alt}]" if image.alt else "[Image]"


def is_renderable_image(src: Optional[str]) -> bool:
    if not src:
        return False
    path = re.split(r"[?#]", src, maxsplit=1)[0].lower()
    return path.endswith(LayoutConstants.RENDERABLE_IMAGE_EXTENSIONS)


class ContentParser:
    """Turns one chapter's XHTML into a list of ContentBlocks.

    Block-level tags become paragraphs, headings, list items, quotes,
    code and table blocks; inline tags contribute style flags to the
    TextSegments inside them. A lone <img> (or an <svg><image>) at block
    level becomes an IMAGE block; inline images become segments carrying
    image_src/image_alt styles so the assembler can lay them out.
    """

    def __init__(self, markup: str):
        self.markup = markup or ""

    def parse(self) -> list[ContentBlock]:
        if not self.markup.strip():
            return []
        soup = _soup_from_markup(self.markup)
        for hidden in soup.find_all(list(SKIP_TAGS)):
            hidden.decompose()
        root = soup.find("body") or soup
        blocks: list[ContentBlock] = []
        self._traverse_children(root, blocks, _Context())
        compacted = [b for b in blocks if self._keep(b)]
        if not compacted and root.get_text().strip():
            raise ContentParseError("markup contained text but produced no blocks")
        return compacted

    @staticmethod
    def _keep(block: ContentBlock) -> bool:
        if block.type in (BlockType.SEPARATOR, BlockType.BREAK, BlockType.IMAGE):
            return True
        return bool(block.segments) and bool(block.text.strip())

    def _traverse_children(self, node: Tag, blocks: list[ContentBlock], context: _Context) -> None:
        pending: list[TextSegment] = []
        for child in node.children:
            if isinstance(child, _IGNORED_STRINGS):
                continue
            if isinstance(child, NavigableString):
                if str(child).strip():
                    pending.append(self._segment(str(child), {}))
                continue
            if not isinstance(child, Tag):
                continue
            if self._is_block(child):
                self._flush(pending, blocks, context)
                pending = []
                self._handle_block(child, blocks, context)
            else:
                pending.extend(self._collect_segments(child, {}))
        self._flush(pending, blocks, context)

    def _flush(self, segments: list[TextSegment], blocks: list[ContentBlock], context: _Context) -> None:
        block = self._paragraph(segments, context)
        if block:
            blocks.append(block)

    def _is_block(self, tag: Tag) -> bool:
        name = tag.name.lower()
        if name in SKIP_TAGS:
            return True
        if name in BLOCK_TAGS or name in HEADING_TAGS or name in LIST_TAGS:
            return True
        if name in ("li", "blockquote", "pre", "hr", "table", "img", "svg"):
            return True
        return bool(_DISPLAY_BLOCK_RE.search(str(tag.get("style") or "")))

    def _handle_block(self, tag: Tag, blocks: list[ContentBlock], context: _Context) -> None:
        name = tag.name.lower()
        if name in SKIP_TAGS:
            return
        if name in HEADING_TAGS:
            level = int(name[1])
            segments = self._strip_edges(self._collect_children(tag, {}))
            blocks.append(ContentBlock(BlockType.HEADING, tuple(segments), level=level,
                                       metadata=BlockMetadata(quoted=context.in_quote)))
        elif name == "blockquote":
            segments = self._strip_edges(self._collect_children(tag, {}, separate_blocks=True))
            if segments:
                blocks.append(ContentBlock(BlockType.QUOTE, tuple(segments),
                                           metadata=BlockMetadata(quoted=True)))
        elif name in LIST_TAGS:
            nested = _Context(context.list_stack + [_ListContext(ordered=name == "ol")], context.in_quote)
            for child in tag.find_all(recursive=False):
                if isinstance(child, Tag):
                    self._handle_block(child, blocks, nested)
        elif name == "li":
            blocks.extend(self._list_item_blocks(tag, context))
        elif name == "pre":
            text = tag.get_text()
            if text.strip():
                blocks.append(ContentBlock(
                    BlockType.CODE, (TextSegment(text, {"code": True}),),
                    metadata=BlockMetadata(quoted=context.in_quote, preserve_whitespace=True)))
        elif name == "hr":
            blocks.append(ContentBlock(BlockType.SEPARATOR, metadata=BlockMetadata(quoted=context.in_quote)))
        elif name == "table":
            block = self._table_block(tag, context)
            if block:
                blocks.append(block)
        elif name in ("img", "svg"):
            image = _image_ref(tag if name == "img" else (tag.find("image") or tag))
            if image:
                blocks.append(ContentBlock(
                    BlockType.IMAGE, (TextSegment(_image_placeholder_text(image)),),
                    metadata=BlockMetadata(quoted=context.in_quote, image=image)))
        elif self._has_block_children(tag):
            self._traverse_children(tag, blocks, context)
        else:
            self._flush(self._collect_children(tag, {}), blocks, context)

    def _has_block_children(self, tag: Tag) -> bool:
        return any(isinstance(child, Tag) and self._is_block(child) for child in tag.children)

    def _list_item_blocks(self, tag: Tag, context: _Context) -> list[ContentBlock]:
        list_context = context.list_stack[-1] if context.list_stack else None
        if list_context and list_context.ordered:
            marker = f"{list_context.index}."
            list_context.index += 1
        else:
            marker = LayoutConstants.DEFAULT_LIST_MARKER
        level = max(len(context.list_stack), 1)

        inline: list[TextSegment] = []
        nested_blocks: list[ContentBlock] = []
        for child in tag.children:
            if isinstance(child, Tag) and child.name.lower() in LIST_TAGS:
                self._handle_block(child, nested_blocks, context)
            elif isinstance(child, Tag):
                inline.extend(self._collect_segments(child, {}))
                if self._is_block(child):
                    inline.append(TextSegment(" "))
            elif isinstance(child, NavigableString) and not isinstance(child, _IGNORED_STRINGS):
                inline.append(self._segment(str(child), {}))
        segments = self._strip_edges(inline)
        item = ContentBlock(BlockType.LIST_ITEM, tuple(segments), level=level,
                            metadata=BlockMetadata(marker=marker, quoted=context.in_quote))
        return [item] + nested_blocks

    def _table_block(self, tag: Tag, context: _Context) -> Optional[ContentBlock]:
        rows = []
        for row in tag.find_all("tr"):
            cells = [" ".join(cell.get_text().split()) for cell in row.find_all(["td", "th"], recursive=False)]
            cells = [cell for cell in cells if cell]
            if cells:
                rows.append(" | ".join(cells))
        if not rows:
            return None
        return ContentBlock(BlockType.TABLE, (TextSegment(INLINE_NEWLINE.join(rows)),),
                            metadata=BlockMetadata(quoted=context.in_quote, preserve_whitespace=True))

    def _paragraph(self, segments: list[TextSegment], context: _Context) -> Optional[ContentBlock]:
        segments = self._strip_edges(segments)
        if not segments:
            return None
        return ContentBlock(BlockType.PARAGRAPH, tuple(segments),
                            metadata=BlockMetadata(quoted=context.in_quote))

    def _collect_children(self, tag: Tag, inherited: dict, separate_blocks: bool = False) -> list[TextSegment]:
        segments: list[TextSegment] = []
        for child in tag.children:
            if isinstance(child, _IGNORED_STRINGS):
                continue
            if isinstance(child, NavigableString):
                segments.append(self._segment(str(child), inherited))
            elif isinstance(child, Tag):
                if separate_blocks and self._is_block(child) and segments:
                    segments.append(TextSegment(INLINE_NEWLINE, {**inherited, "break": True}))
                segments.extend(self._collect_segments(child, inherited))
        return segments

    def _collect_segments(self, tag: Tag, inherited: dict) -> list[TextSegment]:
        name = tag.name.lower()
        if name in SKIP_TAGS:
            return []
        if name == "br":
            return [TextSegment(INLINE_NEWLINE, {**inherited, "break": True})]
        if name == "img":
            image = _image_ref(tag)
            if not image:
                return []
            styles = {**inherited, "image_src": image.src, "image_alt": image.alt}
            return [TextSegment(_image_placeholder_text(image) + " ", styles)]
        styles = {**inherited, **_styles_for(tag)}
        if styles.get("code") and name in ("code", "kbd", "samp", "tt"):
            return [TextSegment(tag.get_text(), styles)]
        return self._collect_children(tag, styles)

    @staticmethod
    def _segment(text: str, styles: dict) -> TextSegment:
        return TextSegment(_WHITESPACE_RE.sub(" ", text), dict(styles))

    @staticmethod
    def _strip_edges(segments: list[TextSegment]) -> list[TextSegment]:
        """Drop empty runs and trim whitespace at the block's outer edges."""
        result = [s for s in segments if s.text and (s.text.strip() or s.text == " " or s.text == INLINE_NEWLINE)]
        while result and not result[0].text.strip():
            result.pop(0)
        while result and not result[-1].text.strip():
            result.pop()
        if not result:
            return []
        first, last = result[0], result[-1]
        result[0] = TextSegment(first.text.lstrip(), first.styles)
        last = result[-1]
        result[-1] = TextSegment(last.text.rstrip(), last.styles)
        return [s for s in result if s.text]


def parse_chapter(markup: str) -> list[ContentBlock]:
    return ContentParser(markup).parse()

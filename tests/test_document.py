"""Tests for the in-memory document model and plain-line fallback."""

import os

from leafline.blocks import BlockMetadata, BlockType, ContentBlock, DisplayLine, TextSegment, line_text, plain_lines_for
from leafline.document import Chapter, Document


def test_from_file_xhtml(tmp_path):
    path = tmp_path / "one.xhtml"
    path.write_text("<p>x</p>", encoding="utf-8")
    document = Document.from_file(str(path))
    assert document.canonical_path == os.path.abspath(str(path))
    assert document.chapter_count == 1
    assert document.get_chapter(0).raw_content == "<p>x</p>"
    assert document.get_chapter(0).title == "one"


def test_from_file_text(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("a\nb\n", encoding="utf-8")
    chapter = Document.from_file(str(path)).get_chapter(0)
    assert chapter.raw_content is None
    assert chapter.lines == ["a", "b"]


def test_get_chapter_out_of_range():
    document = Document("/x", [Chapter()])
    assert document.get_chapter(1) is None
    assert document.get_chapter(-1) is None


def test_plain_lines_for():
    blocks = [
        ContentBlock(BlockType.HEADING, (TextSegment("Title"),), level=1),
        ContentBlock(BlockType.LIST_ITEM, (TextSegment("one"),), metadata=BlockMetadata(marker="1.")),
        ContentBlock(BlockType.CODE, (TextSegment("x = 1  \ny = 2"),)),
    ]
    assert plain_lines_for(blocks) == ["Title", "1. one", "", "x = 1", "y = 2"]


def test_line_text():
    assert line_text("raw") == "raw"
    assert line_text(DisplayLine.plain("formatted", chapter_index=2)) == "formatted"
    assert str(DisplayLine.blank()) == ""

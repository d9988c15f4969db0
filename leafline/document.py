"""Minimal in-memory document and chapter types.

EPUB loading lives outside leafline; anything with the same attributes
can be handed to the formatting service and page calculator.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional, Protocol

from .blocks import ContentBlock


class ChapterLike(Protocol):
    raw_content: Optional[str]
    lines: list
    blocks: Optional[list[ContentBlock]]


class DocumentLike(Protocol):
    canonical_path: str

    @property
    def chapter_count(self) -> int: ...

    def get_chapter(self, index: int) -> Optional[ChapterLike]: ...


@dataclass(eq=False)
class Chapter:
    title: str = ""
    raw_content: Optional[str] = None
    lines: list = field(default_factory=list)
    blocks: Optional[list[ContentBlock]] = None

    @classmethod
    def from_text(cls, text: str, title: str = "") -> "Chapter":
        """Plain-text chapter: one raw line per source line."""
        return cls(title=title, raw_content=None, lines=text.splitlines())


class Document:
    def __init__(self, canonical_path: str, chapters: Optional[list[Chapter]] = None):
        self.canonical_path = canonical_path
        self.chapters: list[Chapter] = list(chapters or [])

    @property
    def chapter_count(self) -> int:
        return len(self.chapters)

    def get_chapter(self, index: int) -> Optional[Chapter]:
        if 0 <= index < len(self.chapters):
            return self.chapters[index]
        return None

    @classmethod
    def from_file(cls, path: str) -> "Document":
        """Load a single-chapter document from an .xhtml/.html or .txt file."""
        abs_path = os.path.abspath(path)
        with open(abs_path, "r", encoding="utf-8") as f:
            content = f.read()
        title = os.path.splitext(os.path.basename(abs_path))[0]
        if abs_path.lower().endswith((".xhtml", ".html", ".htm")):
            chapter = Chapter(title=title, raw_content=content)
        else:
            chapter = Chapter.from_text(content, title=title)
        return cls(abs_path, [chapter])

"""Screen layout: column widths, content height and lines per page."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .constants import (DEFAULT_LINE_SPACING, DEFAULT_PAGE_NUMBERING_MODE, DEFAULT_VIEW_MODE,
                        LINE_SPACINGS, PAGE_NUMBERING_MODES, VIEW_MODES, LayoutConstants)
from .line_assembler import RenderingMode

logger = logging.getLogger(__name__)


def _choice(settings: Mapping[str, Any], name: str, allowed: tuple, default: str) -> str:
    value = settings.get(name, default)
    if value not in allowed:
        logger.warning(f"Ignoring invalid {name} {value!r}; using {default!r}")
        return default
    return value


@dataclass(frozen=True)
class LayoutConfig:
    view_mode: str = DEFAULT_VIEW_MODE
    line_spacing: str = DEFAULT_LINE_SPACING
    page_numbering_mode: str = DEFAULT_PAGE_NUMBERING_MODE
    image_rendering: bool = False

    def __post_init__(self):
        if self.view_mode not in VIEW_MODES:
            raise ValueError(f"view_mode must be one of {VIEW_MODES}, got {self.view_mode!r}")
        if self.line_spacing not in LINE_SPACINGS:
            raise ValueError(f"line_spacing must be one of {LINE_SPACINGS}, got {self.line_spacing!r}")
        if self.page_numbering_mode not in PAGE_NUMBERING_MODES:
            raise ValueError(
                f"page_numbering_mode must be one of {PAGE_NUMBERING_MODES}, got {self.page_numbering_mode!r}")

    @classmethod
    def from_settings(cls, settings: Optional[Mapping[str, Any]]) -> "LayoutConfig":
        """Build a config from a settings dict, falling back to defaults for bad values."""
        settings = settings or {}
        return cls(
            view_mode=_choice(settings, "view_mode", VIEW_MODES, DEFAULT_VIEW_MODE),
            line_spacing=_choice(settings, "line_spacing", LINE_SPACINGS, DEFAULT_LINE_SPACING),
            page_numbering_mode=_choice(settings, "page_numbering_mode", PAGE_NUMBERING_MODES,
                                        DEFAULT_PAGE_NUMBERING_MODE),
            image_rendering=bool(settings.get("image_rendering", False)),
        )

    @property
    def dynamic(self) -> bool:
        return self.page_numbering_mode == "dynamic"

    @property
    def rendering_mode(self) -> RenderingMode:
        return RenderingMode.IMAGES if self.image_rendering else RenderingMode.TEXT


@dataclass(frozen=True)
class Layout:
    column_width: int
    content_height: int
    lines_per_page: int

    @property
    def max_image_rows(self) -> int:
        return self.lines_per_page


def _check_geometry(width: int, height: int) -> None:
    if width <= 0 or height <= 0:
        raise ValueError(f"Display geometry must be positive, got {width}x{height}")


class LayoutMetrics:
    """Derive content geometry from terminal size and layout config."""

    @staticmethod
    def column_width(width: int, view_mode: str) -> int:
        if view_mode == "split":
            usable = max(width - LayoutConstants.SPLIT_LEFT_MARGIN - LayoutConstants.SPLIT_RIGHT_MARGIN,
                         LayoutConstants.SPLIT_MIN_USABLE_WIDTH)
            return max((usable - LayoutConstants.SPLIT_COLUMN_GAP) // 2, LayoutConstants.MIN_COLUMN_WIDTH)
        target = int(width * LayoutConstants.SINGLE_VIEW_WIDTH_PERCENT)
        return max(LayoutConstants.SINGLE_VIEW_MIN_WIDTH, min(LayoutConstants.SINGLE_VIEW_MAX_WIDTH, target))

    @staticmethod
    def content_height(height: int) -> int:
        return max(height - LayoutConstants.CONTENT_TOP_PADDING - LayoutConstants.CONTENT_BOTTOM_PADDING, 1)

    @classmethod
    def lines_per_page(cls, height: int, line_spacing: str) -> int:
        content = cls.content_height(height)
        if line_spacing == "relaxed":
            # Every line is followed by a blank row
            return max((content + 1) // 2, 1)
        multiplier = LayoutConstants.LINE_SPACING_MULTIPLIERS.get(line_spacing, 1.0)
        return max(int(content * multiplier), 1)

    @classmethod
    def layout(cls, width: int, height: int, config: LayoutConfig) -> Layout:
        _check_geometry(width, height)
        return Layout(
            column_width=cls.column_width(width, config.view_mode),
            content_height=cls.content_height(height),
            lines_per_page=cls.lines_per_page(height, config.line_spacing),
        )

"""leafline - pagination, rendering and selection core for a terminal e-book reader."""

from .blocks import BlockType, ContentBlock, DisplayLine, TextSegment
from .content_parser import ContentParseError, ContentParser
from .document import Chapter, Document
from .formatting import FormattingService
from .geometry import GeometryBuilder, LineCell, LineGeometry, RenderedLinesBuffer
from .layout import LayoutConfig, LayoutMetrics
from .line_assembler import LineAssembler, RenderingMode
from .page_calculator import PageCalculator, PendingPosition
from .page_map import AbsolutePageMapBuilder, DynamicPageMapBuilder, PageRecord
from .pagination_cache import PaginationCache
from .selection import CoordinateService, SelectionAnchor, SelectionRange, SelectionService
from .wrapping import WrappingService

__all__ = [
    'AbsolutePageMapBuilder',
    'BlockType',
    'Chapter',
    'ContentBlock',
    'ContentParseError',
    'ContentParser',
    'CoordinateService',
    'DisplayLine',
    'Document',
    'DynamicPageMapBuilder',
    'FormattingService',
    'GeometryBuilder',
    'LayoutConfig',
    'LayoutMetrics',
    'LineAssembler',
    'LineCell',
    'LineGeometry',
    'PageCalculator',
    'PageRecord',
    'PaginationCache',
    'PendingPosition',
    'RenderedLinesBuffer',
    'RenderingMode',
    'SelectionAnchor',
    'SelectionRange',
    'SelectionService',
    'TextSegment',
    'WrappingService',
]

"""Constants and configuration for the leafline reader core."""

class LayoutConstants:
    """Central configuration constants for layout and pagination."""

    # Wrapping
    MIN_WRAP_WIDTH = 10  # Narrower widths are clamped up to this
    SEPARATOR_MAX_WIDTH = 40  # Horizontal rule never wider than this
    QUOTE_PREFIX = "│ "
    DEFAULT_LIST_MARKER = "•"
    SEPARATOR_CHAR = "─"
    TAB_SIZE = 4

    # Image placeholders
    RENDERABLE_IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg")
    IMAGE_ROWS_PER_COL = 0.5
    MIN_IMAGE_ROWS = 4
    MAX_IMAGE_ROWS = 18
    MAX_PLACEMENT_ID = 4_294_967_295

    # Screen layout
    SPLIT_LEFT_MARGIN = 2
    SPLIT_RIGHT_MARGIN = 2
    SPLIT_COLUMN_GAP = 4
    SPLIT_MIN_USABLE_WIDTH = 40
    MIN_COLUMN_WIDTH = 20
    SINGLE_VIEW_WIDTH_PERCENT = 0.9
    SINGLE_VIEW_MIN_WIDTH = 30
    SINGLE_VIEW_MAX_WIDTH = 120
    CONTENT_TOP_PADDING = 2
    CONTENT_BOTTOM_PADDING = 1

    # Line spacing
    LINE_SPACING_MULTIPLIERS = {
        "compact": 1.0,
        "normal": 0.75,
        "relaxed": 0.5,
    }

    # Background prefetch
    PREFETCH_PAGES = 20  # Pages to pre-wrap before/after the visible window
    PREFETCH_WORKERS = 1

    # Wrap caches
    WRAP_CACHE_WIDTHS = 2  # Widths kept per chapter; split and single view together
    WINDOW_CACHE_SIZE = 256

    # Transient messages
    MESSAGE_DURATION = 2.0  # Seconds a status message stays visible

    # Pagination cache
    CACHE_SCHEMA_VERSION = 1
    CACHE_FILE_SUFFIX = ".pages.json"


VIEW_MODES = ("split", "single")
LINE_SPACINGS = ("compact", "normal", "relaxed")
PAGE_NUMBERING_MODES = ("absolute", "dynamic")

DEFAULT_VIEW_MODE = "split"
DEFAULT_LINE_SPACING = "compact"
DEFAULT_PAGE_NUMBERING_MODE = "dynamic"

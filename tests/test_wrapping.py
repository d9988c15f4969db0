"""Tests for plain-text wrapping and its caches."""

from concurrent.futures import ThreadPoolExecutor

from leafline.constants import LayoutConstants
from leafline.wrapping import WrappingService, wrap_plain_line


SAMPLE = ["The quick brown fox jumps over the lazy dog", "", "  indented line here"]


def test_wrap_plain_line_preserves_indent():
    assert wrap_plain_line("    x y", 20) == ["    x y"]
    assert wrap_plain_line("", 20) == [""]
    assert wrap_plain_line("   \t ", 20) == [""]


def test_wrap_plain_line_expands_tabs():
    assert wrap_plain_line("a\tb", 20) == ["a   b"]


def test_wrap_lines():
    service = WrappingService()
    assert service.wrap_lines(SAMPLE, 0, 20) == [
        "The quick brown fox",
        "jumps over the lazy",
        "dog",
        "",
        "  indented line here",
    ]


def test_narrow_width_gives_nothing():
    assert WrappingService().wrap_lines(SAMPLE, 0, 9) == []
    assert WrappingService().wrap_window(SAMPLE, 0, 5, 0, 3) == []


def test_wrap_cache_is_reused_for_the_same_lines():
    service = WrappingService()
    first = service.wrap_lines(SAMPLE, 0, 20)
    assert service.wrap_lines(SAMPLE, 0, 20) is first


def test_replaced_lines_are_rewrapped():
    service = WrappingService()
    service.wrap_lines(SAMPLE, 0, 20)
    replacement = ["something else entirely"]
    assert service.wrap_lines(replacement, 0, 20) == ["something else", "entirely"]


def test_wrap_window():
    service = WrappingService()
    assert service.wrap_window(SAMPLE, 0, 20, 1, 2) == ["jumps over the lazy", "dog"]
    assert service.wrap_window(SAMPLE, 0, 20, 4, 10) == ["  indented line here"]
    assert service.wrap_window(SAMPLE, 0, 20, -3, 1) == ["The quick brown fox"]
    assert service.wrap_window(SAMPLE, 0, 20, 0, 0) == []


def test_prefetch_warms_neighbouring_windows():
    lines = [f"line {n}" for n in range(100)]
    executor = ThreadPoolExecutor(max_workers=1)
    service = WrappingService(prefetch_pages=2, executor=executor)
    try:
        future = service.prefetch_windows(lines, 3, 40, 0, 10)
        future.result(timeout=5)
        cached = {key for key in service._window_cache}
        assert (3, 40, 10, 10) in cached
        assert (3, 40, 20, 10) in cached
        assert (3, 40, 30, 10) not in cached
    finally:
        service.shutdown()


def test_prefetch_disabled():
    service = WrappingService(prefetch_pages=0)
    assert service.prefetch_windows(SAMPLE, 0, 20, 0, 2) is None


def test_clear_cache():
    service = WrappingService()
    first = service.wrap_lines(SAMPLE, 0, 20)
    service.clear_cache()
    second = service.wrap_lines(SAMPLE, 0, 20)
    assert second == first
    assert second is not first


def test_alternating_widths_keep_cache_bounded():
    service = WrappingService()
    for width in (20, 30, 40, 20, 30, 40):
        service.wrap_lines(SAMPLE, 0, width)
        service.wrap_window(SAMPLE, 0, width, 0, 2)
    assert set(service._chapter_cache) == {(0, 30), (0, 40)}
    assert {key[1] for key in service._window_cache} == {30, 40}


def test_window_cache_drops_least_recently_used():
    lines = [f"line {n}" for n in range(LayoutConstants.WINDOW_CACHE_SIZE + 10)]
    service = WrappingService()
    for offset in range(LayoutConstants.WINDOW_CACHE_SIZE + 10):
        service.wrap_window(lines, 0, 40, offset, 1)
    assert len(service._window_cache) == LayoutConstants.WINDOW_CACHE_SIZE
    assert (0, 40, 0, 1) not in service._window_cache
    assert service.wrap_window(lines, 0, 40, 0, 1) == ["line 0"]


def test_clear_cache_for_width():
    service = WrappingService()
    service.wrap_lines(SAMPLE, 0, 20)
    service.wrap_lines(SAMPLE, 0, 30)
    service.clear_cache_for_width(20)
    assert set(service._chapter_cache) == {(0, 30)}

"""Tests for page drawing, line composition and transient messages."""

import unittest

from leafline.blocks import DisplayLine, ImagePlacement, LineMetadata, TextSegment
from leafline.layout import LayoutConfig
from leafline.renderer import (LineComposer, MessageSlot, PageRenderer, PageView, column_bounds,
                               header_bounds, status_bounds)
from leafline.terminal import Rect


class FakeTerm:
    normal = "</>"
    bold = "<b>"
    italic = "<i>"
    underline = "<u>"
    reverse = "<r>"
    dim = "<d>"


class RecordingSurface:
    def __init__(self, fail_on_call=None):
        self.writes = []
        self.fail_on_call = fail_on_call

    def write(self, bounds, row, col, text):
        if self.fail_on_call is not None and len(self.writes) == self.fail_on_call:
            raise OSError("terminal went away")
        self.writes.append((bounds, row, col, text))


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def image_line(index):
    placement = ImagePlacement(src="a.png", alt="", cols=10, rows=2, placement_id=1, line_index=index)
    return DisplayLine(text="", metadata=LineMetadata(image=placement))


class TestLineComposer(unittest.TestCase):
    def setUp(self):
        self.composer = LineComposer(FakeTerm())

    def test_styled_runs(self):
        line = DisplayLine(text="Hi you", segments=(TextSegment("Hi "), TextSegment("you", {"bold": True})))
        self.assertEqual(self.composer.compose(line, 8), "Hi </><b>you</>  ")

    def test_selection_is_reversed(self):
        self.assertEqual(self.composer.compose("abcd", 4, selection=(1, 3)), "a</><r>bc</>d")

    def test_link_and_code(self):
        line = DisplayLine(text="ab", segments=(TextSegment("a", {"link": "x"}), TextSegment("b", {"code": True})))
        self.assertEqual(self.composer.compose(line, 2), "</><u>a</></><r>b</>")

    def test_long_line_is_clipped(self):
        self.assertEqual(self.composer.compose("abcdefgh", 5), "abcde")
        self.assertEqual(self.composer.compose("日本語", 5), "日本 ")


class TestMessageSlot(unittest.TestCase):
    def test_message_expires(self):
        clock = FakeClock()
        messages = MessageSlot(duration=2.0, clock=clock)
        messages.show("Saved")
        self.assertEqual(messages.current(), "Saved")
        clock.now += 1.9
        self.assertFalse(messages.poll())
        clock.now += 0.2
        self.assertTrue(messages.poll())
        self.assertIsNone(messages.current())

    def test_show_replaces_and_clear_removes(self):
        messages = MessageSlot(clock=FakeClock())
        messages.show("one")
        messages.show("two")
        self.assertEqual(messages.current(), "two")
        messages.clear()
        self.assertIsNone(messages.current())
        self.assertFalse(messages.poll())


class TestBounds(unittest.TestCase):
    def test_split_columns(self):
        self.assertEqual(column_bounds(100, 24, LayoutConfig(view_mode="split")),
                         [Rect(2, 2, 46, 21), Rect(52, 2, 46, 21)])

    def test_single_column_is_centred(self):
        self.assertEqual(column_bounds(80, 24, LayoutConfig(view_mode="single")), [Rect(4, 2, 72, 21)])

    def test_status_and_header(self):
        self.assertEqual(status_bounds(80, 24), Rect(0, 23, 80, 1))
        self.assertEqual(header_bounds(80), Rect(0, 0, 80, 1))


class TestPageRenderer(unittest.TestCase):
    def setUp(self):
        self.surface = RecordingSurface()
        self.bounds = Rect(2, 2, 20, 5)

    def renderer(self, **kwargs):
        return PageRenderer(self.surface, LineComposer(FakeTerm()), **kwargs)

    def test_geometry_is_recorded_per_row(self):
        renderer = self.renderer()
        renderer.render_page(self.bounds, PageView(0, ["first", "second"], start_line=30))
        geometry = renderer.buffer.snapshot()
        self.assertEqual(sorted(geometry), [(0, 0, 2, 2), (0, 0, 3, 2)])
        self.assertEqual(geometry[(0, 0, 3, 2)].plain_text, "second")
        self.assertEqual(geometry[(0, 0, 3, 2)].line_offset, 31)

    def test_unused_rows_are_blanked(self):
        self.renderer().render_page(self.bounds, PageView(0, ["only"]))
        rows = [row for bounds, row, col, text in self.surface.writes]
        self.assertEqual(sorted(rows), [0, 1, 2, 3, 4])
        self.assertTrue(all(len(text) == 20 for _, _, _, text in self.surface.writes))

    def test_relaxed_spacing_skips_rows(self):
        renderer = self.renderer(line_spacing="relaxed")
        renderer.render_page(self.bounds, PageView(0, ["a", "b", "c", "d"]))
        self.assertEqual(sorted(key[2] for key in renderer.buffer.snapshot()), [2, 4, 6])

    def test_image_rows_have_no_width(self):
        renderer = self.renderer()
        renderer.render_page(self.bounds, PageView(0, ["text", image_line(0), image_line(1)]))
        geometry = renderer.buffer.snapshot()
        self.assertEqual(geometry[(0, 0, 3, 2)].display_width, 0)
        self.assertEqual(geometry[(0, 0, 2, 2)].display_width, 4)

    def test_spread_draws_both_columns(self):
        renderer = self.renderer()
        left, right = column_bounds(100, 24, LayoutConfig(view_mode="split"))
        renderer.render_spread(left, right, PageView(6, ["left"]), PageView(7, ["right"]))
        keys = sorted(renderer.buffer.snapshot())
        self.assertEqual(keys, [(6, 0, 2, 2), (7, 1, 2, 52)])

    def test_missing_right_page_is_blank(self):
        renderer = self.renderer()
        left, right = column_bounds(100, 24, LayoutConfig(view_mode="split"))
        renderer.render_spread(left, right, PageView(6, ["left"]), None)
        self.assertEqual(list(renderer.buffer.snapshot()), [(6, 0, 2, 2)])
        self.assertTrue(any(bounds == right for bounds, _, _, _ in self.surface.writes))

    def test_message_replaces_status(self):
        messages = MessageSlot(clock=FakeClock())
        renderer = self.renderer(messages=messages)
        status_rect = Rect(0, 23, 30, 1)
        renderer.render_page(self.bounds, PageView(0, []), status="Page 1 of 3", status_rect=status_rect)
        self.assertEqual(self.surface.writes[-1][3].rstrip(), "Page 1 of 3")
        messages.show("Last page")
        renderer.render_page(self.bounds, PageView(0, []), status="Page 1 of 3", status_rect=status_rect)
        self.assertEqual(self.surface.writes[-1][3].rstrip(), "Last page")

    def test_selection_is_drawn(self):
        renderer = self.renderer()
        renderer.render_page(self.bounds, PageView(0, ["abcd"]), selection={(0, 0, 2, 2): (1, 3)})
        self.assertTrue(self.surface.writes[0][3].startswith("a</><r>bc</>d"))

    def test_failed_frame_keeps_previous_geometry(self):
        renderer = self.renderer()
        renderer.render_page(self.bounds, PageView(0, ["first"]))
        self.surface.fail_on_call = len(self.surface.writes) + 1
        with self.assertRaises(OSError):
            renderer.render_page(self.bounds, PageView(1, ["one", "two"]))
        self.assertEqual(list(renderer.buffer.snapshot()), [(0, 0, 2, 2)])

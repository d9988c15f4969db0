"""Tests for the fullscreen session handle and the blessed surface."""

import io
import unittest
from unittest import mock

from leafline.terminal import BlessedSurface, Rect, TerminalSession


def fake_terminal():
    term = mock.Mock()
    term.enter_fullscreen = "[enter]"
    term.exit_fullscreen = "[exit]"
    term.hide_cursor = "[hide]"
    term.normal_cursor = "[show]"
    term.clear = "[clear]"
    term.home = "[home]"
    term.normal = "[n]"
    term.width = 80
    term.height = 24
    term.move_yx.side_effect = lambda y, x: f"[{y},{x}]"
    return term


class TestTerminalSession(unittest.TestCase):
    def test_nested_acquire_enters_once(self):
        stream = io.StringIO()
        session = TerminalSession(fake_terminal(), stream)
        with session:
            with session:
                self.assertEqual(session.depth, 2)
            self.assertTrue(session.is_fullscreen)
            self.assertEqual(stream.getvalue(), "[enter][hide][clear]")
        self.assertFalse(session.is_fullscreen)
        self.assertEqual(stream.getvalue(), "[enter][hide][clear][n][exit][show]")

    def test_release_without_acquire_is_harmless(self):
        stream = io.StringIO()
        session = TerminalSession(fake_terminal(), stream)
        session.release()
        self.assertEqual(session.depth, 0)
        self.assertEqual(stream.getvalue(), "")

    def test_released_on_error(self):
        stream = io.StringIO()
        session = TerminalSession(fake_terminal(), stream)
        with self.assertRaises(KeyError):
            with session:
                raise KeyError("boom")
        self.assertEqual(session.depth, 0)
        self.assertTrue(stream.getvalue().endswith("[exit][show]"))

    def test_size(self):
        session = TerminalSession(fake_terminal(), io.StringIO())
        self.assertEqual((session.width, session.height), (80, 24))


class TestBlessedSurface(unittest.TestCase):
    def setUp(self):
        self.stream = io.StringIO()
        self.surface = BlessedSurface(fake_terminal(), self.stream)
        self.bounds = Rect(4, 2, 6, 3)

    def test_write_is_relative_to_bounds(self):
        self.surface.write(self.bounds, 1, 2, "ab")
        self.assertEqual(self.stream.getvalue(), "[3,6]ab[n]")

    def test_write_is_clipped(self):
        self.surface.write(self.bounds, 0, 2, "abcdefgh")
        self.assertEqual(self.stream.getvalue(), "[2,6]abcd[n]")

    def test_write_outside_bounds_is_dropped(self):
        self.surface.write(self.bounds, 3, 0, "x")
        self.surface.write(self.bounds, 0, 6, "x")
        self.surface.write(self.bounds, -1, 0, "x")
        self.assertEqual(self.stream.getvalue(), "")

    def test_clear(self):
        self.surface.clear()
        self.assertEqual(self.stream.getvalue(), "[home][clear]")

"""Tests for grapheme-aware width measurement and truncation."""

from leafline.text_metrics import (cell_data_for, display_width_for, expand_tabs, graphemes,
                                   pad_right, split_to_width, strip_ansi, truncate_to, visible_length)


def test_visible_length_ignores_escape_sequences():
    assert visible_length("abc") == 3
    assert visible_length("\x1b[1mab\x1b[0m") == 2
    assert visible_length("\x1b]8;;http://x\x07link\x1b]8;;\x07") == 4


def test_wide_characters_take_two_columns():
    assert visible_length("日本") == 4
    assert display_width_for("日") == 2


def test_combining_mark_stays_in_one_cluster():
    assert graphemes("e\u0301x") == ["e\u0301", "x"]
    assert visible_length("e\u0301x") == 2


def test_soft_hyphen_is_invisible():
    assert display_width_for("\u00ad") == 0


def test_cell_data_positions():
    cells = cell_data_for("a日b")
    assert [c.cluster for c in cells] == ["a", "日", "b"]
    assert [c.screen_x for c in cells] == [0, 1, 3]
    assert [c.char_start for c in cells] == [0, 1, 2]
    for left, right in zip(cells, cells[1:]):
        assert left.char_end == right.char_start
        assert left.screen_x + left.display_width == right.screen_x


def test_expand_tabs_uses_tab_stops():
    assert expand_tabs("a\tb") == "a   b"
    assert expand_tabs("\tx") == "    x"
    assert expand_tabs("ab\tc", start_column=1) == "ab c"


def test_truncate_never_splits_wide_cluster():
    assert truncate_to("日本語", 5) == "日本"
    assert truncate_to("hello", 10) == "hello"
    assert truncate_to("hello", 0) == ""


def test_truncate_keeps_escapes():
    result = truncate_to("\x1b[1mabcdef\x1b[0m", 3)
    assert result.startswith("\x1b[1mabc")
    assert strip_ansi(result) == "abc"


def test_truncate_replaces_newlines():
    assert truncate_to("a\nb", 5) == "a b"


def test_pad_right():
    assert pad_right("ab", 5) == "ab   "
    assert pad_right("abcdef", 3) == "abc"


def test_split_to_width():
    assert split_to_width("abcdefghij", 4) == ["abcd", "efgh", "ij"]
    assert split_to_width("日本語", 4) == ["日本", "語"]

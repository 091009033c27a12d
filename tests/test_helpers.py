"""Tests for utility helpers."""

from datetime import datetime, timedelta, timezone

import pytest

from tubefetch.utils.helpers import (
    get_text,
    int_or_none,
    parse_date,
    parse_duration,
    str_or_none,
    traverse_obj,
)


class TestTraverseObj:
    def test_simple_key(self):
        assert traverse_obj({"a": 1}, "a") == 1

    def test_nested_tuple_path(self):
        data = {"a": {"b": {"c": 42}}}
        assert traverse_obj(data, ("a", "b", "c")) == 42

    def test_missing_key_returns_default(self):
        assert traverse_obj({"a": 1}, "b", default="nope") == "nope"

    def test_list_index(self):
        data = {"items": [10, 20, 30]}
        assert traverse_obj(data, ("items", 1)) == 20

    def test_index_out_of_range(self):
        assert traverse_obj({"items": []}, ("items", 0)) is None

    def test_none_input(self):
        assert traverse_obj(None, "a", default="d") == "d"

    def test_multiple_paths_first_wins(self):
        data = {"x": None, "y": 99}
        assert traverse_obj(data, ("x",), ("y",)) == 99


class TestIntOrNone:
    @pytest.mark.parametrize(
        ("val", "expected"),
        [
            (42, 42),
            ("100", 100),
            ("3.9", None),  # int() cannot parse decimal strings
            (None, None),
            ("abc", None),
            ("", None),
        ],
    )
    def test_values(self, val, expected):
        assert int_or_none(val) == expected

    def test_scale(self):
        assert int_or_none("1392000", scale=1000) == 1392


class TestStrOrNone:
    def test_string(self):
        assert str_or_none("hello") == "hello"

    def test_empty_string(self):
        assert str_or_none("") is None

    def test_whitespace(self):
        assert str_or_none("   ") is None

    def test_number(self):
        assert str_or_none(18) == "18"


class TestGetText:
    def test_simple_text(self):
        assert get_text({"simpleText": "Test Playlist"}) == "Test Playlist"

    def test_runs(self):
        assert get_text({"runs": [{"text": "Michael "}, {"text": "Jackson"}]}) == "Michael Jackson"

    def test_plain_string(self):
        assert get_text("GoogleVoice") == "GoogleVoice"

    @pytest.mark.parametrize("node", [None, {}, 42, {"runs": None}])
    def test_missing(self, node):
        assert get_text(node) is None


class TestParseDuration:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (1392, timedelta(seconds=1392)),
            ("1392", timedelta(seconds=1392)),
            ("4:20", timedelta(minutes=4, seconds=20)),
            ("1:02:03", timedelta(hours=1, minutes=2, seconds=3)),
            ("0:07", timedelta(seconds=7)),
        ],
    )
    def test_values(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", [None, "", "LIVE", "4m20s"])
    def test_unparseable_is_zero(self, value):
        assert parse_duration(value) == timedelta()


class TestParseDate:
    def test_date_only(self):
        assert parse_date("2015-11-25") == datetime(2015, 11, 25, tzinfo=timezone.utc)

    def test_offset_is_converted_to_utc(self):
        assert parse_date("2015-11-25T01:00:00-08:00") == datetime(2015, 11, 25, 9, tzinfo=timezone.utc)

    def test_compact(self):
        assert parse_date("20151125") == datetime(2015, 11, 25, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "yesterday"])
    def test_invalid(self, value):
        assert parse_date(value) is None

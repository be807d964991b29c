"""Tests for body value extraction (JSONPath-lite and XPath)."""

import pytest

from reqfile.extract import (
    PathSyntaxError,
    _parse_path_segments,
    evaluate_json_path,
    evaluate_xpath,
    extract_body_value,
    json_value_text,
)

ITEMS = '{"items":[{"id":1},{"id":2}]}'

XML = """<?xml version="1.0"?>
<root>
  <user name="alice">
    <id>7</id>
    <bio>hello <b>world</b></bio>
  </user>
</root>"""


class TestPathSegments:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("$.user.name", ["user", "name"]),
            ("items[0].id", ["items", 0, "id"]),
            ("$.matrix[1][0]", ["matrix", 1, 0]),
            ("$[2]", [2]),
            ("$", []),
            ("items[-1]", ["items", -1]),
        ],
    )
    def test_segments(self, path, expected):
        assert _parse_path_segments(path) == expected

    @pytest.mark.parametrize("path", ["a..b", "items[x]", "items[0", "a[]"])
    def test_invalid(self, path):
        with pytest.raises(PathSyntaxError):
            _parse_path_segments(path)


class TestJsonPath:
    def test_implicit_prefix(self):
        assert extract_body_value(ITEMS, "items[1].id") == "2"

    def test_explicit_prefix(self):
        assert extract_body_value(ITEMS, "$.items[0].id") == "1"

    def test_negative_index(self):
        assert evaluate_json_path(ITEMS, "$.items[-1].id") == "2"

    def test_top_level_array(self):
        assert evaluate_json_path('[{"id": 9}]', "$[0].id") == "9"

    def test_case_insensitive_key_fallback(self):
        assert evaluate_json_path('{"Token": "t", "token": "exact"}', "$.token") == "exact"
        assert evaluate_json_path('{"Token": "t"}', "$.token") == "t"

    def test_nested_object_is_compact_json(self):
        body = '{"user": {"roles": ["a", "b"], "id": 1}}'
        assert evaluate_json_path(body, "$.user") == '{"roles":["a","b"],"id":1}'
        assert evaluate_json_path(body, "user.roles[1]") == "b"

    @pytest.mark.parametrize(
        "path",
        ["$.missing", "$.items[5].id", "$.items.id", "$.items[0].id.deeper", "$.items[x]"],
    )
    def test_misses_are_empty(self, path):
        assert evaluate_json_path(ITEMS, path) == ""

    @pytest.mark.parametrize("body", ["not json", "{", "", None])
    def test_malformed_body_is_empty(self, body):
        assert extract_body_value(body, "items[1].id") == ""


class TestJsonNumbers:
    BODY = '{"price": 1.50, "big": 1e5, "count": 10, "nested": {"x": 2.0, "list": [1.10, -0]}}'

    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("$.price", "1.50"),
            ("$.big", "1e5"),
            ("$.count", "10"),
            ("$.nested.list[1]", "-0"),
        ],
    )
    def test_number_text_as_written(self, path, expected):
        assert evaluate_json_path(self.BODY, path) == expected

    def test_numbers_inside_containers(self):
        assert evaluate_json_path(self.BODY, "$.nested") == '{"x":2.0,"list":[1.10,-0]}'

    def test_unicode_kept(self):
        assert evaluate_json_path('{"a": {"city": "Zürich"}}', "$.a") == '{"city":"Zürich"}'


class TestDeeplyNestedBody:
    def test_array_nesting_is_empty(self):
        body = "[" * 100000 + "]" * 100000
        assert evaluate_json_path(body, "$.a") == ""

    def test_object_nesting_is_empty(self):
        body = '{"a":' * 100000 + "1" + "}" * 100000
        assert extract_body_value(body, "$.a") == ""


class TestJsonValueText:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, ""),
            ("text", "text"),
            (True, "true"),
            (False, "false"),
            (42, "42"),
            (1.5, "1.5"),
            ([1, 2], "[1,2]"),
            ({"a": None}, '{"a":null}'),
        ],
    )
    def test_rendering(self, value, expected):
        assert json_value_text(value) == expected


class TestXPath:
    def test_element_text(self):
        assert extract_body_value(XML, "/root/user/id") == "7"

    def test_attribute(self):
        assert evaluate_xpath(XML, "/root/user/@name") == "alice"

    def test_mixed_content_text(self):
        assert evaluate_xpath(XML, "/root/user/bio") == "hello world"

    def test_first_match_wins(self):
        assert evaluate_xpath("<r><i>1</i><i>2</i></r>", "/r/i") == "1"

    def test_no_match(self):
        assert evaluate_xpath(XML, "/root/missing") == ""

    def test_invalid_xml(self):
        assert evaluate_xpath("<root><unclosed></root>", "/root") == ""
        assert evaluate_xpath('{"json": true}', "/root") == ""

    def test_invalid_expression(self):
        assert evaluate_xpath(XML, "/root/[") == ""

    def test_empty_body(self):
        assert evaluate_xpath("", "/root") == ""


class TestWholeBody:
    def test_star_returns_body_verbatim(self):
        assert extract_body_value("plain text\nbody", "*") == "plain text\nbody"

    def test_star_on_missing_body(self):
        assert extract_body_value(None, "*") == ""

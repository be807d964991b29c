"""reqfile extract - pull single values out of captured bodies.

Three evaluators back the ``body`` part of a response reference:

  *            → the whole body, verbatim
  $.a.b[0]     → JSONPath-lite (dotted keys, integer indices)
  /root/node   → XPath single-node query, text content of the match

Every evaluator returns a string and never raises: a missing key, an
index out of range, or a body that does not parse all yield "".
"""

from __future__ import annotations

import json
import re
from typing import Any

from lxml import etree

# ---------------------------------------------------------------------------
# Segment types returned by _parse_path_segments:
#   str  → dict key  (exact match first, then case-insensitive)
#   int  → list index (supports negative)
# ---------------------------------------------------------------------------

_INT_RE = re.compile(r"^-?\d+$")
_PART_RE = re.compile(r"^([^\[]*)((?:\[[^\]]*\])*)$")
_BRACKET_RE = re.compile(r"\[([^\]]*)\]")


class PathSyntaxError(ValueError):
    """A JSONPath-lite expression that cannot be split into segments."""


def _parse_path_segments(path: str) -> list[str | int]:
    """Parse a JSONPath-lite path into typed segments.

    Accepts an optional leading ``$``:
      $.user.name        → key, key
      items[0].id        → key, 0, key
      $.matrix[1][0]     → key, 1, 0
      $[2]               → 2
    """
    path = path.strip()
    if path.startswith("$"):
        path = path[1:]
    path = path.lstrip(".")

    segments: list[str | int] = []
    if not path:
        return segments

    for part in path.split("."):
        if not part:
            raise PathSyntaxError(f"empty segment in {path!r}")
        m = _PART_RE.match(part)
        if not m:
            raise PathSyntaxError(f"unbalanced brackets in {part!r}")
        key, brackets = m.group(1), m.group(2)
        if key:
            segments.append(key)
        for index in _BRACKET_RE.findall(brackets):
            index = index.strip()
            if not _INT_RE.match(index):
                raise PathSyntaxError(f"array index must be an integer: [{index}]")
            segments.append(int(index))

    return segments


def _ci_get(d: dict[str, Any], key: str) -> tuple[str | None, Any]:
    """Case-insensitive dict lookup.  Returns (actual_key, value)."""
    if key in d:
        return key, d[key]
    lower = key.lower()
    for k, v in d.items():
        if k.lower() == lower:
            return k, v
    return None, None


def _get_value(data: Any, segments: list[str | int]) -> tuple[bool, Any]:
    """Walk str / int segments to extract a value."""
    current = data
    for seg in segments:
        if isinstance(seg, str):
            if not isinstance(current, dict):
                return False, None
            actual, val = _ci_get(current, seg)
            if actual is None:
                return False, None
            current = val
        else:
            if not isinstance(current, list):
                return False, None
            try:
                current = current[seg]
            except IndexError:
                return False, None
    return True, current


class RawNumber(str):
    """A JSON number kept as the text it was written with (``1.50`` stays ``1.50``)."""


def _compact(value: Any) -> str:
    if isinstance(value, RawNumber):
        return str(value)
    if isinstance(value, dict):
        items = (f"{json.dumps(k, ensure_ascii=False)}:{_compact(v)}" for k, v in value.items())
        return "{" + ",".join(items) + "}"
    if isinstance(value, list):
        return "[" + ",".join(_compact(v) for v in value) + "]"
    return json.dumps(value, ensure_ascii=False)


def json_value_text(value: Any) -> str:
    """Render an extracted JSON value the way it is substituted into text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return str(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return _compact(value)


def evaluate_json_path(body: str | None, path: str) -> str:
    """Evaluate a JSONPath-lite expression against a JSON body."""
    if not body:
        return ""
    try:
        data = json.loads(body, parse_int=RawNumber, parse_float=RawNumber)
        segments = _parse_path_segments(path)
        found, value = _get_value(data, segments)
        return json_value_text(value) if found else ""
    except (json.JSONDecodeError, PathSyntaxError, RecursionError):
        return ""


def evaluate_xpath(body: str | None, path: str) -> str:
    """Evaluate an XPath query against an XML body; text of the first match."""
    if not body:
        return ""
    try:
        parser = etree.XMLParser(resolve_entities=False, no_network=True)
        root = etree.fromstring(body.encode("utf-8"), parser=parser)
        result = root.xpath(path)
    except (etree.XMLSyntaxError, etree.XPathError, ValueError):
        return ""

    if not isinstance(result, list) or not result:
        return ""
    node = result[0]
    if isinstance(node, str):
        return str(node)
    if etree.iselement(node):
        return "".join(node.itertext())
    return ""


def extract_body_value(body: str | None, path: str) -> str:
    """Dispatch a body path to the matching evaluator."""
    if path == "*":
        return body or ""
    if path.startswith("/"):
        return evaluate_xpath(body, path)
    if path.startswith("$"):
        return evaluate_json_path(body, path)
    return evaluate_json_path(body, "$." + path)

"""reqfile parser - .http text into a File of requests and diagnostics.

Layout of a request block:

    @var = value                 file variable (before any request line)
    ### Optional title           block separator
    # @name login                names the next request
    # free comment               attached to the next request
    POST {{host}}/login HTTP/1.1
    Content-Type: application/json
      continued header value
                                 blank line ends the headers
    {"user": "a"}                body, or "< ./payload.json"

Parsing never raises on malformed content; problems are recorded as
Diagnostics on the File and the scan continues.
"""

import logging
import re
from enum import Enum
from typing import NamedTuple

from reqfile.capture import RESPONSE_REFERENCE_RE
from reqfile.models import Diagnostic, DiagnosticCode, File, Request

logger = logging.getLogger(__name__)

HTTP_METHODS = frozenset(
    ("OPTIONS", "GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "TRACE", "CONNECT"),
)

LINE_SPLIT_RE = re.compile(r"\r\n|\r|\n")
REQUEST_LINE_RE = re.compile(r"^([A-Za-z]+)\s+(\S+)(?:\s+(HTTP/[\d.]+))?$", re.IGNORECASE)
REQUEST_NAME_RE = re.compile(r"^(?:#|//)\s*@name\s+([\w-]+)", re.IGNORECASE)


class ParserState(Enum):
    START = "start"
    IN_HEADERS = "in_headers"
    IN_BODY = "in_body"


class LineKind(Enum):
    BLANK = "blank"
    SEPARATOR = "separator"
    VARIABLE = "variable"
    NAME_DIRECTIVE = "name_directive"
    COMMENT = "comment"
    REQUEST_LINE = "request_line"
    OTHER = "other"


class ScannedLine(NamedTuple):
    """A classified line. ``value`` depends on ``kind``.

    SEPARATOR       → title (or None)
    NAME_DIRECTIVE  → request name
    COMMENT         → comment text without its marker
    REQUEST_LINE    → (method, url, http_version)
    other kinds     → the trimmed line
    """

    kind: LineKind
    value: object


def split_lines(content: str | None) -> list[str]:
    if not content:
        return []
    return LINE_SPLIT_RE.split(content)


def classify_line(line: str) -> ScannedLine:
    """Classify one line of the request-preamble grammar."""
    trimmed = line.strip()
    if not trimmed:
        return ScannedLine(LineKind.BLANK, "")
    if trimmed.startswith("###"):
        title = trimmed[3:].strip()
        return ScannedLine(LineKind.SEPARATOR, title or None)
    if trimmed.startswith("@"):
        return ScannedLine(LineKind.VARIABLE, trimmed)
    if trimmed.startswith("#") or trimmed.startswith("//"):
        m = REQUEST_NAME_RE.match(trimmed)
        if m:
            return ScannedLine(LineKind.NAME_DIRECTIVE, m.group(1))
        marker = 1 if trimmed.startswith("#") else 2
        return ScannedLine(LineKind.COMMENT, trimmed[marker:].lstrip())
    m = REQUEST_LINE_RE.match(trimmed)
    if m:
        return ScannedLine(LineKind.REQUEST_LINE, (m.group(1).upper(), m.group(2), m.group(3)))
    return ScannedLine(LineKind.OTHER, trimmed)


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())


class ParseContext:
    """Mutable scan state for one parse call."""

    def __init__(self, file: File, lines: list[str]):
        self.file = file
        self.lines = lines
        self.index = 0
        self.state = ParserState.START
        self.request: Request | None = None
        self.seen_request_line = False
        self.last_header: str | None = None
        self.body_lines: list[tuple[int, str]] = []
        self.pending_name: str | None = None
        self.pending_title: str | None = None
        self.pending_comments: list[str] = []
        self.pending_variables: dict[str, str] = {}

    @property
    def line_number(self) -> int:
        return self.index + 1

    def add_diagnostic(
        self,
        code: DiagnosticCode,
        message: str,
        column: int = 1,
        line: int | None = None,
    ) -> None:
        diagnostic = Diagnostic(code, message, line or self.line_number, column)
        self.file.diagnostics.append(diagnostic)
        logger.debug("%s", diagnostic.format(self.file.path))

    def reset_block(self, title: str | None) -> None:
        self.state = ParserState.START
        self.request = None
        self.last_header = None
        self.body_lines = []
        self.pending_name = None
        self.pending_title = title
        self.pending_comments = []
        self.pending_variables = {}


def parse(content: str | None, path: str) -> File:
    """Parse .http ``content`` into a File. ``path`` is recorded, never opened."""
    if not path:
        raise ValueError("path is required")

    file = File(path)
    context = ParseContext(file, split_lines(content))

    while context.index < len(context.lines):
        line = context.lines[context.index]
        scanned = classify_line(line)

        if scanned.kind is LineKind.SEPARATOR:
            _finish_request(context)
            context.reset_block(scanned.value)
        elif context.state is ParserState.START:
            _process_start(context, line, scanned)
        elif context.state is ParserState.IN_HEADERS:
            _process_header(context, line)
        else:
            context.body_lines.append((context.line_number, line))

        context.index += 1

    _finish_request(context)
    logger.debug(
        "Parsed %s: %d request(s), %d diagnostic(s)",
        path,
        len(file.requests),
        len(file.diagnostics),
    )
    return file


# ── States ───────────────────────────────────────────────────────────────


def _process_start(context: ParseContext, line: str, scanned: ScannedLine) -> None:
    kind = scanned.kind
    if kind is LineKind.BLANK:
        return
    if kind is LineKind.VARIABLE:
        _process_variable(context, line, scanned.value)
    elif kind is LineKind.NAME_DIRECTIVE:
        context.pending_name = scanned.value
    elif kind is LineKind.COMMENT:
        context.pending_comments.append(scanned.value)
    elif kind is LineKind.REQUEST_LINE:
        _start_request(context, line, *scanned.value)
    else:
        first_word = scanned.value.split()[0]
        if first_word[0].isalpha() and first_word.upper() in HTTP_METHODS:
            context.add_diagnostic(
                DiagnosticCode.REQUEST_LINE_ERROR,
                f"Malformed request line: '{scanned.value}'",
                column=_indent(line) + 1,
            )


def _process_variable(context: ParseContext, line: str, declaration: str) -> None:
    column = _indent(line) + 1
    name, sep, value = declaration[1:].partition("=")
    name = name.strip()

    if not sep or not name:
        context.add_diagnostic(
            DiagnosticCode.VARIABLE_ERROR,
            f"Invalid variable definition: '{declaration}'. Expected '@name=value'",
            column=column,
        )
        return
    if " " in name or "\t" in name:
        context.add_diagnostic(
            DiagnosticCode.VARIABLE_ERROR,
            f"Invalid variable name '{name}': spaces are not allowed",
            column=column,
        )
        return

    if context.seen_request_line:
        context.pending_variables[name] = value.strip()
    else:
        context.file.variables[name] = value.strip()


def _start_request(
    context: ParseContext,
    line: str,
    method: str,
    url: str,
    http_version: str | None,
) -> None:
    if method not in HTTP_METHODS:
        context.add_diagnostic(
            DiagnosticCode.UNKNOWN_METHOD,
            f"Unknown HTTP method: '{method}'",
            column=_indent(line) + 1,
        )

    request = Request(method, url, http_version)
    request.name = context.pending_name
    request.separator_title = context.pending_title
    request.line_number = context.line_number
    request.comments = list(context.pending_comments)
    request.variables = dict(context.pending_variables)
    _scan_references(request, url)

    context.request = request
    context.seen_request_line = True
    context.pending_name = None
    context.pending_title = None
    context.pending_comments = []
    context.pending_variables = {}
    context.state = ParserState.IN_HEADERS


def _process_header(context: ParseContext, line: str) -> None:
    request = context.request
    trimmed = line.strip()

    if not trimmed:
        context.state = ParserState.IN_BODY
        return

    if line[0].isspace() and context.last_header is not None:
        request.headers[context.last_header] += " " + trimmed
        _scan_references(request, trimmed)
        return

    name, sep, value = line.partition(":")
    if not sep:
        context.add_diagnostic(
            DiagnosticCode.HEADER_ERROR,
            f"Invalid header format: '{trimmed}'. Expected 'Name: Value'",
        )
        return
    name = name.strip()
    if not name:
        context.add_diagnostic(
            DiagnosticCode.HEADER_ERROR,
            "Invalid header: empty header name",
        )
        return

    value = value.strip()
    request.headers[name] = value
    context.last_header = name
    _scan_references(request, value)


def _finish_request(context: ParseContext) -> None:
    """Attach the accumulated body and append the request to the file."""
    request = context.request
    if request is None:
        return

    body_lines = context.body_lines
    while body_lines and not body_lines[-1][1].strip():
        body_lines.pop()

    if body_lines:
        first = body_lines[0][1].strip()
        if len(first) > 1 and first.startswith("<"):
            request.body_file_path = first[1:].strip()
            _scan_references(request, request.body_file_path)
            if len(body_lines) > 1:
                context.add_diagnostic(
                    DiagnosticCode.BODY_WARNING,
                    "Content after file reference will be ignored",
                    line=body_lines[1][0],
                )
        else:
            request.body = "\n".join(text for _, text in body_lines)
            _scan_references(request, request.body)

    context.file.requests.append(request)
    context.request = None


def _scan_references(request: Request, text: str | None) -> None:
    if not text:
        return
    for m in RESPONSE_REFERENCE_RE.finditer(text):
        request.add_dependency(m.group(1))

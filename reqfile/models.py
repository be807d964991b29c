"""reqfile models - parsed .http document, diagnostics, captured exchanges."""

from dataclasses import dataclass
from enum import Enum

from requests.structures import CaseInsensitiveDict


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


class DiagnosticCode(Enum):
    """Stable diagnostic catalog. Each code carries a fixed severity."""

    REQUEST_LINE_ERROR = "HTTP001"
    HEADER_ERROR = "HTTP002"
    VARIABLE_ERROR = "HTTP003"
    BODY_WARNING = "HTTP004"
    UNKNOWN_METHOD = "HTTP005"

    @property
    def severity(self) -> Severity:
        if self in (DiagnosticCode.BODY_WARNING, DiagnosticCode.UNKNOWN_METHOD):
            return Severity.WARNING
        return Severity.ERROR


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal parse finding tied to a 1-based line and column."""

    code: DiagnosticCode
    message: str
    line: int
    column: int = 1

    @property
    def severity(self) -> Severity:
        return self.code.severity

    def format(self, path: str | None = None) -> str:
        location = f"{self.line}:{self.column}"
        if path:
            location = f"{path}:{location}"
        return f"{location}: {self.severity.value} {self.code.value}: {self.message}"


class Request:
    """One request block of a .http file. Url, headers and body are unresolved."""

    def __init__(self, method: str, url: str, http_version: str | None = None):
        self.method: str = method
        self.url: str = url
        self.http_version: str | None = http_version
        self.name: str | None = None
        self.separator_title: str | None = None
        self.line_number: int = 0
        self.comments: list[str] = []
        self.headers: CaseInsensitiveDict = CaseInsensitiveDict()
        self.body: str | None = None
        self.body_file_path: str | None = None
        self.variables: dict[str, str] = {}
        self.depends_on: list[str] = []

    @property
    def has_response_references(self) -> bool:
        return bool(self.depends_on)

    @property
    def is_file_body(self) -> bool:
        return bool(self.body_file_path)

    @property
    def display_name(self) -> str:
        return self.name or self.separator_title or f"{self.method} {self.url}"

    def add_dependency(self, name: str) -> None:
        if name not in self.depends_on:
            self.depends_on.append(name)

    def __repr__(self) -> str:
        return f"<Request {self.method} {self.url} line={self.line_number} name={self.name!r}>"


class File:
    """A parsed .http document: file variables, requests and diagnostics in source order."""

    def __init__(self, path: str):
        self.path: str = path
        self.variables: dict[str, str] = {}
        self.requests: list[Request] = []
        self.diagnostics: list[Diagnostic] = []

    @property
    def has_chained_requests(self) -> bool:
        return any(r.has_response_references for r in self.requests)

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity is Severity.WARNING]

    def find_request(self, name: str) -> Request | None:
        """Case-insensitive lookup by @name. The last declaration wins."""
        found = None
        lower = name.lower()
        for request in self.requests:
            if request.name and request.name.lower() == lower:
                found = request
        return found


class CapturedResponse:
    """One completed exchange stored for later {{name.response...}} references."""

    def __init__(
        self,
        status_code: int,
        response_body: str | None = None,
        response_headers=None,
        request_body: str | None = None,
        request_headers=None,
    ):
        self.status_code = status_code
        self.response_body = response_body
        self.response_headers = CaseInsensitiveDict(response_headers or {})
        self.request_body = request_body
        self.request_headers = (
            CaseInsensitiveDict(request_headers) if request_headers is not None else None
        )

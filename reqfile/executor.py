"""reqfile executor - send parsed requests and capture responses for chaining."""

import json
import logging
import os
import time
from pathlib import Path
from typing import Any

import requests
from requests.structures import CaseInsensitiveDict

from reqfile.capture import ResponseStore
from reqfile.models import File, Request
from reqfile.resolver import merge_scopes, resolve_template

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/json"


class RequestResult:
    """Result of an HTTP request."""

    def __init__(self):
        self.status_code: int = 0
        self.headers: dict[str, str] = {}
        self.body: Any = None  # parsed JSON or raw text
        self.elapsed_ms: float = 0
        self.error: str | None = None
        self.raw_text: str = ""
        self.prepared: PreparedRequest | None = None  # set by Session.send


class PreparedRequest:
    """A request with every placeholder resolved, ready for the transport."""

    def __init__(self, method: str, url: str, headers: CaseInsensitiveDict, body: bytes | str | None):
        self.method = method
        self.url = url
        self.headers = headers
        self.body = body

    @property
    def body_text(self) -> str | None:
        if isinstance(self.body, bytes):
            return self.body.decode("utf-8", errors="replace")
        return self.body


class RequestsTransport:
    """HTTP transport on top of ``requests``. Never raises."""

    def __init__(self, session: requests.Session | None = None):
        self.session = session

    def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        body: bytes | str | None = None,
        timeout: int = 30,
    ) -> RequestResult:
        """Execute an HTTP request and return structured result.

        - Attempts to parse response as JSON
        - Falls back to raw text
        - Captures timing
        - Transport failures are reported in ``error``
        """
        result = RequestResult()

        if isinstance(body, str):
            body = body.encode("utf-8")

        try:
            start = time.monotonic()
            resp = (self.session or requests).request(
                method=method.upper(),
                url=url,
                headers=dict(headers) if headers else None,
                data=body or None,
                timeout=timeout,
                allow_redirects=True,
            )
            result.elapsed_ms = (time.monotonic() - start) * 1000

            result.status_code = resp.status_code
            result.headers = dict(resp.headers)
            result.raw_text = resp.text

            try:
                result.body = resp.json()
            except (json.JSONDecodeError, ValueError):
                result.body = resp.text

        except requests.exceptions.Timeout:
            result.error = f"Request timed out after {timeout}s"
        except requests.exceptions.ConnectionError as e:
            result.error = f"Connection error: {e}"
        except requests.exceptions.RequestException as e:
            result.error = f"Request failed: {e}"
        except Exception as e:
            result.error = f"Unexpected error: {e}"

        return result


class FileBodyLoader:
    """Reads ``< path`` bodies relative to the .http file's directory."""

    def __init__(self, base_dir: str | Path = "."):
        self.base_dir = Path(base_dir)

    def read_bytes(self, path: str) -> bytes:
        p = Path(path)
        if not p.is_absolute():
            p = self.base_dir / p
        return p.read_bytes()


class Session:
    """One chained run over a parsed File.

    Variable precedence, lowest first: ``defaults`` (config), file
    variables, request variables, ``overrides`` (e.g. CLI -v).
    Named requests are captured after they are sent so later requests can
    reference their responses. Not thread-safe.
    """

    def __init__(
        self,
        http_file: File,
        transport=None,
        loader=None,
        env=None,
        defaults: dict[str, str] | None = None,
        overrides: dict[str, str] | None = None,
        default_headers: dict[str, str] | None = None,
        timeout: int = 30,
    ):
        self.http_file = http_file
        self.transport = transport or RequestsTransport()
        self.loader = loader or FileBodyLoader(Path(http_file.path).parent)
        self.env = os.environ if env is None else env
        self.defaults = dict(defaults or {})
        self.overrides = dict(overrides or {})
        self.default_headers = dict(default_headers or {})
        self.timeout = timeout
        self.store = ResponseStore()

    def scope(self, request: Request) -> dict[str, str]:
        return merge_scopes(
            self.defaults,
            self.http_file.variables,
            request.variables,
            self.overrides,
        )

    def prepare(self, request: Request) -> PreparedRequest:
        """Resolve url, headers and body. Raises OSError if a body file is unreadable."""
        scope = self.scope(request)

        def _resolve(text):
            return resolve_template(text, scope, self.store, env=self.env)

        headers = CaseInsensitiveDict()
        for name, value in self.default_headers.items():
            headers[name] = _resolve(value)
        for name, value in request.headers.items():
            headers[name] = _resolve(value)

        body: bytes | str | None = None
        if request.is_file_body:
            body = self.loader.read_bytes(_resolve(request.body_file_path))
        elif request.body is not None:
            body = _resolve(request.body)

        if body and "Content-Type" not in headers:
            headers["Content-Type"] = DEFAULT_CONTENT_TYPE

        return PreparedRequest(request.method, _resolve(request.url), headers, body)

    def send(self, request: Request) -> RequestResult:
        """Prepare, transmit and (for named requests) capture one request."""
        try:
            prepared = self.prepare(request)
        except OSError as e:
            logger.warning("Cannot read body file for '%s': %s", request.display_name, e)
            result = RequestResult()
            result.error = f"Cannot read body file '{request.body_file_path}': {e}"
            return result

        logger.debug("Sending %s %s", prepared.method, prepared.url)
        result = self.transport.send(
            prepared.method,
            prepared.url,
            headers=dict(prepared.headers),
            body=prepared.body,
            timeout=self.timeout,
        )
        result.prepared = prepared
        if result.error:
            logger.warning("Request '%s' failed: %s", request.display_name, result.error)
            return result

        if request.name:
            self.store.capture(
                request.name,
                result.status_code,
                result.raw_text,
                result.headers,
                request_body=prepared.body_text,
                request_headers=prepared.headers,
            )
        return result

    def run(self, requests_to_run: list[Request] | None = None) -> list[tuple[Request, RequestResult]]:
        """Send requests in order (document order by default); stop at the first error."""
        results: list[tuple[Request, RequestResult]] = []
        for request in self.http_file.requests if requests_to_run is None else requests_to_run:
            result = self.send(request)
            results.append((request, result))
            if result.error:
                break
        return results

    def clear(self) -> None:
        self.store.clear()

"""reqfile capture - session store of completed exchanges and response references.

A response reference looks like ``{{login.response.body.$.token}}``:

  name      the @name of an earlier request (case-insensitive)
  source    response | request
  part      body | headers
  path      body: *, $.json.path, /xpath, or a bare json path
            headers: a literal header name

References to a request that has not been captured yet are returned
verbatim so callers can resolve again once the dependency has run.
"""

import logging
import re

from requests.structures import CaseInsensitiveDict

from reqfile.extract import extract_body_value
from reqfile.models import CapturedResponse

logger = logging.getLogger(__name__)

RESPONSE_REFERENCE_RE = re.compile(
    r"\{\{([\w-]+)\.(response|request)\.(body|headers)\.([^}]+)\}\}",
)


class ResponseStore:
    """Named captured exchanges for one session. Not thread-safe."""

    def __init__(self):
        self._responses: CaseInsensitiveDict = CaseInsensitiveDict()

    def capture(
        self,
        name: str,
        status_code: int,
        response_body: str | None,
        response_headers=None,
        request_body: str | None = None,
        request_headers=None,
    ) -> CapturedResponse | None:
        """Store (or overwrite) the exchange for ``name``."""
        if not name:
            logger.debug("Skipping capture of unnamed request (status %s)", status_code)
            return None
        captured = CapturedResponse(
            status_code=status_code,
            response_body=response_body,
            response_headers=response_headers,
            request_body=request_body,
            request_headers=request_headers,
        )
        self._responses[name] = captured
        logger.debug("Captured response '%s' (status %s)", name, status_code)
        return captured

    def get(self, name: str) -> CapturedResponse | None:
        return self._responses.get(name)

    def has_response(self, name: str) -> bool:
        return name in self._responses

    def get_response_body(self, name: str) -> str | None:
        captured = self._responses.get(name)
        return captured.response_body if captured else None

    def clear(self) -> None:
        self._responses.clear()

    def __len__(self) -> int:
        return len(self._responses)

    def resolve_reference(self, text: str) -> str:
        """Resolve a single reference; anything else is returned unchanged."""
        m = RESPONSE_REFERENCE_RE.fullmatch(text)
        if not m:
            return text
        return self._resolve_match(m)

    def resolve_all(self, text: str | None) -> str | None:
        """Replace every reference in ``text``, each independently."""
        if not text:
            return text
        return RESPONSE_REFERENCE_RE.sub(self._resolve_match, text)

    def _resolve_match(self, m: re.Match) -> str:
        name, source, part, path = m.group(1), m.group(2), m.group(3), m.group(4)

        captured = self._responses.get(name)
        if captured is None:
            return m.group(0)

        if part == "headers":
            headers = (
                captured.response_headers if source == "response" else captured.request_headers
            )
            if headers is None or path not in headers:
                return m.group(0)
            return headers[path]

        body = captured.response_body if source == "response" else captured.request_body
        return extract_body_value(body, path)

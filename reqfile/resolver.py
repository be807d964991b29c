"""reqfile resolver - turn a request template into concrete text.

Resolution runs in a fixed order, each stage scanning the output of the
previous one:

  1. response references   {{login.response.body.$.token}}
  2. dynamic variables     {{$guid}}, {{$datetime iso8601 1 d}}
  3. static variables      {{baseUrl}}

Anything still unresolved after stage 3 stays in the output verbatim.
"""

import re

from reqfile.capture import RESPONSE_REFERENCE_RE
from reqfile.dynamic import DYNAMIC_VARIABLE_RE, resolve_dynamic_all

STATIC_VARIABLE_RE = re.compile(r"\{\{\s*([\w-]+)\s*\}\}")

# How many times a substituted value may itself be expanded.
MAX_EXPANSION_DEPTH = 10


def merge_scopes(*scopes: dict[str, str] | None) -> dict[str, str]:
    """Merge variable scopes; later scopes win on name collision."""
    merged: dict[str, str] = {}
    for scope in scopes:
        if scope:
            merged.update(scope)
    return merged


def resolve_static(text: str | None, variables: dict[str, str] | None) -> str | None:
    """Replace {{name}} with values from ``variables``; unknown names stay as-is.

    A substituted value may reference other variables (``@api = {{host}}/v1``);
    those are expanded too, up to MAX_EXPANSION_DEPTH levels.
    """
    if not text or not variables:
        return text

    def _expand(value: str, depth: int) -> str:
        def _replace(m: re.Match) -> str:
            name = m.group(1)
            if name not in variables:
                return m.group(0)
            resolved = variables[name]
            if depth < MAX_EXPANSION_DEPTH and STATIC_VARIABLE_RE.search(resolved):
                return _expand(resolved, depth + 1)
            return resolved

        return STATIC_VARIABLE_RE.sub(_replace, value)

    return _expand(text, 0)


def resolve_template(
    text: str | None,
    static_vars: dict[str, str] | None = None,
    response_store=None,
    env=None,
) -> str | None:
    """Resolve response references, then dynamic variables, then static variables."""
    if not text:
        return text
    result = text
    if response_store is not None:
        result = response_store.resolve_all(result)
    result = resolve_dynamic_all(result, env=env)
    return resolve_static(result, static_vars)


# ── Inspection ───────────────────────────────────────────────────────────


def variable_names(text: str | None) -> set[str]:
    """Names of the {{static}} placeholders in ``text``."""
    if not text:
        return set()
    return {m.group(1) for m in STATIC_VARIABLE_RE.finditer(text)}


def response_reference_names(text: str | None) -> set[str]:
    """Request names referenced via {{name.response...}} / {{name.request...}}."""
    if not text:
        return set()
    return {m.group(1) for m in RESPONSE_REFERENCE_RE.finditer(text)}


def has_response_references(text: str | None) -> bool:
    return bool(text) and RESPONSE_REFERENCE_RE.search(text) is not None


def has_unresolved_placeholders(text: str | None) -> bool:
    """True if any static, dynamic or response placeholder remains."""
    if not text:
        return False
    return any(
        pattern.search(text)
        for pattern in (STATIC_VARIABLE_RE, DYNAMIC_VARIABLE_RE, RESPONSE_REFERENCE_RE)
    )

"""reqfile ordering - execution order from request dependencies.

The parser records ``depends_on`` but never reorders requests. These
helpers compute an order for callers that want one: dependencies first,
otherwise document order.
"""

import logging

from reqfile.models import File, Request

logger = logging.getLogger(__name__)


class DependencyCycleError(ValueError):
    """Requests that (transitively) reference each other's responses."""

    def __init__(self, chain: list[str]):
        self.chain = chain
        super().__init__(f"Circular dependency detected: {' → '.join(chain)}")


def _named(file: File) -> dict[str, list[Request]]:
    """Lower-cased name → requests declaring it, in document order."""
    named: dict[str, list[Request]] = {}
    for request in file.requests:
        if request.name:
            named.setdefault(request.name.lower(), []).append(request)
    return named


def _resolve_dependency(
    request: Request,
    dep_name: str,
    named: dict[str, list[Request]],
) -> Request | None:
    """The request whose capture ``dep_name`` refers to.

    The last declaration wins, except that a request re-declaring the name it
    references depends on the declaration before it.
    """
    candidates = named.get(dep_name.lower())
    if not candidates:
        return None
    for position, candidate in enumerate(candidates):
        if candidate is request and position > 0:
            return candidates[position - 1]
    return candidates[-1]


def missing_dependencies(file: File) -> dict[str, list[str]]:
    """Requests referencing names that no request in the file declares."""
    named = _named(file)
    missing: dict[str, list[str]] = {}
    for request in file.requests:
        unknown = [dep for dep in request.depends_on if dep.lower() not in named]
        if unknown:
            missing[request.display_name] = unknown
    return missing


def _visit(
    request: Request,
    named: dict[str, list[Request]],
    ordered: list[Request],
    done: set[int],
    path: list[Request],
) -> None:
    if id(request) in done:
        return

    path.append(request)
    for dep_name in request.depends_on:
        dep = _resolve_dependency(request, dep_name, named)
        if dep is None:
            logger.warning(
                "Request '%s' references unknown request '%s'",
                request.display_name,
                dep_name,
            )
            continue
        in_progress = [id(r) for r in path]
        if id(dep) in in_progress:
            cycle = path[in_progress.index(id(dep)):] + [dep]
            raise DependencyCycleError([r.name or r.display_name for r in cycle])
        _visit(dep, named, ordered, done, path)
    path.pop()

    done.add(id(request))
    ordered.append(request)


def execution_order(file: File) -> list[Request]:
    """All requests, each after the requests it depends on.

    Independent requests keep their document order.
    Raises DependencyCycleError on circular references.
    """
    named = _named(file)
    ordered: list[Request] = []
    done: set[int] = set()
    for request in file.requests:
        _visit(request, named, ordered, done, [])
    return ordered


def dependency_chain(file: File, name: str) -> list[Request]:
    """The requests needed to run ``name``: dependencies depth-first, then itself.

    Raises KeyError if no request is named ``name``.
    """
    named = _named(file)
    candidates = named.get(name.lower())
    if not candidates:
        raise KeyError(name)
    target = candidates[-1]
    ordered: list[Request] = []
    _visit(target, named, ordered, set(), [])
    return ordered

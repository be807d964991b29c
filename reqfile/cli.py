"""reqfile CLI - run and check .http request files."""

import json
import sys

import click

TOOL_HELP = """\
reqfile — Parse, check and run .http request files.

Executes the requests of a .http file in order, chaining values from
earlier responses into later requests.

\b
MODES
─────
  Run:        reqfile api.http [options]
  Check:      reqfile api.http --check
  List:       reqfile api.http --list
  Preview:    reqfile api.http --dry-run

\b
FILE FORMAT
───────────
  \b
  @baseUrl = https://api.example.com

  ### Login
  # @name login
  POST {{baseUrl}}/login
  Content-Type: application/json

  {"user": "a"}

  ### Profile
  GET {{baseUrl}}/profile
  Authorization: Bearer {{login.response.body.$.token}}

  A body whose first line is "< ./payload.json" is read from that file,
  relative to the .http file.

\b
PLACEHOLDERS
────────────
  \b
  {{name}}                               Variable (@name = value, -v, config)
  {{login.response.body.$.token}}        JSON path into a named response
  {{login.response.body./root/id}}       XPath into an XML response
  {{login.response.body.*}}              Whole response body
  {{login.response.headers.Location}}    Response header
  {{login.request.body.$.user}}          Body that was sent
  {{$guid}}                              Random UUID
  {{$randomInt 10 20}}                   Random integer in [10, 20)
  {{$timestamp -1 d}}                    Unix seconds, with offset
  {{$datetime iso8601 1 h}}              UTC datetime (rfc1123, iso8601, 'custom')
  {{$localDatetime 'yyyy-MM-dd'}}        Local datetime
  {{$processEnv HOME}}                   Environment variable

\b
EXECUTION ORDER
───────────────
  --order deps (default) runs each request after the requests it
  references; otherwise document order. --order file keeps document order.
  -r NAME runs only NAME and the requests it depends on. Repeatable.

\b
VARIABLE PRECEDENCE
───────────────────
  \b
  1. -v key=value          (CLI flag — highest priority)
  2. request variables     (@var between ### and the request line)
  3. file variables        (@var before the first request)
  4. config variables      (defaults.variables — lowest)

\b
CONFIG FILE FORMAT (.reqfile.yaml)
──────────────────────────────────
  Config resolution order:
    1. -c/--config flag (explicit path)
    2. .reqfile.yaml / .reqfile.yml / reqfile.yaml / reqfile.yml in CWD
    3. ~/.reqfile/config.yaml (global)

  \b
  defaults:
    timeout: 30                     # seconds
    env_file: .env                  # load .env file
    variables:
      baseUrl: ${API_BASE_URL}      # env var resolved at runtime
    headers:
      Accept: application/json

\b
OUTPUT FORMAT
─────────────
  \b
  ### login
  POST https://api.example.com/login
  STATUS: 200
  TIME: 45ms
  BODY:
  {"token": "..."}

  --verbose adds response headers. Diagnostics go to stderr.
"""


@click.command(
    cls=click.Command,
    help=TOOL_HELP,
    context_settings={"max_content_width": 88},
)
@click.argument("http_file", type=click.Path(dir_okay=False))
@click.option(
    "-c",
    "--config",
    "config_file",
    default=None,
    help="Config file path. Default: .reqfile.yaml in CWD, then ~/.reqfile/config.yaml.",
)
@click.option(
    "-r",
    "--request",
    "request_names",
    multiple=True,
    help="Run only this named request (and its dependencies). Repeatable.",
)
@click.option(
    "-v",
    "--var",
    multiple=True,
    help="Variable as key=value. Overrides file and config variables. Repeatable.",
)
@click.option(
    "--order",
    type=click.Choice(["deps", "file"]),
    default="deps",
    show_default=True,
    help="Execution order: dependencies first, or document order.",
)
@click.option(
    "--timeout",
    type=int,
    default=None,
    help="Request timeout in seconds. Default: 30.",
)
@click.option("--check", is_flag=True, default=False, help="Only report diagnostics.")
@click.option(
    "--list",
    "show_list",
    is_flag=True,
    default=False,
    help="List the requests in the file.",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Print resolved requests without sending them.",
)
@click.option(
    "--verbose",
    is_flag=True,
    default=False,
    help="Include response headers in output.",
)
@click.option("--debug", is_flag=True, default=False, help="Enable debug logging.")
def main(
    http_file,
    config_file,
    request_names,
    var,
    order,
    timeout,
    check,
    show_list,
    dry_run,
    verbose,
    debug,
):
    """Run the requests of a .http file."""
    from reqfile.core import (
        DEFAULT_TIMEOUT,
        config_mapping,
        load_config,
        load_env,
        load_http_file,
        parse_var_pairs,
        resolve_config_path,
        setup_logging,
    )
    from reqfile.executor import Session

    setup_logging(debug)

    # --- Load config ---
    config_path = resolve_config_path(config_file)
    config = load_config(config_path)
    defaults = config.get("defaults", {})

    env = load_env(defaults.get("env_file"), config.get("_config_dir") or ".")

    try:
        parsed = load_http_file(http_file)
    except OSError as e:
        click.echo(f"ERROR: Cannot read {http_file}: {e}", err=True)
        sys.exit(1)

    _echo_diagnostics(parsed)

    # --- Dispatch ---

    if check:
        _cmd_check(parsed)
        return

    if show_list:
        _cmd_list(parsed)
        return

    try:
        to_run = _select_requests(parsed, request_names, order)
    except (KeyError, ValueError) as e:
        click.echo(f"ERROR: {_error_text(e)}", err=True)
        sys.exit(1)

    session = Session(
        parsed,
        env=env,
        defaults=config_mapping(defaults, "variables", env),
        overrides=parse_var_pairs(var),
        default_headers=config_mapping(defaults, "headers", env),
        timeout=_resolve_timeout(timeout, defaults.get("timeout"), default=DEFAULT_TIMEOUT),
    )

    if dry_run:
        _cmd_dry_run(session, to_run)
        return

    _cmd_run(session, to_run, verbose)


# ── Subcommand implementations ──────────────────────────────────────────


def _cmd_check(parsed):
    errors = len(parsed.errors)
    warnings = len(parsed.warnings)
    click.echo(
        f"{parsed.path}: {len(parsed.requests)} request(s), "
        f"{errors} error(s), {warnings} warning(s)",
    )
    if errors:
        sys.exit(1)


def _cmd_list(parsed):
    from reqfile.ordering import missing_dependencies

    if not parsed.requests:
        click.echo(f"No requests found in: {parsed.path}")
        return

    click.echo(f"Requests from: {parsed.path}")
    click.echo(f"{len(parsed.requests)} available:\n")
    for request in parsed.requests:
        click.echo(f"  {request.display_name}  (line {request.line_number})")
        detail_parts = [f"{request.method} {request.url}"]
        if request.depends_on:
            detail_parts.append(f"depends: {', '.join(request.depends_on)}")
        if request.is_file_body:
            detail_parts.append(f"body: < {request.body_file_path}")
        click.echo(f"    {' | '.join(detail_parts)}")

    missing = missing_dependencies(parsed)
    for label, names in missing.items():
        click.echo(f"\nWARNING: '{label}' references unknown request(s): {', '.join(names)}")


def _cmd_dry_run(session, to_run):
    for request in to_run:
        click.echo(f"### {request.display_name}")
        try:
            prepared = session.prepare(request)
        except OSError as e:
            click.echo(f"ERROR: Cannot read body file '{request.body_file_path}': {e}")
            click.echo()
            continue
        click.echo(f"{prepared.method} {prepared.url}")
        for name, value in prepared.headers.items():
            click.echo(f"{name}: {value}")
        if prepared.body:
            click.echo()
            click.echo(prepared.body_text)
        click.echo()


def _cmd_run(session, to_run, verbose):
    for request, result in session.run(to_run):
        click.echo(f"### {request.display_name}")
        if result.prepared is not None:
            click.echo(f"{result.prepared.method} {result.prepared.url}")
        if result.error:
            click.echo(f"ERROR: {result.error}", err=True)
            sys.exit(1)
        click.echo(format_output(result, verbose=verbose))
        click.echo()


# ── Helpers ──────────────────────────────────────────────────────────────


def _select_requests(parsed, request_names, order):
    """Pick the requests to run. Raises KeyError / DependencyCycleError."""
    from reqfile.ordering import dependency_chain, execution_order

    if request_names:
        selected = []
        for name in request_names:
            for request in dependency_chain(parsed, name):
                if request not in selected:
                    selected.append(request)
        return selected

    if order == "deps":
        return execution_order(parsed)
    return list(parsed.requests)


def _error_text(e):
    if isinstance(e, KeyError):
        return f"No request named '{e.args[0]}'."
    return str(e)


def _echo_diagnostics(parsed):
    for diagnostic in parsed.diagnostics:
        click.echo(diagnostic.format(parsed.path), err=True)


def _resolve_timeout(*sources, default=30):
    """Return the first truthy timeout from sources, or default."""
    for t in sources:
        if t:
            return t
    return default


def format_output(result, verbose=False):
    """Format a request result for CLI output."""
    lines = [
        f"STATUS: {result.status_code}",
        f"TIME: {int(result.elapsed_ms)}ms",
    ]

    if verbose and result.headers:
        lines.append("HEADERS:")
        for key, value in result.headers.items():
            lines.append(f"  {key}: {value}")

    body = result.body
    if body is not None and body != "":
        lines.append("BODY:")
        if isinstance(body, dict | list):
            lines.append(json.dumps(body, indent=2))
        else:
            lines.append(str(body))

    return "\n".join(lines)

"""reqfile dynamic - {{$function args}} generators.

Supported functions (names are case-insensitive):

  {{$datetime [format] [offset unit]}}       UTC, ISO-8601 by default
  {{$localDatetime [format] [offset unit]}}  local time with UTC offset
  {{$timestamp [offset unit]}}               Unix seconds
  {{$randomInt [min] [max]}}                 [0, 2**31-1), [0, max) or [min, max)
  {{$guid}}                                  random UUID v4
  {{$processEnv NAME}} / {{$dotEnv NAME}}    environment lookup, "" if unset

Formats: rfc1123, iso8601, or a .NET-style custom format string, bare or
quoted ('dd/MM/yyyy' or "yyyy-MM-dd HH:mm"). Offset units: ms s m h d w M y.
Unknown functions are returned verbatim.
"""

import calendar
import datetime
import os
import random
import re
import uuid
from email.utils import format_datetime

DYNAMIC_VARIABLE_RE = re.compile(r"\{\{\$(\w+)(?:\s+(.+?))?\}\}")

INT32_MAX = 2**31 - 1
INT32_MIN = -(2**31)

_OFFSET_RE = re.compile(r"^([+-]?\d+)(ms|s|m|h|d|w|M|y)?$")

_KNOWN_FUNCTIONS = frozenset(
    ("datetime", "localdatetime", "timestamp", "randomint", "guid", "processenv", "dotenv"),
)

_rng = random.SystemRandom()

_MONTHS = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
_DAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

# Single-character .NET standard formats, expanded to custom patterns.
_STANDARD_FORMATS = {
    "o": "yyyy-MM-ddTHH:mm:ss.fffffffK",
    "O": "yyyy-MM-ddTHH:mm:ss.fffffffK",
    "s": "yyyy-MM-ddTHH:mm:ss",
    "u": "yyyy-MM-dd HH:mm:ssZ",
    "d": "MM/dd/yyyy",
    "D": "dddd, dd MMMM yyyy",
    "t": "HH:mm",
    "T": "HH:mm:ss",
    "g": "MM/dd/yyyy HH:mm",
    "G": "MM/dd/yyyy HH:mm:ss",
}


class FormatError(ValueError):
    """A custom date format string that cannot be rendered."""


# ── Arguments ────────────────────────────────────────────────────────────


def parse_datetime_arguments(arguments: str | None) -> tuple[str | None, int, str | None]:
    """Split datetime arguments into (format, offset, unit).

    "rfc1123"              → ("rfc1123", 0, None)
    "iso8601 1 d"          → ("iso8601", 1, "d")
    "'dd MMM yyyy' -2 h"   → ("dd MMM yyyy", -2, "h")
    "-1 y" or "-1y"        → (None, -1, "y")
    """
    fmt = None
    offset = 0
    unit = None
    if not arguments or not arguments.strip():
        return fmt, offset, unit

    parts = arguments.split()
    index = 0
    first = parts[0]

    if first[0] in ("'", '"'):
        quote = first[0]
        collected = [first[1:]]
        if len(first) > 1 and first.endswith(quote):
            collected = [first[1:-1]]
            index = 1
        else:
            index = 1
            while index < len(parts):
                part = parts[index]
                index += 1
                if part.endswith(quote):
                    collected.append(part[:-1])
                    break
                collected.append(part)
        fmt = " ".join(collected)
    elif first.lower() in ("rfc1123", "iso8601"):
        fmt = first.lower()
        index = 1
    elif not _OFFSET_RE.match(first):
        fmt = first
        index = 1

    if index < len(parts):
        m = _OFFSET_RE.match(parts[index])
        if m and INT32_MIN <= int(m.group(1)) <= INT32_MAX:
            offset = int(m.group(1))
            unit = m.group(2)
            index += 1
            if unit is None and index < len(parts):
                unit = parts[index]

    return fmt, offset, unit


def _add_months(dt: datetime.datetime, months: int) -> datetime.datetime:
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def apply_offset(dt: datetime.datetime, offset: int, unit: str | None) -> datetime.datetime:
    """Shift ``dt`` by ``offset`` units. Unknown units leave it unchanged."""
    if unit == "ms":
        return dt + datetime.timedelta(milliseconds=offset)
    if unit == "s":
        return dt + datetime.timedelta(seconds=offset)
    if unit == "m":
        return dt + datetime.timedelta(minutes=offset)
    if unit == "h":
        return dt + datetime.timedelta(hours=offset)
    if unit == "d":
        return dt + datetime.timedelta(days=offset)
    if unit == "w":
        return dt + datetime.timedelta(weeks=offset)
    if unit == "M":
        return _add_months(dt, offset)
    if unit == "y":
        return _add_months(dt, offset * 12)
    return dt


def _shifted(dt: datetime.datetime, offset: int, unit: str | None) -> datetime.datetime:
    """apply_offset, keeping ``dt`` when the result leaves the datetime range."""
    try:
        return apply_offset(dt, offset, unit)
    except (OverflowError, ValueError):
        return dt


# ── Formatting ───────────────────────────────────────────────────────────


def _utc_offset(dt: datetime.datetime) -> datetime.timedelta:
    return dt.utcoffset() or datetime.timedelta(0)


def _format_offset(dt: datetime.datetime, width: int) -> str:
    total = int(_utc_offset(dt).total_seconds() // 60)
    sign = "-" if total < 0 else "+"
    hours, minutes = divmod(abs(total), 60)
    if width == 1:
        return f"{sign}{hours}"
    if width == 2:
        return f"{sign}{hours:02d}"
    return f"{sign}{hours:02d}:{minutes:02d}"


def _fraction(dt: datetime.datetime, width: int, trim: bool) -> str:
    digits = f"{dt.microsecond:06d}0"[:width]
    if trim:
        digits = digits.rstrip("0")
    return digits


def _render_token(dt: datetime.datetime, letter: str, width: int) -> str:
    if letter == "y":
        if width == 1:
            return str(dt.year % 100)
        if width == 2:
            return f"{dt.year % 100:02d}"
        return str(dt.year).zfill(width)
    if letter == "M":
        if width == 1:
            return str(dt.month)
        if width == 2:
            return f"{dt.month:02d}"
        name = _MONTHS[dt.month - 1]
        return name[:3] if width == 3 else name
    if letter == "d":
        if width == 1:
            return str(dt.day)
        if width == 2:
            return f"{dt.day:02d}"
        name = _DAYS[dt.weekday()]
        return name[:3] if width == 3 else name
    if letter in ("H", "h", "m", "s"):
        if letter == "H":
            value = dt.hour
        elif letter == "h":
            value = dt.hour % 12 or 12
        elif letter == "m":
            value = dt.minute
        else:
            value = dt.second
        return str(value) if width == 1 else f"{value:02d}"
    if letter in ("f", "F"):
        if width > 7:
            raise FormatError("too many fraction digits")
        return _fraction(dt, width, trim=letter == "F")
    if letter == "t":
        designator = "AM" if dt.hour < 12 else "PM"
        return designator[0] if width == 1 else designator
    if letter == "z":
        return _format_offset(dt, width)
    if letter == "K":
        if dt.tzinfo is None:
            return ""
        if _utc_offset(dt) == datetime.timedelta(0) and dt.tzinfo is datetime.timezone.utc:
            return "Z" * width
        return _format_offset(dt, 3) * width
    if letter == "g":
        return "A.D."
    return letter * width


_TOKEN_LETTERS = frozenset("yMdHhmsfFtzKg")


def format_custom(dt: datetime.datetime, fmt: str) -> str:
    """Render ``dt`` with a .NET-style custom (or standard one-letter) format."""
    if len(fmt) == 1:
        if fmt in ("R", "r"):
            return format_rfc1123(dt)
        if fmt not in _STANDARD_FORMATS:
            raise FormatError(f"unknown standard format {fmt!r}")
        fmt = _STANDARD_FORMATS[fmt]

    out: list[str] = []
    i = 0
    while i < len(fmt):
        ch = fmt[i]
        if ch in ("'", '"'):
            end = fmt.find(ch, i + 1)
            if end == -1:
                raise FormatError("unterminated literal")
            out.append(fmt[i + 1:end])
            i = end + 1
        elif ch == "\\":
            if i + 1 >= len(fmt):
                raise FormatError("dangling escape")
            out.append(fmt[i + 1])
            i += 2
        elif ch == "%" and i + 1 < len(fmt) and fmt[i + 1] in _TOKEN_LETTERS:
            out.append(_render_token(dt, fmt[i + 1], 1))
            i += 2
        elif ch in _TOKEN_LETTERS:
            j = i
            while j < len(fmt) and fmt[j] == ch:
                j += 1
            out.append(_render_token(dt, ch, j - i))
            i = j
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def format_rfc1123(dt: datetime.datetime) -> str:
    return format_datetime(dt.astimezone(datetime.timezone.utc), usegmt=True)


def format_datetime_value(dt: datetime.datetime, fmt: str | None, local: bool = False) -> str:
    """Format for $datetime / $localDatetime. Invalid formats use the default."""
    if not fmt or fmt == "iso8601":
        return _default_format(dt, local)
    if fmt == "rfc1123":
        return format_rfc1123(dt)
    try:
        return format_custom(dt, fmt)
    except FormatError:
        return _default_format(dt, local)


def _default_format(dt: datetime.datetime, local: bool) -> str:
    if local:
        return dt.strftime("%Y-%m-%dT%H:%M:%S") + _format_offset(dt, 3)
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


# ── Functions ────────────────────────────────────────────────────────────


def _now_utc(now: datetime.datetime | None) -> datetime.datetime:
    if now is None:
        return datetime.datetime.now(datetime.timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=datetime.timezone.utc)
    return now.astimezone(datetime.timezone.utc)


def resolve_datetime(arguments: str | None, now: datetime.datetime | None = None) -> str:
    fmt, offset, unit = parse_datetime_arguments(arguments)
    dt = _shifted(_now_utc(now), offset, unit)
    return format_datetime_value(dt, fmt)


def resolve_local_datetime(arguments: str | None, now: datetime.datetime | None = None) -> str:
    fmt, offset, unit = parse_datetime_arguments(arguments)
    dt = _shifted(_now_utc(now).astimezone(), offset, unit)
    return format_datetime_value(dt, fmt, local=True)


def resolve_timestamp(arguments: str | None, now: datetime.datetime | None = None) -> str:
    _, offset, unit = parse_datetime_arguments(arguments)
    dt = _shifted(_now_utc(now), offset, unit)
    return str(int(dt.timestamp()))


def resolve_random_int(arguments: str | None, rng: random.Random | None = None) -> str:
    """[0, INT32_MAX) with no args, [0, max) with one, [min, max) with two."""
    rng = rng or _rng
    low, high = 0, INT32_MAX
    parts = arguments.split() if arguments else []
    try:
        if len(parts) == 1:
            high = int(parts[0])
        elif len(parts) >= 2:
            low, high = int(parts[0]), int(parts[1])
    except ValueError:
        low, high = 0, INT32_MAX
    if high <= low:
        return str(low)
    return str(rng.randrange(low, high))


def resolve_env(name: str | None, env=None) -> str:
    """Environment lookup for $processEnv and $dotEnv; "" when unset."""
    if not name or not name.strip():
        return ""
    env = os.environ if env is None else env
    return env.get(name.strip()) or ""


def resolve_dynamic(
    function_name: str,
    raw_arguments: str | None = None,
    env=None,
    now: datetime.datetime | None = None,
    rng: random.Random | None = None,
) -> str:
    """Evaluate one dynamic variable. Unknown names come back as placeholder text."""
    key = function_name.lower()
    arguments = raw_arguments.strip() if raw_arguments else None

    if key == "datetime":
        return resolve_datetime(arguments, now)
    if key == "localdatetime":
        return resolve_local_datetime(arguments, now)
    if key == "timestamp":
        return resolve_timestamp(arguments, now)
    if key == "randomint":
        return resolve_random_int(arguments, rng)
    if key == "guid":
        return str(uuid.uuid4())
    if key in ("processenv", "dotenv"):
        return resolve_env(arguments, env)

    if arguments:
        return f"{{{{${function_name} {arguments}}}}}"
    return f"{{{{${function_name}}}}}"


def resolve_dynamic_all(
    text: str | None,
    env=None,
    now: datetime.datetime | None = None,
    rng: random.Random | None = None,
) -> str | None:
    """Replace every {{$function args}} placeholder in ``text``."""
    if not text:
        return text

    def _replace(m: re.Match) -> str:
        if m.group(1).lower() not in _KNOWN_FUNCTIONS:
            return m.group(0)
        return resolve_dynamic(m.group(1), m.group(2), env=env, now=now, rng=rng)

    return DYNAMIC_VARIABLE_RE.sub(_replace, text)


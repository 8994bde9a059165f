"""
Log line parsing: timestamp extraction, severity detection and cleanup.

Timestamp extraction has two paths. A fast regex covers the ISO-like
prefixes almost every structured logger writes; when it misses, a bounded
brute-force scan tries every prefix of the first 40 characters against the
known formats so nginx/Apache style lines still get a timestamp.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Match, Optional, Pattern, Tuple

from .models import LogEntry, LogLevel, LogStream

# Brute-force fallback only looks at prefixes up to this length
MAX_PREFIX = 40

# Most severe first; the first match wins
LOG_LEVEL_PATTERNS: List[Tuple[LogLevel, Pattern]] = [
    (LogLevel.PANIC, re.compile(r"\b(panic|emergency)\b", re.IGNORECASE | re.ASCII)),
    (LogLevel.FATAL, re.compile(r"\b(fatal|critical|crit)\b", re.IGNORECASE | re.ASCII)),
    (LogLevel.ERROR, re.compile(r"\b(error|err|fail|failed|exception)\b", re.IGNORECASE | re.ASCII)),
    (LogLevel.WARN, re.compile(r"\b(warn|warning|wrn)\b", re.IGNORECASE | re.ASCII)),
    (LogLevel.INFO, re.compile(r"\b(info|inf|notice|log)\b", re.IGNORECASE | re.ASCII)),
    (LogLevel.DEBUG, re.compile(r"\b(debug|dbg)\b", re.IGNORECASE | re.ASCII)),
    (LogLevel.TRACE, re.compile(r"\b(trace|trc)\b", re.IGNORECASE | re.ASCII)),
]

TIMESTAMP_PREFIX_RE = re.compile(
    r"^[\[\(\{<]?"
    r"(\d{4}[-/]\d{2}[-/]\d{2}[T ]\d{2}:\d{2}:\d{2}(?:[.,]\d+)?(?:Z|[+-]\d{2}:?\d{2})?)"
    r"[\]\)\}>]?",
    re.ASCII,
)
TZ_OFFSET_NO_COLON_RE = re.compile(r"([+-]\d{2})(\d{2})$", re.ASCII)
ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")

_BRACKETS = "[](){}<>"
_REMAINDER_LEAD = ")]}> \t"

_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
_MONTH_RE = "(" + "|".join(_MONTHS) + ")"
_WEEKDAY_RE = "(?:Mon|Tue|Wed|Thu|Fri|Sat|Sun)"
_CLOCK_RE = r"(\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?"


def _offset(value: Optional[str]) -> timezone:
    """Build a fixed offset from 'Z', '+HH:MM' or '+HHMM'."""
    if not value or value == "Z":
        return timezone.utc
    sign = -1 if value[0] == "-" else 1
    digits = value[1:].replace(":", "")
    delta = timedelta(hours=int(digits[:2]), minutes=int(digits[2:4]))
    return timezone(sign * delta)


def _micros(fraction: Optional[str]) -> int:
    if not fraction:
        return 0
    return int(fraction[:6].ljust(6, "0"))


def _build(year, month, day, hour, minute, second, fraction, zone) -> datetime:
    ts = datetime(
        int(year), int(month), int(day),
        int(hour), int(minute), int(second),
        _micros(fraction),
        tzinfo=_offset(zone),
    )
    return ts.astimezone(timezone.utc)


def _iso(m: Match) -> datetime:
    year, month, day, hour, minute, second, fraction = m.group(1, 2, 3, 4, 5, 6, 7)
    zone = m.group(8) if m.re.groups >= 8 else None
    return _build(year, month, day, hour, minute, second, fraction, zone)


def _apache(m: Match) -> datetime:
    day, month, year, hour, minute, second, zone = m.groups()
    return _build(year, _MONTHS.index(month) + 1, day, hour, minute, second, None, zone)


def _ansic(m: Match) -> datetime:
    month, day, hour, minute, second, fraction, year = m.groups()
    return _build(year, _MONTHS.index(month) + 1, day, hour, minute, second, fraction, None)


def _unix_date(m: Match) -> datetime:
    # Zone abbreviations carry no offset; they are read as UTC
    month, day, hour, minute, second, fraction, _zone, year = m.groups()
    return _build(year, _MONTHS.index(month) + 1, day, hour, minute, second, fraction, None)


def _ruby_date(m: Match) -> datetime:
    month, day, hour, minute, second, fraction, zone, year = m.groups()
    return _build(year, _MONTHS.index(month) + 1, day, hour, minute, second, fraction, zone)


# Ordered list of known timestamp layouts. Every layout accepts an optional
# fraction after the seconds.
TIMESTAMP_FORMATS: List[Tuple[str, Pattern, Callable[[Match], datetime]]] = [
    (
        "rfc3339",
        re.compile(r"^(\d{4})-(\d{2})-(\d{2})T" + _CLOCK_RE + r"(Z|[+-]\d{2}:\d{2})$", re.ASCII),
        _iso,
    ),
    (
        "iso-local",
        re.compile(r"^(\d{4})-(\d{2})-(\d{2})T" + _CLOCK_RE + "$", re.ASCII),
        _iso,
    ),
    (
        "space-local",
        re.compile(r"^(\d{4})-(\d{2})-(\d{2}) " + _CLOCK_RE + "$", re.ASCII),
        _iso,
    ),
    (
        "slash-local",
        re.compile(r"^(\d{4})/(\d{2})/(\d{2}) " + _CLOCK_RE + "$", re.ASCII),
        _iso,
    ),
    (
        "apache",
        re.compile(
            r"^(\d{2})/" + _MONTH_RE + r"/(\d{4}):(\d{2}):(\d{2}):(\d{2}) ([+-]\d{4})$",
            re.ASCII,
        ),
        _apache,
    ),
    (
        "ansic",
        re.compile(
            "^" + _WEEKDAY_RE + " " + _MONTH_RE + r" {1,2}(\d{1,2}) " + _CLOCK_RE + r" (\d{4})$",
            re.ASCII,
        ),
        _ansic,
    ),
    (
        "unix-date",
        re.compile(
            "^" + _WEEKDAY_RE + " " + _MONTH_RE + r" {1,2}(\d{1,2}) " + _CLOCK_RE
            + r" ([A-Z]{3,5}) (\d{4})$",
            re.ASCII,
        ),
        _unix_date,
    ),
    (
        "ruby-date",
        re.compile(
            "^" + _WEEKDAY_RE + " " + _MONTH_RE + r" (\d{2}) " + _CLOCK_RE
            + r" ([+-]\d{4}) (\d{4})$",
            re.ASCII,
        ),
        _ruby_date,
    ),
]

_RFC3339_FORMATS = [fmt for fmt in TIMESTAMP_FORMATS if fmt[0] == "rfc3339"]


def _match_formats(value: str, formats) -> Optional[datetime]:
    for _name, pattern, builder in formats:
        m = pattern.match(value)
        if not m:
            continue
        try:
            return builder(m)
        except ValueError:
            # Shape matched but a field is out of range (month 13, hour 25...)
            continue
    return None


def normalize_fraction_separator(value: str) -> str:
    """Turn '12:00:00,123' into '12:00:00.123' when the suffix is numeric."""
    if "," in value:
        head, _, tail = value.partition(",")
        if tail and tail.isascii() and tail.isdigit():
            return f"{head}.{tail}"
    return value


def try_parse_timestamp_candidate(candidate: str) -> Optional[datetime]:
    """
    Parse one timestamp candidate against the known formats.

    Args:
        candidate: Text that may be a complete timestamp

    Returns:
        UTC datetime, or None if no format matches
    """
    sanitized = candidate.strip()
    if not sanitized:
        return None

    sanitized = sanitized.strip(_BRACKETS)
    if not sanitized:
        return None

    sanitized = normalize_fraction_separator(sanitized)

    ts = _match_formats(sanitized, TIMESTAMP_FORMATS)
    if ts is not None:
        return ts

    m = TZ_OFFSET_NO_COLON_RE.search(sanitized)
    if m:
        with_colon = sanitized[: m.start()] + m.group(1) + ":" + m.group(2)
        return _match_formats(with_colon, _RFC3339_FORMATS)

    return None


def _remainder(line: str, end: int) -> str:
    return line[end:].strip().lstrip(_REMAINDER_LEAD)


def parse_timestamp(log_line: str) -> Tuple[Optional[datetime], str]:
    """
    Extract a timestamp from the beginning of a log line.

    The fast path matches an ISO-like prefix with a regex. On a miss, every
    prefix up to MAX_PREFIX characters is tried and the LAST (longest) one
    that parses wins, so the two paths can disagree on pathological input.

    Args:
        log_line: Raw log line

    Returns:
        (timestamp, remaining message); timestamp is None and the stripped
        line is returned unchanged when nothing parses
    """
    line = log_line.strip()
    if not line:
        return None, ""

    m = TIMESTAMP_PREFIX_RE.match(line)
    if m:
        ts = try_parse_timestamp_candidate(m.group(1))
        if ts is not None:
            return ts, _remainder(line, m.end())

    found: Optional[datetime] = None
    found_message = ""
    for i in range(1, min(len(line), MAX_PREFIX) + 1):
        ts = try_parse_timestamp_candidate(line[:i])
        if ts is not None:
            found = ts
            found_message = _remainder(line, i)

    if found is not None:
        return found, found_message

    return None, line


def detect_log_level(message: str) -> LogLevel:
    """
    Detect the severity of a message.

    Patterns run most severe first, so "error ... info" is ERROR.
    """
    for level, pattern in LOG_LEVEL_PATTERNS:
        if pattern.search(message):
            return level
    return LogLevel.UNKNOWN


def clean_message(message: str) -> str:
    """Remove ANSI color sequences and surrounding whitespace."""
    if "\x1b[" not in message:
        return message.strip()
    return ANSI_RE.sub("", message).strip()


def parse_log_line(log_line: str, stream: LogStream) -> LogEntry:
    """Parse a raw log line into a LogEntry."""
    timestamp, without_timestamp = parse_timestamp(log_line)
    message = clean_message(without_timestamp)
    return LogEntry(
        timestamp=timestamp,
        level=detect_log_level(message),
        message=message,
        stream=stream,
        raw=log_line,
    )

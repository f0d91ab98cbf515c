"""Date formatting for Stele.

Date-valued properties are exposed to templates as a mapping of every
configured format rather than a single string, e.g.::

    {"timestamp": 1735689600.0,
     "date": {"full": "Wednesday, January 01, 2025", ...},
     "time": {"short": "00:00", ...},
     "iso8601": "2025-01-01T00:00:00.000Z",
     "rss": "Wed, 01 Jan 2025 00:00:00 +0000",
     "sitemap": "2025-01-01"}

Formatter tables are plain dictionaries built per render pass, never module
globals, so independent builds cannot affect each other.

Patterns use :meth:`datetime.strftime` directives plus ``%L`` for
milliseconds.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DATE_STYLES = {
    "full": "%A, %B %d, %Y",
    "long": "%B %d, %Y",
    "medium": "%b %d, %Y",
    "short": "%m/%d/%y",
}

TIME_STYLES = {
    "full": "%H:%M:%S %Z",
    "long": "%H:%M:%S %Z",
    "medium": "%H:%M:%S",
    "short": "%H:%M",
}


@dataclass(frozen=True)
class DateFormat:
    """A named output format.

    Attributes:
        pattern: strftime pattern, ``%L`` expands to milliseconds.
        time_zone: Optional zone overriding the site time zone.
    """

    pattern: str
    time_zone: str | None = None

    @classmethod
    def from_value(cls, value: Any) -> DateFormat:
        """Accept either a bare pattern string or a mapping."""
        if isinstance(value, DateFormat):
            return value
        if isinstance(value, Mapping):
            time_zone = value.get("timeZone")
            if time_zone:
                get_timezone(time_zone)
            return cls(pattern=str(value["format"]), time_zone=time_zone)
        return cls(pattern=str(value))


STANDARD_FORMATS = {
    "iso8601": DateFormat("%Y-%m-%dT%H:%M:%S.%LZ", "UTC"),
    "rss": DateFormat("%a, %d %b %Y %H:%M:%S %z"),
    "sitemap": DateFormat("%Y-%m-%d"),
}


def get_timezone(name: str | None) -> tzinfo:
    """Return a tzinfo for a zone name; empty and ``UTC`` map to UTC.

    Raises:
        ValueError: If the zone name is not a known IANA time zone.
    """
    if not name or name.upper() in ("UTC", "Z", "GMT"):
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown time zone `{name}`") from exc


class DateFormatter:
    """Formats epoch timestamps with a single pattern in a fixed time zone."""

    def __init__(self, pattern: str, tz: tzinfo):
        self.pattern = pattern
        self.tz = tz

    def format(self, timestamp: float) -> str:
        moment = datetime.fromtimestamp(timestamp, tz=self.tz)
        pattern = self.pattern.replace("%L", f"{moment.microsecond // 1000:03d}")
        return moment.strftime(pattern)


def prepare_formatters(
    time_zone: str | None,
    formats: Mapping[str, Any] | None = None,
) -> dict[str, DateFormatter]:
    """Build the formatter table for a render pass.

    The table always holds ``date.*`` and ``time.*`` styles plus the standard
    ``iso8601``, ``rss`` and ``sitemap`` formats; ``formats`` adds to or
    overrides them by name. A name that would replace a whole group of
    formats (``date``) or nest below a single format (``rss.short``) is
    skipped with a warning.

    Args:
        time_zone: Site time zone name.
        formats: Extra named formats (pattern strings or mappings).

    Returns:
        Mapping of format name to formatter.
    """
    tz = get_timezone(time_zone)
    formatters: dict[str, DateFormatter] = {}
    for style, pattern in DATE_STYLES.items():
        formatters[f"date.{style}"] = DateFormatter(pattern, tz)
    for style, pattern in TIME_STYLES.items():
        formatters[f"time.{style}"] = DateFormatter(pattern, tz)
    merged: dict[str, Any] = dict(STANDARD_FORMATS)
    merged.update(formats or {})
    for name, value in merged.items():
        if _clashes(name, formatters):
            logger.warning("Skipping date format `%s`: name clashes with another format", name)
            continue
        date_format = DateFormat.from_value(value)
        zone = get_timezone(date_format.time_zone) if date_format.time_zone else tz
        formatters[name] = DateFormatter(date_format.pattern, zone)
    return formatters


def _clashes(name: str, formatters: Mapping[str, DateFormatter]) -> bool:
    if name in formatters:
        return False
    parts = name.split(".")
    if parts[0] == "timestamp" or any(key.startswith(f"{name}.") for key in formatters):
        return True
    return any(".".join(parts[:i]) in formatters for i in range(1, len(parts)))


def to_date_formats(
    timestamp: float, formatters: Mapping[str, DateFormatter]
) -> dict[str, Any]:
    """Format a timestamp with every formatter.

    Dotted formatter names become nested mappings (``date.full`` ends up at
    ``result["date"]["full"]``). The raw timestamp is kept under
    ``timestamp``.
    """
    result: dict[str, Any] = {"timestamp": timestamp}
    for name, formatter in formatters.items():
        target = result
        *parents, leaf = name.split(".")
        for part in parents:
            target = target.setdefault(part, {})
        target[leaf] = formatter.format(timestamp)
    return result


def to_timestamp(value: Any, tz: tzinfo, pattern: str | None = None) -> float | None:
    """Convert a front-matter value to epoch seconds.

    Accepts numbers (already epoch seconds), :class:`datetime` and
    :class:`date` objects (as produced by YAML) and strings, parsed with
    ``pattern`` when given or as ISO 8601 otherwise. Naive values are
    interpreted in ``tz``.

    Returns:
        Epoch seconds, or None if the value cannot be interpreted.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        try:
            if pattern:
                moment = datetime.strptime(text, pattern)
            else:
                moment = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=tz)
    return moment.timestamp()

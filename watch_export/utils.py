"""Utility helpers for the watch-history exporter."""

from __future__ import annotations

import re
from datetime import datetime, timezone

LEGACY_TIMESTAMP_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}) (\d{2}:\d{2}:\d{2}(?:\.\d+)?) UTC$"
)
FRACTION_RE = re.compile(r"\.(\d+)")


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime, treating naive values as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_utc_timestamp(text: str) -> datetime:
    """Parse an RFC 3339 timestamp (or the legacy ``... UTC`` form) into UTC.

    Raises ``ValueError`` for anything without an explicit zone designator.
    """

    value = (text or "").strip()
    if not value:
        raise ValueError("Empty timestamp")

    legacy = LEGACY_TIMESTAMP_RE.match(value)
    if legacy:
        value = f"{legacy.group(1)}T{legacy.group(2)}+00:00"

    if "T" not in value and " " in value:
        value = value.replace(" ", "T", 1)
    if value[-1] in "zZ":
        value = value[:-1] + "+00:00"
    # fromisoformat only accepts up to microsecond precision
    value = FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value, count=1)

    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        raise ValueError(f"Timestamp {text!r} has no UTC offset")
    return parsed.astimezone(timezone.utc)


def format_utc_timestamp(value: datetime) -> str:
    """Render ``value`` as ``YYYY-MM-DDTHH:MM:SSZ``."""

    return ensure_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")

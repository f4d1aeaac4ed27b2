"""Timestamps and ids. All stored times use a fixed UTC+8 offset."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

SHANGHAI = timezone(timedelta(hours=8))


def now() -> datetime:
    return datetime.now(SHANGHAI)


def now_iso() -> str:
    """Current time as ISO-8601 with millisecond precision, e.g. ``2026-02-18T09:30:00.123+08:00``."""
    return now().isoformat(timespec="milliseconds")


def make_id() -> str:
    """Unique record id: ``m_<YYYYmmddTHHMMSS><micros>Z_<6 hex>``."""
    ts = now().strftime("%Y%m%dT%H%M%S%fZ")
    return f"m_{ts}_{secrets.token_hex(3)}"


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; ``None`` when missing or malformed.

    Naive values are taken as UTC+8, a trailing ``Z`` as UTC.
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=SHANGHAI)
    return parsed

"""
Tala - Date Helpers
====================
Parsing and human formatting for the loosely-typed date fields found on
corpus metadata and calendar events (``datetime`` objects from MongoDB,
ISO-8601 strings, or plain ``YYYY-MM-DD`` strings).
"""

from __future__ import annotations

from datetime import date, datetime, time, timezone, tzinfo


def parse_date(value: object) -> datetime | None:
    """Return an aware ``datetime`` for *value*, or ``None`` if it cannot be parsed."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def format_long(value: datetime, tz: tzinfo) -> str:
    """``January 5, 2026``"""
    local = value.astimezone(tz)
    return f"{local:%B} {local.day}, {local.year}"


def format_short(value: datetime, tz: tzinfo) -> str:
    """``Jan 5``"""
    local = value.astimezone(tz)
    return f"{local:%b} {local.day}"


def date_renderings(value: datetime, tz: tzinfo) -> list[str]:
    """All renderings appended to chunk text before model embedding."""
    local = value.astimezone(tz)
    return [format_long(local, tz), f"{local:%b} {local.day}, {local.year}", f"{local:%B} {local.day}", format_short(local, tz)]

"""
Tala - Clock Abstraction
=========================
Every time-driven component (scheduled cache flush, corpus sync loop,
credential cooldowns, calendar windows) reads time through a ``Clock``
so recurrence logic can be exercised in tests without sleeping.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone, tzinfo
from typing import Protocol, runtime_checkable
from zoneinfo import ZoneInfo

from tala.config.settings import settings


@runtime_checkable
class Clock(Protocol):
    """Source of wall-clock time and of (possibly simulated) sleeping."""

    def now(self) -> datetime: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Real time in the configured calendar timezone."""

    __slots__ = ("_tz",)

    def __init__(self, tz: tzinfo | None = None) -> None:
        self._tz = tz or default_timezone()


    def now(self) -> datetime:
        return datetime.now(self._tz)


    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(seconds, 0.0))


def default_timezone() -> tzinfo:
    try:
        return ZoneInfo(settings.CALENDAR_TIMEZONE)
    except (KeyError, ValueError):
        return timezone.utc

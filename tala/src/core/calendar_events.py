"""
Tala - Calendar Events
=======================
Fetches schedule events for calendar-intent queries and converts each
one into a pseudo-``Chunk`` (section ``schedule_events``, type
``calendar_event``) so it can be merged with corpus results and rendered
by the context formatter.

Window
------
Default: ``[now - CALENDAR_LOOKBACK_DAYS, now + CALENDAR_LOOKAHEAD_DAYS]``.
A year named in the query narrows the window to that year; a month plus
a year narrows it to that month, keeping date-range events that overlap
the month.
"""

from __future__ import annotations

import asyncio
import calendar
from collections.abc import Mapping
from datetime import datetime, timedelta, tzinfo
from typing import Any, Protocol

from tala.config.query_vocabulary import CALENDAR_EVENT_TYPE, CALENDAR_SECTION
from tala.config.settings import settings
from tala.src.core.corpus import Chunk
from tala.src.core.query_analyzer import QueryProfile
from tala.src.utils.clock import Clock, SystemClock
from tala.src.utils.date_utils import format_long, parse_date
from tala.src.utils.logger import get_logger, truncate_for_log

logger = get_logger(__name__)


class CalendarService(Protocol):
    async def get_events(self, start_date: datetime, end_date: datetime, limit: int, semester: int | str | None = None) -> list[dict[str, Any]]: ...


def semester_label(semester: object) -> str | None:
    if semester in (None, ""):
        return None
    if semester == 1:
        return "1st Semester"
    if semester == 2:
        return "2nd Semester"
    if semester == "Off":
        return "Off Semester"
    return f"Semester {semester}"


def event_window(profile: QueryProfile, now: datetime, lookback_days: int, lookahead_days: int) -> tuple[datetime, datetime]:
    """Return the ``(start, end)`` fetch window for *profile* in *now*'s timezone."""
    tz = now.tzinfo
    year = profile.requested_year
    if year is not None and profile.requested_month is not None:
        last_day = calendar.monthrange(year, profile.requested_month)[1]
        start = datetime(year, profile.requested_month, 1, tzinfo=tz)
        end = datetime(year, profile.requested_month, last_day, 23, 59, 59, tzinfo=tz)
        return start, end
    if year is not None:
        return datetime(year, 1, 1, tzinfo=tz), datetime(year, 12, 31, 23, 59, 59, tzinfo=tz)
    return now - timedelta(days=lookback_days), now + timedelta(days=lookahead_days)


def _event_bounds(event: Mapping[str, Any]) -> tuple[datetime | None, datetime | None]:
    if event.get("dateType") == "date_range":
        start, end = parse_date(event.get("startDate")), parse_date(event.get("endDate"))
        if start is not None and end is not None:
            return start, end
    single = parse_date(event.get("isoDate") or event.get("date") or event.get("startDate"))
    return single, single


def overlaps(event: Mapping[str, Any], start: datetime, end: datetime) -> bool:
    """``True`` when the event's date (or date range) intersects ``[start, end]``."""
    first, last = _event_bounds(event)
    if first is None or last is None:
        return False
    return first <= end and last >= start


def event_to_chunk(event: Mapping[str, Any], position: int, tz: tzinfo) -> Chunk:
    """Synthesize the pseudo-chunk for one calendar event."""
    title = str(event.get("title") or "Untitled Event")
    when = event.get("isoDate") or event.get("date")
    parsed = parse_date(when)

    parts = [f"{title}."]
    if event.get("description"):
        parts.append(f"{event['description']}.")
    parts.append(f"Date: {format_long(parsed, tz) if parsed else 'Date TBD'}.")
    if event.get("time"):
        parts.append(f"Time: {event['time']}.")
    if event.get("category"):
        parts.append(f"Category: {event['category']}.")
    label = semester_label(event.get("semester"))
    if label:
        parts.append(f"Semester: {label}.")
    range_start, range_end = parse_date(event.get("startDate")), parse_date(event.get("endDate"))
    if event.get("dateType") == "date_range" and range_start and range_end:
        parts.append(f"Date Range: {format_long(range_start, tz)} to {format_long(range_end, tz)}.")

    keywords = [word for word in title.lower().split() if len(word) > 3]
    if event.get("category"):
        keywords.append(str(event["category"]).lower())

    identifier = event.get("_id") or event.get("id") or position
    return Chunk(
        id=f"schedule-{identifier}",
        text=" ".join(parts),
        section=CALENDAR_SECTION,
        type=CALENDAR_EVENT_TYPE,
        category=str(event.get("category") or "general"),
        keywords=tuple(dict.fromkeys(keywords)),
        metadata={
            "title": title,
            "date": when,
            "time": event.get("time"),
            "category": event.get("category"),
            "description": event.get("description"),
            "dateType": event.get("dateType"),
            "startDate": event.get("startDate"),
            "endDate": event.get("endDate"),
            "semester": event.get("semester"),
        },
    )


class CalendarSource:
    """
    Calendar-service wrapper used by the context assembler.

    Never raises: a failing or slow service is logged and yields no
    events, so the context simply has no schedule section.
    """

    def __init__(self, service: CalendarService | None, clock: Clock | None = None, timeout: float | None = None, limit: int | None = None) -> None:
        self._service = service
        self._clock = clock or SystemClock()
        self._timeout = timeout if timeout is not None else settings.EXTERNAL_CALL_TIMEOUT_SECONDS
        self._limit = limit or settings.CALENDAR_EVENT_LIMIT


    async def fetch(self, query: str, profile: QueryProfile) -> list[Chunk]:
        """Return pseudo-chunks for the events relevant to *profile*."""
        if self._service is None:
            return []
        now = self._clock.now()
        start, end = event_window(profile, now, settings.CALENDAR_LOOKBACK_DAYS, settings.CALENDAR_LOOKAHEAD_DAYS)
        try:
            events = await asyncio.wait_for(self._service.get_events(start, end, self._limit, semester=profile.semester), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("[CALENDAR] get_events timed out after %.1fs for '%s'.", self._timeout, truncate_for_log(query))
            return []
        except Exception as exc:
            logger.warning("[CALENDAR] get_events failed for '%s': %s", truncate_for_log(query), exc)
            return []

        if profile.requested_month is not None and profile.requested_year is not None:
            events = [event for event in events if overlaps(event, start, end)]

        tz = now.tzinfo or start.tzinfo
        chunks = []
        for position, event in enumerate(events):
            try:
                chunks.append(event_to_chunk(event, position, tz))
            except (TypeError, ValueError) as exc:
                logger.warning("[CALENDAR] Skipping malformed event #%d: %s", position, exc)
        logger.debug("[CALENDAR] %d event(s) in window %s .. %s for '%s'.", len(chunks), start.date(), end.date(), truncate_for_log(query))
        return chunks

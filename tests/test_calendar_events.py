"""Tests for calendar windows, event chunks and the MongoDB collaborators."""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import MANILA, FakeCalendarService
from tala.src.core.calendar_events import CalendarSource, event_to_chunk, event_window, overlaps, semester_label
from tala.src.core.query_analyzer import QueryProfile, analyze_query
from tala.src.database.mongo_store import MongoCalendarService, MongoCorpusStore, MongoResponseCacheMirror


class TestEventWindow:
    now = datetime(2026, 1, 10, 9, 0, tzinfo=MANILA)

    def test_default_window(self):
        start, end = event_window(QueryProfile(), self.now, 30, 365)
        assert (self.now - start).days == 30
        assert (end - self.now).days == 365

    def test_year_only(self):
        start, end = event_window(QueryProfile(requested_year=2027), self.now, 30, 365)
        assert (start.year, start.month, start.day) == (2027, 1, 1)
        assert (end.month, end.day) == (12, 31)

    def test_month_and_year(self):
        start, end = event_window(QueryProfile(requested_month=2, requested_year=2028), self.now, 30, 365)
        assert (start.month, start.day) == (2, 1)
        assert (end.month, end.day) == (2, 29)


def test_range_overlapping_month_is_kept():
    start = datetime(2026, 3, 1, tzinfo=MANILA)
    end = datetime(2026, 3, 31, 23, 59, 59, tzinfo=MANILA)
    spanning = {"dateType": "date_range", "startDate": "2026-02-25T00:00:00+08:00", "endDate": "2026-03-02T00:00:00+08:00"}
    outside = {"dateType": "date_range", "startDate": "2026-02-01T00:00:00+08:00", "endDate": "2026-02-10T00:00:00+08:00"}
    assert overlaps(spanning, start, end)
    assert not overlaps(outside, start, end)
    assert not overlaps({"title": "no date"}, start, end)


def test_event_to_chunk():
    chunk = event_to_chunk({"_id": "abc", "title": "Foundation Day", "date": "2026-12-13T00:00:00+08:00", "time": "8:00 AM", "category": "Institutional", "semester": "Off"}, 0, MANILA)
    assert chunk.id == "schedule-abc"
    assert chunk.type == "calendar_event"
    assert chunk.section == "schedule_events"
    assert chunk.is_calendar
    assert "Date: December 13, 2026." in chunk.text
    assert "Semester: Off Semester." in chunk.text
    assert chunk.metadata["title"] == "Foundation Day"
    assert "foundation" in chunk.keywords


def test_event_without_id_uses_position():
    assert event_to_chunk({"title": "Untimed"}, 4, MANILA).id == "schedule-4"


def test_semester_labels():
    assert semester_label(1) == "1st Semester"
    assert semester_label(2) == "2nd Semester"
    assert semester_label("Off") == "Off Semester"
    assert semester_label(3) == "Semester 3"
    assert semester_label(None) is None


@pytest.mark.asyncio
async def test_calendar_source_without_service(clock):
    assert await CalendarSource(None, clock=clock).fetch("events", analyze_query("events")) == []


@pytest.mark.asyncio
async def test_calendar_source_timeout(clock, caplog):
    service = MagicMock()

    async def never_returns(*args, **kwargs):
        import asyncio

        await asyncio.sleep(10)

    service.get_events = never_returns
    source = CalendarSource(service, clock=clock, timeout=0.01)
    assert await source.fetch("upcoming events", analyze_query("upcoming events")) == []
    assert "timed out" in caplog.text


@pytest.mark.asyncio
async def test_calendar_source_limit(clock):
    service = FakeCalendarService([])
    await CalendarSource(service, clock=clock, limit=7).fetch("events", analyze_query("events"))
    assert service.calls[0]["limit"] == 7


# ============================================================================
# MongoDB collaborators (collections mocked)
# ============================================================================


@pytest.mark.asyncio
async def test_corpus_store_pulls_in_batches():
    cursor = MagicMock()
    cursor.batch_size.return_value = cursor
    cursor.to_list = AsyncMock(return_value=[{"id": "a"}])
    collection = MagicMock()
    collection.find.return_value = cursor
    assert await MongoCorpusStore(collection, batch_size=50).get_all_chunks() == [{"id": "a"}]
    cursor.batch_size.assert_called_once_with(50)
    cursor.to_list.assert_awaited_once_with(length=None)


def test_calendar_filter():
    start = datetime(2026, 3, 1, tzinfo=MANILA)
    end = datetime(2026, 3, 31, tzinfo=MANILA)
    query = MongoCalendarService.build_filter(start, end, semester=1)
    assert query["semester"] == 1
    assert {"dateType": "date_range", "startDate": {"$lte": end}, "endDate": {"$gte": start}} in query["$or"]
    assert "semester" not in MongoCalendarService.build_filter(start, end)


@pytest.mark.asyncio
async def test_calendar_service_sorts_and_limits():
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=[])
    collection = MagicMock()
    collection.find.return_value = cursor
    start, end = datetime(2026, 1, 1, tzinfo=MANILA), datetime(2026, 12, 31, tzinfo=MANILA)
    await MongoCalendarService(collection).get_events(start, end, 100)
    cursor.limit.assert_called_once_with(100)


@pytest.mark.asyncio
async def test_response_mirror_upserts_with_expiry():
    collection = MagicMock()
    collection.update_one = AsyncMock()
    await MongoResponseCacheMirror(collection).cache_response("date enrollment", "January 5", tag="schedule", ttl=60)
    filter_, update = collection.update_one.await_args.args
    assert filter_ == {"query": "date enrollment"}
    assert update["$set"]["response"] == "January 5"
    assert (update["$set"]["expires_at"] - update["$set"]["cached_at"]).total_seconds() == 60
    assert collection.update_one.await_args.kwargs == {"upsert": True}


@pytest.mark.asyncio
async def test_response_mirror_miss():
    collection = MagicMock()
    collection.find_one = AsyncMock(return_value=None)
    assert await MongoResponseCacheMirror(collection).get_cached_response("q") is None

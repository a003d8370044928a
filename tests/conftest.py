"""Pytest configuration and shared fixtures."""

import os

# Settings are loaded at import time; provide the required values first.
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017/tala-test")
os.environ.setdefault("GOOGLE_API_KEYS", "")
os.environ.setdefault("ENV", "dev")

import asyncio  # noqa: E402
from datetime import datetime, timedelta  # noqa: E402
from zoneinfo import ZoneInfo  # noqa: E402

import pytest  # noqa: E402

from tala.src.core.corpus import Chunk  # noqa: E402

MANILA = ZoneInfo("Asia/Manila")


class ManualClock:
    """Clock whose time only moves when a test says so."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 10, 9, 0, tzinfo=MANILA)
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self.current

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds=max(seconds, 0))
        await asyncio.sleep(0)

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


class FakeCorpusStore:
    def __init__(self, documents=None, error: Exception | None = None) -> None:
        self.documents = list(documents or [])
        self.error = error
        self.calls = 0

    async def get_all_chunks(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.documents)


class FakeCalendarService:
    def __init__(self, events=None, error: Exception | None = None) -> None:
        self.events = list(events or [])
        self.error = error
        self.calls: list[dict] = []

    async def get_events(self, start_date, end_date, limit, semester=None):
        self.calls.append({"start_date": start_date, "end_date": end_date, "limit": limit, "semester": semester})
        if self.error is not None:
            raise self.error
        return list(self.events)


def make_chunk(id: str, text: str, section: str = "general", type: str = "info", keywords=(), metadata=None, embedding=None) -> Chunk:
    return Chunk(id=id, text=text, section=section, type=type, keywords=tuple(keywords), metadata=metadata or {}, embedding=tuple(embedding) if embedding is not None else None)


def make_doc(id: str, content: str, **fields) -> dict:
    return {"id": id, "content": content, **fields}


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def faculty_docs() -> list[dict]:
    return [
        make_doc("fac-1", "One of the faculties of the university: Faculty of Computing, Data Sciences, Engineering and Technology.", section="faculties", type="faculty", keywords=["faculties", "computing"]),
        make_doc("fac-2", "One of the faculties of the university: Faculty of Agriculture and Life Sciences.", section="faculties", type="faculty", keywords=["faculties", "agriculture"]),
        make_doc("fac-3", "One of the faculties of the university: Faculty of Teacher Education.", section="faculties", type="faculty", keywords=["faculties", "education"]),
        make_doc("hist-1", "The history of the university began in 1989 when it was founded as a state college in Mati City.", section="history", type="history", keywords=["history", "founded"]),
        make_doc("vm-1", "Vision: a university of excellence, innovation and inclusion.", section="vision_mission", type="vision", keywords=["vision"]),
        make_doc("vm-2", "Mission: DOrSU dedicates itself to the sustainable development of Davao Oriental.", section="vision_mission", type="mission", keywords=["mission"]),
        make_doc("suast-1", "The SUAST passing rate for the last admission cycle was 62 percent.", section="admissions", type="info", keywords=["suast", "admission"]),
    ]


@pytest.fixture
def corpus_store(faculty_docs) -> FakeCorpusStore:
    return FakeCorpusStore(faculty_docs)

"""
Tala - MongoDB Collaborators
=============================
``motor``-backed implementations of the three external interfaces the
context engine consumes:

``MongoCorpusStore``
    ``get_all_chunks()``: full corpus pull, batched by
    ``CORPUS_PULL_BATCH_SIZE``.

``MongoCalendarService``
    ``get_events(start, end, limit, semester)``: single-date events whose
    date falls in the window plus date-range events overlapping it.

``MongoResponseCacheMirror``
    Optional persistent copy of generated responses with a TTL index on
    ``expires_at``.  The in-memory cache is always consulted first.

All three share one module-level ``AsyncIOMotorClient``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import motor.motor_asyncio

from tala.config.settings import settings
from tala.src.utils.logger import get_logger

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  MONGODB SINGLETON CLIENT
# ══════════════════════════════════════════════════════════════════════

_mongo_client: motor.motor_asyncio.AsyncIOMotorClient | None = None


def _get_mongo_client() -> motor.motor_asyncio.AsyncIOMotorClient:
    """Return (or create) the module-level async MongoDB client."""
    global _mongo_client
    if _mongo_client is None:
        _mongo_client = motor.motor_asyncio.AsyncIOMotorClient(settings.MONGO_URI.get_secret_value())
        logger.info("MongoDB async client created (singleton).")
    return _mongo_client


def _collection(name: str) -> Any:
    return _get_mongo_client()[settings.MONGO_DB_NAME][name]


# ══════════════════════════════════════════════════════════════════════
#  CORPUS
# ══════════════════════════════════════════════════════════════════════


class MongoCorpusStore:
    """Reads the knowledge-chunk collection."""

    __slots__ = ("_collection", "_batch_size")

    def __init__(self, collection: Any = None, batch_size: int | None = None) -> None:
        self._collection = collection if collection is not None else _collection(settings.CHUNKS_COLLECTION)
        self._batch_size = batch_size or settings.CORPUS_PULL_BATCH_SIZE


    async def get_all_chunks(self) -> list[dict[str, Any]]:
        cursor = self._collection.find({}).batch_size(self._batch_size)
        documents = await cursor.to_list(length=None)
        logger.debug("[SYNC] Pulled %d document(s) from '%s'.", len(documents), settings.CHUNKS_COLLECTION)
        return documents


# ══════════════════════════════════════════════════════════════════════
#  CALENDAR
# ══════════════════════════════════════════════════════════════════════


class MongoCalendarService:
    """Reads the schedule-events collection."""

    __slots__ = ("_collection",)

    def __init__(self, collection: Any = None) -> None:
        self._collection = collection if collection is not None else _collection(settings.EVENTS_COLLECTION)


    @staticmethod
    def build_filter(start_date: datetime, end_date: datetime, semester: int | str | None = None) -> dict[str, Any]:
        query: dict[str, Any] = {
            "$or": [
                {"isoDate": {"$gte": start_date, "$lte": end_date}},
                {"date": {"$gte": start_date, "$lte": end_date}},
                {"dateType": "date_range", "startDate": {"$lte": end_date}, "endDate": {"$gte": start_date}},
            ]
        }
        if semester is not None:
            query["semester"] = semester
        return query


    async def get_events(self, start_date: datetime, end_date: datetime, limit: int, semester: int | str | None = None) -> list[dict[str, Any]]:
        cursor = self._collection.find(self.build_filter(start_date, end_date, semester)).sort([("isoDate", 1), ("startDate", 1)]).limit(limit)
        return await cursor.to_list(length=limit)


# ══════════════════════════════════════════════════════════════════════
#  RESPONSE CACHE MIRROR
# ══════════════════════════════════════════════════════════════════════


class MongoResponseCacheMirror:
    """
    Persistent response cache keyed by normalised query.

    Collection schema (``ai_response_cache``)::

        {
            "query": str,
            "response": str,
            "tag": str,
            "cached_at": datetime,
            "expires_at": datetime
        }
    """

    __slots__ = ("_collection",)

    def __init__(self, collection: Any = None) -> None:
        self._collection = collection if collection is not None else _collection(settings.RESPONSE_CACHE_COLLECTION)


    async def ensure_indexes(self) -> None:
        await self._collection.create_index("query", unique=True)
        await self._collection.create_index("expires_at", expireAfterSeconds=0)


    async def cache_response(self, normalized_query: str, value: str, tag: str = "general", ttl: int | None = None) -> None:
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(seconds=ttl if ttl is not None else settings.RESPONSE_CACHE_TTL_SECONDS)
        await self._collection.update_one({"query": normalized_query}, {"$set": {"response": value, "tag": tag, "cached_at": now, "expires_at": expires_at}}, upsert=True)


    async def get_cached_response(self, normalized_query: str) -> str | None:
        doc = await self._collection.find_one({"query": normalized_query, "expires_at": {"$gt": datetime.now(timezone.utc)}})
        if doc is None:
            return None
        return doc.get("response")

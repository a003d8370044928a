"""
Tala - Context Engine
======================
Public facade of the retrieval layer.  Wires the corpus snapshot, the
ranking strategies, the calendar source, the caches and the two periodic
tasks (corpus sync, scheduled cache flush) together.

Architecture
------------
``ChunkStore`` ← ``CorpusSyncScheduler`` (every ``CORPUS_SYNC_INTERVAL_SECONDS``)
``ContextAssembler``
    ├── ``VectorStrategy``  (``EmbeddingService`` + FAISS index)
    ├── ``KeywordStrategy`` (``KeywordScorer``)
    ├── ``CalendarSource``  (calendar service)
    └── ``ContextFormatter``
``ContextCache`` / ``SearchCache`` / ``ResponseCache`` ← ``CacheFlushScheduler`` (``CACHE_CLEAR_TIMES``)

Operations
----------
get_context_for_topic(query, max_tokens, max_sections, suggest_more) -> str
clear_cache()
get_cache_stats() -> {hits, misses, total, hit_rate, keys, ...}
force_sync_mongodb() -> bool
cache_ai_response(query, response, tag) / get_cached_ai_response(query)
start() / stop()

Request handling never raises: every failure degrades to a smaller
context, ultimately the fixed identity fallback block.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol

from tala.config.query_vocabulary import FALLBACK_IDENTITY_BLOCK
from tala.config.settings import settings
from tala.src.core.cache import CacheFlushScheduler, ContextCache, ResponseCache, SearchCache, parse_flush_times
from tala.src.core.calendar_events import CalendarService, CalendarSource
from tala.src.core.context_assembler import ContextAssembler
from tala.src.core.context_formatter import ContextFormatter
from tala.src.core.corpus import ChunkStore, CorpusSnapshot
from tala.src.core.embedder import EmbeddingService, build_default_model
from tala.src.core.keyword_scorer import KeywordScorer
from tala.src.core.ranking import KeywordStrategy, VectorStrategy
from tala.src.core.sync import CorpusStore, CorpusSyncScheduler
from tala.src.database.vector_index import IndexFactory
from tala.src.utils.clock import Clock, SystemClock, default_timezone
from tala.src.utils.logger import get_logger, truncate_for_log
from tala.src.utils.text_utils import normalize_query

logger = get_logger(__name__)


class ResponseCacheMirror(Protocol):
    async def cache_response(self, normalized_query: str, value: str, tag: str = "general", ttl: int | None = None) -> None: ...

    async def get_cached_response(self, normalized_query: str) -> str | None: ...


class ContextEngine:
    """
    Parameters
    ----------
    corpus_source
        Corpus store (``get_all_chunks``).
    calendar_service
        Optional calendar collaborator; ``None`` disables schedule events.
    response_mirror
        Optional persistent response cache.
    embedder
        Embedding service; defaults to hashing-only at ``EMBEDDING_DIMENSION``.
    clock
        Time source for sync bookkeeping, calendar windows and flushes.
    flush_times
        Comma-separated ``HH:MM`` list; defaults to ``CACHE_CLEAR_TIMES``.
    """

    def __init__(self, corpus_source: CorpusStore, calendar_service: CalendarService | None = None, response_mirror: ResponseCacheMirror | None = None, embedder: EmbeddingService | None = None, clock: Clock | None = None, flush_times: str | None = None, index_factory: IndexFactory | None = None) -> None:
        self._clock = clock or SystemClock()
        self._embedder = embedder or EmbeddingService()
        dimension = self._embedder.dimension
        tz = self._clock.now().tzinfo or default_timezone()

        self._store = ChunkStore(CorpusSnapshot.empty(dimension))
        self._context_cache = ContextCache()
        self._search_cache = SearchCache()
        self._response_cache = ResponseCache()
        self._mirror = response_mirror

        vector = VectorStrategy(self._embedder, search_cache=self._search_cache, key_max_length=settings.CACHE_KEY_MAX_LENGTH)
        keyword = KeywordStrategy(KeywordScorer())
        self._assembler = ContextAssembler(self._store, self._context_cache, vector, keyword, CalendarSource(calendar_service, clock=self._clock), ContextFormatter(tz))

        caches = [self._context_cache, self._search_cache, self._response_cache]
        self._sync = CorpusSyncScheduler(corpus_source, self._store, caches, dimension=dimension, clock=self._clock, index_factory=index_factory)
        self._flush = CacheFlushScheduler(caches, parse_flush_times(flush_times if flush_times is not None else settings.CACHE_CLEAR_TIMES), clock=self._clock)


    @classmethod
    def from_settings(cls) -> ContextEngine:
        """Production wiring: MongoDB collaborators and the Gemini embedder."""
        from tala.src.database.mongo_store import MongoCalendarService, MongoCorpusStore, MongoResponseCacheMirror

        embedder = EmbeddingService(model=build_default_model(settings.EMBEDDING_DIMENSION))
        logger.info("[ENGINE] Embeddings: %s (dimension=%d).", settings.EMBEDDING_MODEL if embedder.model_enabled else "hashing", embedder.dimension)
        return cls(MongoCorpusStore(), calendar_service=MongoCalendarService(), response_mirror=MongoResponseCacheMirror(), embedder=embedder)

    # ── Accessors ──────────────────────────────────────────────────────

    @property
    def store(self) -> ChunkStore:
        return self._store


    @property
    def context_cache(self) -> ContextCache:
        return self._context_cache


    @property
    def search_cache(self) -> SearchCache:
        return self._search_cache


    @property
    def response_cache(self) -> ResponseCache:
        return self._response_cache


    @property
    def flush_scheduler(self) -> CacheFlushScheduler:
        return self._flush


    @property
    def sync_scheduler(self) -> CorpusSyncScheduler:
        return self._sync

    # ══════════════════════════════════════════════════════════════════
    #  LIFECYCLE
    # ══════════════════════════════════════════════════════════════════

    async def start(self) -> None:
        """Initial corpus pull, then the periodic sync and flush tasks."""
        await self._sync.sync_once()
        self._sync.start()
        self._flush.start()


    async def stop(self) -> None:
        await self._sync.stop()
        await self._flush.stop()

    # ══════════════════════════════════════════════════════════════════
    #  CONTEXT
    # ══════════════════════════════════════════════════════════════════

    async def get_context_for_topic(self, query: str, max_tokens: int | None = None, max_sections: int | None = None, suggest_more: bool = False) -> str:
        try:
            return await self._assembler.assemble(query, max_tokens=max_tokens, max_sections=max_sections, suggest_more=suggest_more)
        except Exception:
            logger.exception("[CONTEXT] Assembly failed for '%s'; returning identity fallback.", truncate_for_log(query))
            return FALLBACK_IDENTITY_BLOCK


    async def force_sync_mongodb(self) -> bool:
        """Run one corpus sync now; ``True`` when a new snapshot was published."""
        return await self._sync.sync_once()

    # ══════════════════════════════════════════════════════════════════
    #  CACHE
    # ══════════════════════════════════════════════════════════════════

    def clear_cache(self) -> None:
        """Manual flush of every in-memory cache.  Hit/miss counters are kept."""
        self._context_cache.flush_all(reason="manual")
        self._search_cache.flush_all(reason="manual")
        self._response_cache.flush_all(reason="manual")


    def get_cache_stats(self) -> dict[str, Any]:
        stats = self._context_cache.stats()
        total = stats["hits"] + stats["misses"]
        return {
            "hits": stats["hits"],
            "misses": stats["misses"],
            "total": total,
            "hit_rate": round(stats["hits"] / total, 4) if total else 0.0,
            "keys": stats["entry_count"],
            "response_keys": len(self._response_cache),
            "corpus_chunks": len(self._store.current()),
            "last_sync_at": self._sync.last_sync_at.isoformat() if self._sync.last_sync_at else None,
            "last_sync_chunk_count": self._sync.last_sync_chunk_count,
        }


    async def cache_ai_response(self, query: str, response: str, tag: str = "general") -> None:
        key = normalize_query(query, settings.CACHE_KEY_MAX_LENGTH)
        self._response_cache.put(key, response, tag=tag)
        if self._mirror is None:
            return
        try:
            await asyncio.wait_for(self._mirror.cache_response(key, response, tag=tag, ttl=settings.RESPONSE_CACHE_TTL_SECONDS), timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS)
        except Exception as exc:
            logger.warning("[CACHE] Response mirror write failed for '%s': %s", truncate_for_log(query), exc or type(exc).__name__)


    async def get_cached_ai_response(self, query: str) -> str | None:
        key = normalize_query(query, settings.CACHE_KEY_MAX_LENGTH)
        entry = self._response_cache.get(key)
        if entry is not None:
            return entry.value
        if self._mirror is None:
            return None
        try:
            value = await asyncio.wait_for(self._mirror.get_cached_response(key), timeout=settings.EXTERNAL_CALL_TIMEOUT_SECONDS)
        except Exception as exc:
            logger.warning("[CACHE] Response mirror read failed for '%s': %s", truncate_for_log(query), exc or type(exc).__name__)
            return None
        if value is not None:
            self._response_cache.put(key, value, tag="mirror")
        return value

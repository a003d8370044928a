"""
Tala - Corpus Sync
===================
Periodically pulls the authoritative corpus, builds a fresh
``CorpusSnapshot`` off to the side and hot-swaps it into the
``ChunkStore``.

Rules
-----
- Zero documents pulled → current snapshot kept, warning logged.
- Malformed documents are skipped individually.
- A successful swap flushes every cache (counters are kept; this is
  not the scheduled flush).
- Any failure is logged; the next tick retries.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime
from typing import Any, Protocol

from tala.config.settings import settings
from tala.src.core.cache import InsertionOrderedCache
from tala.src.core.corpus import Chunk, ChunkStore, CorpusSnapshot
from tala.src.database.vector_index import IndexFactory
from tala.src.utils.clock import Clock, SystemClock
from tala.src.utils.logger import get_logger

logger = get_logger(__name__)


class CorpusStore(Protocol):
    async def get_all_chunks(self) -> list[dict[str, Any]]: ...


def to_chunks(documents: Sequence[dict[str, Any]]) -> list[Chunk]:
    """Convert raw documents, skipping (and logging) the malformed ones."""
    chunks = []
    for position, doc in enumerate(documents):
        try:
            chunks.append(Chunk.from_store(doc))
        except (TypeError, ValueError) as exc:
            logger.warning("[SYNC] Skipping malformed document #%d (%s): %s", position, doc.get("_id", doc.get("id", "?")) if isinstance(doc, dict) else "?", exc)
    return chunks


class CorpusSyncScheduler:
    """
    Parameters
    ----------
    source
        Corpus store collaborator.
    store
        Chunk store receiving new snapshots.
    caches
        Flushed after every successful swap.
    dimension
        Embedding dimension D used to build the vector index.
    interval
        Seconds between pulls.
    """

    def __init__(self, source: CorpusStore, store: ChunkStore, caches: Sequence[InsertionOrderedCache[Any]], dimension: int | None = None, interval: float | None = None, clock: Clock | None = None, timeout: float | None = None, index_factory: IndexFactory | None = None) -> None:
        self._source = source
        self._store = store
        self._caches = list(caches)
        self._dimension = dimension or settings.EMBEDDING_DIMENSION
        self._interval = interval if interval is not None else settings.CORPUS_SYNC_INTERVAL_SECONDS
        self._clock = clock or SystemClock()
        self._timeout = timeout if timeout is not None else settings.EXTERNAL_CALL_TIMEOUT_SECONDS
        self._index_factory = index_factory
        self._task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()
        self.last_sync_at: datetime | None = None
        self.last_sync_chunk_count = 0


    async def sync_once(self) -> bool:
        """Run one pull-build-publish cycle; ``True`` when a new snapshot was published."""
        async with self._lock:
            try:
                documents = await asyncio.wait_for(self._source.get_all_chunks(), timeout=self._timeout)
            except Exception as exc:
                logger.warning("[SYNC] Corpus pull failed: %s; keeping current snapshot.", exc or type(exc).__name__)
                return False

            if not documents:
                logger.warning("[SYNC] Corpus pull returned 0 documents; keeping current snapshot.")
                return False

            try:
                chunks = to_chunks(documents)
                if not chunks:
                    logger.warning("[SYNC] All %d pulled document(s) were malformed; keeping current snapshot.", len(documents))
                    return False
                snapshot = await asyncio.to_thread(CorpusSnapshot.build, chunks, self._dimension, self._index_factory)
            except Exception:
                logger.exception("[SYNC] Snapshot build failed; keeping current snapshot.")
                return False

            self._store.publish(snapshot)
            for cache in self._caches:
                cache.flush_all(reason="corpus sync")

            self.last_sync_at = self._clock.now()
            self.last_sync_chunk_count = len(snapshot)
            return True


    async def _loop(self) -> None:
        while True:
            await self._clock.sleep(self._interval)
            await self.sync_once()


    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._loop(), name="corpus-sync")
            logger.info("[SYNC] Periodic corpus sync every %ss.", self._interval)


    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)


    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

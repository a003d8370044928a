"""
Tala - Ranking Strategies
==========================
Each retrieval source is a ``RankingStrategy`` whose ``try_rank`` returns
a ``RankResult``: either a ranked list or *unavailable*.  A
``RankingCoordinator`` walks an ordered list of strategies and returns
the first non-empty ranking, logging every degradation on the way.

Default chains
--------------
standard queries       : vector → keyword
comprehensive/listing  : comprehensive (vector ∪ keyword) → keyword
exact section queries  : exact_section (prepended by the assembler)
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from tala.src.core.cache import SearchCache
from tala.src.core.corpus import CorpusSnapshot, RankedChunk
from tala.src.core.embedder import EmbeddingService
from tala.src.core.keyword_scorer import KeywordScorer
from tala.src.core.query_analyzer import detect_exact_section
from tala.src.database.vector_index import SearchHit, VectorIndex
from tala.src.utils.logger import get_logger, truncate_for_log
from tala.src.utils.text_utils import build_cache_key, normalize_query

logger = get_logger(__name__)

# Similarity in (0, 1] is scaled onto the keyword scorer's range.
VECTOR_SCORE_SCALE = 100.0
EXACT_SECTION_SCORE = 1000.0


@dataclass(frozen=True)
class RankResult:
    """Outcome of one strategy: ``ranked`` is ``None`` when the source is unavailable."""

    ranked: list[RankedChunk] | None

    @property
    def ok(self) -> bool:
        return self.ranked is not None


    @classmethod
    def unavailable(cls) -> RankResult:
        return cls(ranked=None)


class RankingStrategy(Protocol):
    name: str

    async def try_rank(self, query: str, snapshot: CorpusSnapshot, limit: int) -> RankResult: ...


# ══════════════════════════════════════════════════════════════════════
#  STRATEGIES
# ══════════════════════════════════════════════════════════════════════


class VectorStrategy:
    """
    k-NN over the snapshot's vector index.

    Raw ``(row, distance)`` hits are cached in a ``SearchCache`` under
    the ``search:`` namespace, keyed by query, ``k`` and snapshot version.
    """

    name = "vector"

    def __init__(self, embedder: EmbeddingService, search_cache: SearchCache | None = None, key_max_length: int = 200) -> None:
        self._embedder = embedder
        self._search_cache = search_cache
        self._key_max_length = key_max_length


    async def _hits(self, query: str, snapshot: CorpusSnapshot, limit: int) -> list[SearchHit]:
        key = build_cache_key("search", normalize_query(query, self._key_max_length), k=limit, v=snapshot.version)
        if self._search_cache is not None:
            cached = self._search_cache.peek(key)
            if cached is not None:
                return cached

        vector = await self._embedder.aembed(query)
        hits = await asyncio.to_thread(snapshot.index.search, vector, limit)
        if self._search_cache is not None:
            self._search_cache.set(key, hits)
        return hits


    async def try_rank(self, query: str, snapshot: CorpusSnapshot, limit: int) -> RankResult:
        if not snapshot.vector_ready:
            return RankResult.unavailable()
        try:
            hits = await self._hits(query, snapshot, limit)
        except Exception as exc:
            logger.warning("[RANK] Vector search failed for '%s': %s", truncate_for_log(query), exc)
            return RankResult.unavailable()

        rows = snapshot.vector_chunks
        ranked = [RankedChunk(chunk=rows[row], score=VectorIndex.similarity(distance) * VECTOR_SCORE_SCALE, source=self.name) for row, distance in hits if 0 <= row < len(rows)]
        return RankResult(ranked)


class KeywordStrategy:
    name = "keyword"

    def __init__(self, scorer: KeywordScorer | None = None) -> None:
        self._scorer = scorer or KeywordScorer()


    async def try_rank(self, query: str, snapshot: CorpusSnapshot, limit: int) -> RankResult:
        return RankResult(self._scorer.search(query, snapshot.chunks, limit))


class ComprehensiveStrategy:
    """Union of vector and keyword rankings, de-duplicated by chunk id."""

    name = "comprehensive"

    def __init__(self, vector: VectorStrategy, keyword: KeywordStrategy) -> None:
        self._vector = vector
        self._keyword = keyword


    async def try_rank(self, query: str, snapshot: CorpusSnapshot, limit: int) -> RankResult:
        keyword_result = await self._keyword.try_rank(query, snapshot, limit)
        vector_result = await self._vector.try_rank(query, snapshot, limit)
        if not keyword_result.ok and not vector_result.ok:
            return RankResult.unavailable()

        # Keyword entries go in first: they win duplicates and equal-score ties.
        merged: dict[str, RankedChunk] = {}
        for ranked in (keyword_result.ranked or []) + (vector_result.ranked or []):
            merged.setdefault(ranked.chunk.id, ranked)

        combined = sorted(merged.values(), key=lambda ranked: ranked.score, reverse=True)
        logger.debug("[RANK] Comprehensive merge: %d keyword + %d vector -> %d unique.", len(keyword_result.ranked or []), len(vector_result.ranked or []), len(combined))
        return RankResult(combined[:limit])


class ExactSectionStrategy:
    """
    Vision/mission style fast path: every chunk of the routed section gets
    the same maximum score.  Relative order inside the section is corpus
    order.
    """

    name = "exact_section"

    async def try_rank(self, query: str, snapshot: CorpusSnapshot, limit: int) -> RankResult:
        section = detect_exact_section(query)
        if section is None:
            return RankResult.unavailable()
        matches = [RankedChunk(chunk=chunk, score=EXACT_SECTION_SCORE, source=self.name) for chunk in snapshot.chunks if chunk.section == section]
        if not matches:
            return RankResult.unavailable()
        return RankResult(matches[:limit])


# ══════════════════════════════════════════════════════════════════════
#  COORDINATOR
# ══════════════════════════════════════════════════════════════════════


class RankingCoordinator:
    """Walk *strategies* in order; the first one producing results wins."""

    def __init__(self, strategies: Sequence[RankingStrategy]) -> None:
        if not strategies:
            raise ValueError("RankingCoordinator needs at least one strategy")
        self._strategies = list(strategies)


    @property
    def strategy_names(self) -> list[str]:
        return [strategy.name for strategy in self._strategies]


    async def rank(self, query: str, snapshot: CorpusSnapshot, limit: int) -> list[RankedChunk]:
        for position, strategy in enumerate(self._strategies):
            result = await strategy.try_rank(query, snapshot, limit)
            if result.ok and result.ranked:
                return result.ranked
            if position + 1 < len(self._strategies):
                reason = "unavailable" if not result.ok else "no results"
                logger.info("[RANK] %s %s for '%s'; falling back to %s.", strategy.name, reason, truncate_for_log(query), self._strategies[position + 1].name)
        return []

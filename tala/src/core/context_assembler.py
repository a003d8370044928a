"""
Tala - Context Assembler
=========================
Turns a user query into one rendered, token-bounded context string.

Pipeline (per request)
----------------------
1. Normalise the query and derive the cache key; a hit returns at once.
2. Classify the query (``QueryProfile``).
3. Rank the current snapshot:
     • comprehensive/listing → vector ∪ keyword with an expanded cap,
       narrowed to the named section when it has matches;
     • otherwise            → vector, falling back to keyword;
     • vision/mission style → the routed section's chunks go first.
4. Calendar-intent queries fetch schedule events and prepend them.
5. Render under the token budget.
6. Cache and return.

The snapshot reference is taken once at step 3 and used throughout, so
a concurrent sync can never mix two corpora into one answer.
"""

from __future__ import annotations

from collections.abc import Sequence

from tala.config.settings import settings
from tala.src.core.cache import ContextCache
from tala.src.core.calendar_events import CalendarSource
from tala.src.core.context_formatter import MIN_MAX_TOKENS, ContextFormatter
from tala.src.core.corpus import Chunk, ChunkStore, RankedChunk
from tala.src.core.query_analyzer import QueryProfile, analyze_query
from tala.src.core.ranking import ComprehensiveStrategy, ExactSectionStrategy, KeywordStrategy, RankingCoordinator, VectorStrategy
from tala.src.utils.logger import get_logger, truncate_for_log
from tala.src.utils.text_utils import build_cache_key, normalize_query

logger = get_logger(__name__)

MIN_EXPANDED_CAP = 30
EXPANSION_FACTOR = 3


def expanded_cap(max_sections: int) -> int:
    return max(EXPANSION_FACTOR * max_sections, MIN_EXPANDED_CAP)


def _dedupe(ranked: Sequence[RankedChunk]) -> list[RankedChunk]:
    seen: set[str] = set()
    unique = []
    for item in ranked:
        if item.chunk.id not in seen:
            seen.add(item.chunk.id)
            unique.append(item)
    return unique


class ContextAssembler:
    """
    Parameters
    ----------
    store
        Owner of the current ``CorpusSnapshot``.
    cache
        Context cache (rendered strings).
    vector, keyword
        Ranking strategies; the coordinators are built from them.
    calendar
        Calendar source for calendar-intent queries.
    formatter
        Budgeted renderer.
    """

    def __init__(self, store: ChunkStore, cache: ContextCache, vector: VectorStrategy, keyword: KeywordStrategy, calendar: CalendarSource, formatter: ContextFormatter, key_max_length: int | None = None) -> None:
        self._store = store
        self._cache = cache
        self._calendar = calendar
        self._formatter = formatter
        self._key_max_length = key_max_length or settings.CACHE_KEY_MAX_LENGTH
        self._standard = RankingCoordinator([vector, keyword])
        self._comprehensive = RankingCoordinator([ComprehensiveStrategy(vector, keyword), keyword])
        self._exact = ExactSectionStrategy()


    def cache_key(self, query: str, max_tokens: int, max_sections: int, suggest_more: bool) -> str:
        return build_cache_key("context", normalize_query(query, self._key_max_length), tokens=max_tokens, sections=max_sections, suggest=suggest_more)


    async def _rank(self, query: str, profile: QueryProfile, max_sections: int) -> list[Chunk]:
        snapshot = self._store.current()
        limit = max(1, min(max_sections, len(snapshot))) if len(snapshot) else 0

        ranked: list[RankedChunk] = []
        if limit:
            if profile.wants_expansion:
                ranked = await self._comprehensive.rank(query, snapshot, expanded_cap(limit))
                if profile.named_section:
                    in_section = [item for item in ranked if item.chunk.section == profile.named_section]
                    if in_section:
                        logger.debug("[CONTEXT] Section filter '%s': %d -> %d.", profile.named_section, len(ranked), len(in_section))
                        ranked = in_section
            else:
                ranked = await self._standard.rank(query, snapshot, limit)

            if profile.exact_section:
                exact = await self._exact.try_rank(query, snapshot, limit)
                if exact.ok:
                    ranked = _dedupe((exact.ranked or []) + ranked)

        chunks = [item.chunk for item in ranked]
        if profile.is_calendar:
            events = await self._calendar.fetch(query, profile)
            chunks = events + chunks
        return chunks


    async def assemble(self, query: str, max_tokens: int | None = None, max_sections: int | None = None, suggest_more: bool = False) -> str:
        """Return the rendered context for *query* (never raises for request data)."""
        max_tokens = settings.DEFAULT_MAX_TOKENS if max_tokens is None else max(MIN_MAX_TOKENS, max_tokens)
        max_sections = settings.DEFAULT_MAX_SECTIONS if max_sections is None else max(1, max_sections)

        key = self.cache_key(query, max_tokens, max_sections, suggest_more)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("[CONTEXT] Cache hit for '%s'.", truncate_for_log(query))
            return cached

        profile = analyze_query(query)
        chunks = await self._rank(query, profile, max_sections)
        context = self._formatter.render(chunks, profile, max_tokens, suggest_more=suggest_more)

        self._cache.set(key, context)
        logger.info("[CONTEXT] Assembled %d chunk(s), ~%d tokens for '%s'.", len(chunks), round(len(context) / 4), truncate_for_log(query))
        return context

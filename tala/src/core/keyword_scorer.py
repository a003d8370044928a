"""
Tala - Keyword Scorer
======================
Additive token-overlap scoring used when vector search is unavailable,
and as the second merge input for comprehensive queries.

Scoring policy (per chunk)
--------------------------
+2  per whole-word occurrence of each query token in the chunk text
+5  per chunk keyword that contains, or is contained by, a query token
+3  per query token found in the serialised metadata
+50 calendar-intent query and calendar-typed chunk
+20 calendar-typed chunk and the query carries a date term
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence

from tala.src.core.corpus import Chunk, RankedChunk
from tala.src.core.query_analyzer import has_date_term, is_calendar_query
from tala.src.utils.text_utils import tokenize

TEXT_OCCURRENCE_WEIGHT = 2.0
KEYWORD_MATCH_WEIGHT = 5.0
METADATA_MATCH_WEIGHT = 3.0
CALENDAR_INTENT_BOOST = 50.0
DATE_TERM_BOOST = 20.0


class KeywordScorer:
    """Stateless heuristic scorer; one instance is shared by every request."""

    __slots__ = ()

    def score(self, query: str, chunk: Chunk) -> float:
        """Return the additive score of *chunk* for *query* (always ``>= 0``)."""
        tokens = tokenize(query)
        text = chunk.text.lower()
        keywords = [keyword.lower() for keyword in chunk.keywords if keyword.strip()]
        metadata = json.dumps(chunk.metadata, sort_keys=True, default=str).lower() if chunk.metadata else ""

        total = 0.0
        for token in tokens:
            occurrences = len(re.findall(r"\b" + re.escape(token) + r"\b", text))
            total += TEXT_OCCURRENCE_WEIGHT * occurrences
            total += KEYWORD_MATCH_WEIGHT * sum(1 for keyword in keywords if token in keyword or keyword in token)
            if metadata and token in metadata:
                total += METADATA_MATCH_WEIGHT

        if chunk.is_calendar:
            if is_calendar_query(query):
                total += CALENDAR_INTENT_BOOST
            if has_date_term(query):
                total += DATE_TERM_BOOST
        return total


    def search(self, query: str, corpus: Sequence[Chunk], max_results: int) -> list[RankedChunk]:
        """
        Rank *corpus* for *query*.

        Zero-score chunks are excluded.  The sort is stable, so equal
        scores keep corpus order.
        """
        if max_results <= 0:
            return []
        scored = [RankedChunk(chunk=chunk, score=score, source="keyword") for chunk in corpus if (score := self.score(query, chunk)) > 0]
        scored.sort(key=lambda ranked: ranked.score, reverse=True)
        return scored[:max_results]

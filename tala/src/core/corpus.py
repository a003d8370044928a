"""
Tala - Corpus Model
====================
The retrievable corpus and the snapshot that pairs it with its vector
index.

``Chunk``
    Immutable unit of knowledge (frozen pydantic model).  Built from raw
    corpus-store documents via ``Chunk.from_store``.

``RankedChunk``
    A chunk plus the score and strategy that ranked it.

``CorpusSnapshot``
    ``{chunks, index}`` built fully off to the side.  ``vector_chunks``
    maps index rows back to chunks, so the index size and the vector
    chunk count are equal by construction.

``ChunkStore``
    Owns the *current* snapshot.  Readers call ``current()`` once per
    request; the sync task calls ``publish()``, a single reference swap.
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tala.config.query_vocabulary import CALENDAR_CHUNK_TYPES, CALENDAR_EVENT_TYPE, CALENDAR_SECTION
from tala.src.database.vector_index import IndexFactory, VectorIndex
from tala.src.utils.logger import get_logger
from tala.src.utils.text_utils import clean_text

logger = get_logger(__name__)

_snapshot_versions = itertools.count(1)


# ══════════════════════════════════════════════════════════════════════
#  CHUNK
# ══════════════════════════════════════════════════════════════════════


class Chunk(BaseModel):
    """Smallest retrievable unit of institutional knowledge."""

    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    section: str = "general"
    type: str = "info"
    category: str = "general"
    topic: str | None = None
    keywords: tuple[str, ...] = ()
    metadata: dict[str, Any] = Field(default_factory=dict)
    embedding: tuple[float, ...] | None = None

    @field_validator("keywords", mode="before")
    @classmethod
    def _keywords_as_strings(cls, v: object) -> tuple[str, ...]:
        if v is None:
            return ()
        if isinstance(v, str):
            return (v,)
        return tuple(str(keyword) for keyword in v)  # type: ignore[union-attr]


    @property
    def is_calendar(self) -> bool:
        """Schedule-flavoured chunk; drives the keyword scorer's calendar boosts."""
        return self.section == CALENDAR_SECTION or self.type.lower() in CALENDAR_CHUNK_TYPES


    @property
    def is_event(self) -> bool:
        """
        Calendar event pseudo-chunk, rendered from its metadata and grouped
        by title.  Other calendar-typed chunks render their own text.
        """
        if self.type == CALENDAR_EVENT_TYPE or self.section == CALENDAR_SECTION:
            return True
        return bool(self.metadata.get("title")) and any(self.metadata.get(field) for field in ("date", "startDate"))


    @classmethod
    def from_store(cls, doc: Mapping[str, Any]) -> Chunk:
        """
        Convert a raw corpus-store document into a ``Chunk``.

        Field fallbacks: ``content`` → ``text``; ``section`` → ``topic``;
        ``type`` → ``category``; ``metadata`` → ``entities``.

        Raises
        ------
        ValueError
            If the document has no usable identifier (pydantic's
            ``ValidationError`` is a ``ValueError`` subclass and covers
            malformed field types).
        """
        identifier = doc.get("id") or doc.get("_id")
        if identifier is None or str(identifier) == "":
            raise ValueError("corpus document has no id")

        embedding = doc.get("embedding")
        return cls(
            id=str(identifier),
            text=clean_text(str(doc.get("content") or doc.get("text") or "")),
            section=doc.get("section") or doc.get("topic") or "general",
            type=doc.get("type") or doc.get("category") or "info",
            category=doc.get("category") or "general",
            topic=doc.get("topic"),
            keywords=doc.get("keywords") or (),
            metadata=dict(doc.get("metadata") or doc.get("entities") or {}),
            embedding=tuple(float(x) for x in embedding) if embedding else None,
        )


@dataclass(frozen=True, slots=True)
class RankedChunk:
    """A chunk with the score assigned by the strategy named in ``source``."""

    chunk: Chunk
    score: float
    source: str


# ══════════════════════════════════════════════════════════════════════
#  SNAPSHOT
# ══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CorpusSnapshot:
    """The complete, currently-active set of chunks and their vector index."""

    chunks: tuple[Chunk, ...]
    index: VectorIndex
    vector_chunks: tuple[Chunk, ...]
    version: int = 0
    built_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def build(cls, chunks: Sequence[Chunk], dimension: int, index_factory: IndexFactory | None = None) -> CorpusSnapshot:
        """
        Build a snapshot: keep every chunk for keyword search and index the
        ones carrying an embedding of length *dimension*.
        """
        index = VectorIndex(dimension, factory=index_factory)
        embedded = [chunk for chunk in chunks if chunk.embedding is not None]
        vector_chunks = [chunk for chunk in embedded if len(chunk.embedding) == dimension]  # type: ignore[arg-type]

        skipped = len(embedded) - len(vector_chunks)
        if skipped:
            logger.warning("[CORPUS] %d chunk(s) carry embeddings of the wrong dimension (expected %d); keyword search only.", skipped, dimension)

        index.rebuild([chunk.embedding for chunk in vector_chunks])  # type: ignore[misc]
        if not index.available:
            vector_chunks = []

        return cls(chunks=tuple(chunks), index=index, vector_chunks=tuple(vector_chunks), version=next(_snapshot_versions))


    @classmethod
    def empty(cls, dimension: int) -> CorpusSnapshot:
        return cls(chunks=(), index=VectorIndex(dimension), vector_chunks=(), version=0)


    @property
    def vector_ready(self) -> bool:
        return self.index.available and self.index.size > 0


    def __len__(self) -> int:
        return len(self.chunks)


class ChunkStore:
    """
    Holder of the current ``CorpusSnapshot``.

    Publication is one attribute assignment, so a reader sees either
    the old snapshot or the new one in full.  The lock only serialises
    concurrent publishers.
    """

    __slots__ = ("_snapshot", "_publish_lock")

    def __init__(self, snapshot: CorpusSnapshot) -> None:
        self._snapshot = snapshot
        self._publish_lock = threading.Lock()


    def current(self) -> CorpusSnapshot:
        return self._snapshot


    def publish(self, snapshot: CorpusSnapshot) -> CorpusSnapshot:
        """Swap in *snapshot* and return the one it replaced."""
        with self._publish_lock:
            previous, self._snapshot = self._snapshot, snapshot
        logger.info("[CORPUS] Snapshot v%d published: %d chunk(s), %d indexed (replaced v%d).", snapshot.version, len(snapshot.chunks), snapshot.index.size, previous.version)
        return previous

"""
Tala - VectorIndex
===================
In-memory k-nearest-neighbour index over chunk embeddings, backed by a
FAISS ``IndexFlatL2`` (exact search, squared Euclidean distance).

Notes:
  • **Never raises on search.** An index that failed to build reports
    ``available == False`` and every search returns ``[]`` so callers
    fall through to keyword ranking.
  • **Row numbers are positions.** Row *i* is the *i*-th vector handed
    to ``rebuild``/``add``; the owning ``CorpusSnapshot`` keeps the
    parallel chunk tuple.
  • **Injectable factory.** The FAISS constructor can be swapped (tests
    simulate construction failures this way).

Usage:
    index = VectorIndex(dimension=384)
    index.rebuild([chunk.embedding for chunk in chunks])
    hits = index.search(query_vector, k=10)   # [(row, distance), ...]
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import faiss
import numpy as np

from tala.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type Aliases ──────────────────────────────────────────────────────
Vector = Sequence[float]
SearchHit = tuple[int, float]
IndexFactory = Callable[[int], Any]


class VectorIndex:
    """
    Exact L2 index with graceful degradation.

    Parameters
    ----------
    dimension
        Fixed vector length D.  Vectors of any other length are rejected.
    factory
        Callable building the raw index for a dimension.  Defaults to
        ``faiss.IndexFlatL2``.
    """

    __slots__ = ("_dimension", "_factory", "_index", "_available")

    def __init__(self, dimension: int, factory: IndexFactory | None = None) -> None:
        self._dimension = dimension
        self._factory: IndexFactory = factory or faiss.IndexFlatL2
        self._index: Any = None
        self._available = False
        self._construct()


    def _construct(self) -> None:
        try:
            if self._dimension <= 0:
                raise ValueError(f"dimension must be positive, got {self._dimension}")
            self._index = self._factory(self._dimension)
            self._available = True
        except Exception as exc:
            logger.warning("[INDEX] Construction failed (dimension=%d): %s; vector search disabled.", self._dimension, exc)
            self._index = None
            self._available = False

    # ── Properties ─────────────────────────────────────────────────────

    @property
    def available(self) -> bool:
        return self._available


    @property
    def dimension(self) -> int:
        return self._dimension


    @property
    def size(self) -> int:
        if not self._available or self._index is None:
            return 0
        return int(self._index.ntotal)

    # ── Mutation ───────────────────────────────────────────────────────

    def _as_matrix(self, vectors: Sequence[Vector]) -> np.ndarray:
        matrix = np.asarray(vectors, dtype="float32")
        if matrix.ndim == 1:
            matrix = matrix.reshape(1, -1)
        if matrix.ndim != 2 or matrix.shape[1] != self._dimension:
            raise ValueError(f"Dimensionality mismatch: expected {self._dimension}, got shape {matrix.shape}")
        return matrix


    def add(self, vector: Vector) -> None:
        """Append one vector; raises ``ValueError`` on a dimensionality mismatch."""
        if not self._available:
            raise RuntimeError("Vector index is unavailable.")
        self._index.add(self._as_matrix([vector]))


    def rebuild(self, vectors: Sequence[Vector]) -> None:
        """
        Clear the index and re-add *vectors* in order.

        On any failure the index is marked unavailable and left empty, so
        it can never hold a partial row set.
        """
        if not self._available:
            return
        try:
            self._index.reset()
            if vectors:
                self._index.add(self._as_matrix(vectors))
        except Exception as exc:
            logger.warning("[INDEX] Rebuild failed for %d vector(s): %s; vector search disabled.", len(vectors), exc)
            self._index = None
            self._available = False
            return
        logger.debug("[INDEX] Rebuilt with %d vector(s) (dimension=%d).", self.size, self._dimension)

    # ── Search ─────────────────────────────────────────────────────────

    def search(self, query_vector: Vector, k: int) -> list[SearchHit]:
        """
        Return up to *k* ``(row, distance)`` pairs, ascending by distance.

        ``k`` is capped to the number of indexed vectors; asking for more
        than exists returns everything.
        """
        size = self.size
        if size == 0 or k <= 0:
            return []
        try:
            query = self._as_matrix([query_vector])
        except ValueError as exc:
            logger.warning("[INDEX] Query rejected: %s", exc)
            return []

        distances, labels = self._index.search(query, min(k, size))
        return [(int(row), float(distance)) for row, distance in zip(labels[0], distances[0]) if row >= 0]


    @staticmethod
    def similarity(distance: float) -> float:
        """Map a squared L2 distance onto ``(0, 1]``."""
        return 1.0 / (1.0 + distance)


    def __repr__(self) -> str:
        return f"VectorIndex(dimension={self._dimension}, size={self.size}, available={self._available})"

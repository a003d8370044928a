"""
Tala - Embedding Service
=========================
Turns a text fragment (plus its keywords and metadata) into a vector of
fixed length D.

Strategies
----------
``GeminiQueryEmbedder`` (primary)
    Gemini embeddings through ``langchain-google-genai``, pinned to D
    output dimensions.  Any object satisfying the ``Embedder`` protocol
    can take its place.

``HashingEmbedder`` (fallback)
    Deterministic bag-of-words hashing.  Keyword tokens weigh 3× body
    tokens; every token is hashed (MD5) into one of D buckets and the
    vector is L2-normalised.  Identical input always yields a
    bit-identical vector.

``EmbeddingService``
    Selects between the two.  A failing primary (missing credentials,
    inference error, timeout, wrong dimensionality) is logged and the
    fallback answers instead; callers never see the failure.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import math
from collections.abc import Mapping, Sequence
from datetime import tzinfo
from typing import Any, Protocol, runtime_checkable

from tala.config.settings import settings
from tala.src.utils.clock import default_timezone
from tala.src.utils.date_utils import date_renderings, parse_date
from tala.src.utils.logger import get_logger, truncate_for_log
from tala.src.utils.text_utils import tokenize

logger = get_logger(__name__)

_KEYWORD_WEIGHT = 3


# ══════════════════════════════════════════════════════════════════════
#  EMBEDDER PROTOCOL
# ══════════════════════════════════════════════════════════════════════


@runtime_checkable
class Embedder(Protocol):
    """Anything that can produce an embedding vector from text."""

    def embed_query(self, text: str) -> list[float]: ...


class GeminiQueryEmbedder:
    """``GoogleGenerativeAIEmbeddings`` adapter that always requests D dimensions."""

    __slots__ = ("_client", "_dimension")

    def __init__(self, api_key: str, dimension: int, model: str | None = None) -> None:
        from langchain_google_genai import GoogleGenerativeAIEmbeddings

        self._client = GoogleGenerativeAIEmbeddings(model=model or settings.EMBEDDING_MODEL, google_api_key=api_key)
        self._dimension = dimension


    def embed_query(self, text: str) -> list[float]:
        return self._client.embed_query(text, output_dimensionality=self._dimension)


def build_default_model(dimension: int) -> Embedder | None:
    """Return the Gemini embedder, or ``None`` when it cannot be created."""
    keys = settings.api_keys
    if not keys:
        logger.warning("[EMBED] No GOOGLE_API_KEYS configured; using hashing embeddings only.")
        return None
    try:
        return GeminiQueryEmbedder(api_key=keys[0], dimension=dimension)
    except Exception:
        logger.exception("[EMBED] Failed to initialise %s; using hashing embeddings only.", settings.EMBEDDING_MODEL)
        return None


# ══════════════════════════════════════════════════════════════════════
#  HASHING FALLBACK
# ══════════════════════════════════════════════════════════════════════


def _stable_bucket(token: str, dimension: int) -> int:
    digest = hashlib.md5(token.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big") % dimension


class HashingEmbedder:
    """Deterministic bag-of-words hashing embedder."""

    __slots__ = ("_dimension",)

    def __init__(self, dimension: int) -> None:
        if dimension <= 0:
            raise ValueError(f"dimension must be positive, got {dimension}")
        self._dimension = dimension


    @property
    def dimension(self) -> int:
        return self._dimension


    def embed(self, text: str, keywords: Sequence[str] = (), metadata: Mapping[str, Any] | None = None) -> list[float]:
        """
        Hash *text*, *keywords* and serialised *metadata* into a vector.

        Returns the all-zero vector unnormalised when no token survives
        tokenisation.
        """
        serialized_metadata = json.dumps(metadata or {}, sort_keys=True, default=str)
        combined = f"{text} {' '.join(keywords)} {serialized_metadata}"

        weights: dict[str, float] = {}
        for token in tokenize(combined):
            weights[token] = weights.get(token, 0.0) + 1.0
        for keyword in keywords:
            normalized = keyword.lower().strip()
            if normalized:
                weights[normalized] = weights.get(normalized, 0.0) + _KEYWORD_WEIGHT

        vector = [0.0] * self._dimension
        for token, weight in weights.items():
            vector[_stable_bucket(token, self._dimension)] += weight

        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0.0:
            return vector
        return [value / norm for value in vector]


# ══════════════════════════════════════════════════════════════════════
#  EMBEDDING SERVICE
# ══════════════════════════════════════════════════════════════════════


class EmbeddingService:
    """
    Primary-then-fallback embedding with a fixed output dimension.

    Parameters
    ----------
    model
        Primary ``Embedder``; ``None`` means hashing only.
    dimension
        Output length D.  Defaults to ``settings.EMBEDDING_DIMENSION``.
    timeout
        Seconds allowed for one model call in ``aembed``.
    tz
        Timezone used to render metadata dates before model encoding.
    """

    __slots__ = ("_model", "_fallback", "_dimension", "_timeout", "_tz")

    def __init__(self, model: Embedder | None = None, dimension: int | None = None, timeout: float | None = None, tz: tzinfo | None = None) -> None:
        self._dimension = dimension or settings.EMBEDDING_DIMENSION
        self._model = model
        self._fallback = HashingEmbedder(self._dimension)
        self._timeout = timeout if timeout is not None else settings.EMBEDDING_TIMEOUT_SECONDS
        self._tz = tz or default_timezone()


    @property
    def dimension(self) -> int:
        return self._dimension


    @property
    def model_enabled(self) -> bool:
        return self._model is not None


    def fallback_embed(self, text: str, keywords: Sequence[str] = (), metadata: Mapping[str, Any] | None = None) -> list[float]:
        return self._fallback.embed(text, keywords, metadata)


    def _model_input(self, text: str, keywords: Sequence[str], metadata: Mapping[str, Any] | None) -> str:
        """Text + date renderings + keywords, as the model sees it."""
        parts = [text]
        if metadata:
            when = parse_date(metadata.get("date") or metadata.get("startDate"))
            if when is not None:
                parts.append(" ".join(date_renderings(when, self._tz)))
        parts.append(" ".join(keywords))
        return " ".join(part for part in parts if part).strip()


    def _encode(self, combined: str) -> list[float]:
        vector = [float(x) for x in self._model.embed_query(combined)]  # type: ignore[union-attr]
        if len(vector) != self._dimension:
            raise ValueError(f"model returned {len(vector)} dimensions, expected {self._dimension}")
        return vector


    def embed(self, text: str, keywords: Sequence[str] = (), metadata: Mapping[str, Any] | None = None) -> list[float]:
        """Synchronous ``embed(text, keywords, metadata) -> vector[D]``."""
        if self._model is None:
            return self.fallback_embed(text, keywords, metadata)
        try:
            return self._encode(self._model_input(text, keywords, metadata))
        except Exception as exc:
            logger.warning("[EMBED] Model embedding failed for '%s': %s; using hashing fallback.", truncate_for_log(text), exc)
            return self.fallback_embed(text, keywords, metadata)


    async def aembed(self, text: str, keywords: Sequence[str] = (), metadata: Mapping[str, Any] | None = None) -> list[float]:
        """Async variant: the model call runs in a worker thread under a timeout."""
        if self._model is None:
            return self.fallback_embed(text, keywords, metadata)
        combined = self._model_input(text, keywords, metadata)
        try:
            return await asyncio.wait_for(asyncio.to_thread(self._encode, combined), timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("[EMBED] Model embedding timed out after %.1fs for '%s'; using hashing fallback.", self._timeout, truncate_for_log(text))
        except Exception as exc:
            logger.warning("[EMBED] Model embedding failed for '%s': %s; using hashing fallback.", truncate_for_log(text), exc)
        return self.fallback_embed(text, keywords, metadata)

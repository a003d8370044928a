"""
Tala - Text Utilities
======================
Helpers for text cleaning, query normalisation, cache-key derivation and
token estimation.

Everything here is a pure function: cache keys must be reproducible for
identical input, so nothing in this module may read the clock, the
environment or any mutable state.
"""

from __future__ import annotations

import re
import unicodedata

from tala.config.query_vocabulary import QUERY_SYNONYMS

# ── Non-printable character pattern ────────────────────────────────────
# Control characters (C0/C1) except \n, \r, \t plus BOM, zero-width
# characters, soft hyphens and directional marks.
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufeff\u200b\u200c\u200d\u200e\u200f\u00ad\u2060\ufffe]")
_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")
_WORD_RE = re.compile(r"\w+")

# Rough chars-per-token ratio used for every budget calculation.
CHARS_PER_TOKEN = 4
MIN_TOKEN_LENGTH = 3


# ── Cleaning ───────────────────────────────────────────────────────────

def clean_text(text: str) -> str:
    """
    Sanitise chunk text arriving from the corpus store.

    Steps:
        1. Unicode NFC normalisation.
        2. Strip non-printable / zero-width characters.
        3. Collapse runs of horizontal whitespace into a single space,
           *preserving* newlines.
        4. Strip every line and collapse 3+ blank lines to 2.

    Args:
        text: Raw chunk content.

    Returns:
        Cleaned text ready for scoring and rendering.
    """
    text = unicodedata.normalize("NFC", text)
    text = _NON_PRINTABLE_RE.sub("", text)
    text = re.sub(r"[^\S\n]+", " ", text)
    lines = [line.strip() for line in text.splitlines()]
    text = "\n".join(lines)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def tokenize(text: str) -> list[str]:
    """Lower-case word tokens longer than two characters, in order."""
    return [token for token in _WORD_RE.findall(text.lower()) if len(token) >= MIN_TOKEN_LENGTH]


def estimate_tokens(text: str) -> int:
    """Approximate token count (``len / 4``)."""
    return round(len(text) / CHARS_PER_TOKEN)


# ── Query normalisation ────────────────────────────────────────────────

def _fold_synonyms(text: str) -> str:
    """Replace a known leading phrase with its canonical form (prefix match only)."""
    for phrase, canonical in QUERY_SYNONYMS:
        if text == phrase:
            return canonical
        if text.startswith(phrase) and not (text[len(phrase)].isalnum() or text[len(phrase)] == "_"):
            return canonical + text[len(phrase):]
    return text


def normalize_query(query: str, max_length: int = 200) -> str:
    """
    Normalise a query for cache-key purposes.

    Order: lower-case → trim → synonym fold → punctuation strip →
    whitespace collapse → length cap.

    Examples::

        "When is enrollment?"   → "date enrollment"
        "  when is  ENROLLMENT" → "date enrollment"
        "What are the faculties" → "list faculties"
    """
    text = unicodedata.normalize("NFC", query).lower().strip()
    text = _WHITESPACE_RE.sub(" ", text)
    text = _fold_synonyms(text)
    text = _PUNCTUATION_RE.sub(" ", text)
    text = _WHITESPACE_RE.sub(" ", text).strip()
    return text[:max_length].rstrip()


def build_cache_key(namespace: str, normalized_query: str, **params: int | bool | str) -> str:
    """
    Derive a deterministic cache key from a normalised query and parameters.

    Parameters are sorted by name so call-site keyword order never
    changes the key.
    """
    suffix = "|".join(f"{name}={params[name]}" for name in sorted(params))
    return f"{namespace}:{normalized_query}|{suffix}" if suffix else f"{namespace}:{normalized_query}"

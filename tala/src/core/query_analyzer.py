"""
Tala - Query Analyzer
======================
Classifies a raw user query once per request.  Every downstream decision
(ranking strategy, section filter, calendar window, identity block) reads
the resulting ``QueryProfile`` instead of re-scanning the query.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from tala.config.query_vocabulary import (
    BASIC_QUERY_PATTERN,
    CALENDAR_INTENT_PATTERN,
    CALENDAR_TERMS_PATTERN,
    COMPREHENSIVE_TERMS,
    DATE_TERMS_PATTERN,
    EXACT_SECTION_ROUTES,
    LISTING_PATTERN,
    MONTH_ABBREVIATIONS,
    MONTH_NAMES,
    PLURAL_TERMS,
    SECTION_KEYWORDS,
    SEMESTER_PATTERNS,
)

_YEAR_RE = re.compile(r"\b(20\d{2})\b")
_MONTH_RE = re.compile(r"\b(" + "|".join(MONTH_NAMES + MONTH_ABBREVIATIONS) + r")\b", re.IGNORECASE)

# Longest phrase first so "vice presidents" beats "president".
_SECTION_PHRASES = tuple(sorted(SECTION_KEYWORDS, key=len, reverse=True))


@dataclass(frozen=True)
class QueryProfile:
    """Classification of one query."""

    is_comprehensive: bool = False
    is_listing: bool = False
    is_calendar: bool = False
    is_basic: bool = False
    has_date_term: bool = False
    named_section: str | None = None
    exact_section: str | None = None
    semester: int | str | None = None
    requested_month: int | None = None
    requested_year: int | None = None

    @property
    def wants_expansion(self) -> bool:
        """Comprehensive or listing queries rank with an expanded candidate cap."""
        return self.is_comprehensive or self.is_listing


def _contains_phrase(text: str, phrase: str) -> bool:
    return re.search(r"\b" + re.escape(phrase) + r"\b", text) is not None


def is_calendar_query(query: str) -> bool:
    """Vocabulary hit or an intent phrase ("when is", "what date", ...)."""
    return bool(CALENDAR_TERMS_PATTERN.search(query) or CALENDAR_INTENT_PATTERN.search(query))


def has_date_term(query: str) -> bool:
    return DATE_TERMS_PATTERN.search(query) is not None


def detect_section(query: str) -> str | None:
    """Return the section named by the query's first (longest) matching keyword."""
    lowered = query.lower()
    for phrase in _SECTION_PHRASES:
        if _contains_phrase(lowered, phrase):
            return SECTION_KEYWORDS[phrase]
    return None


def detect_exact_section(query: str) -> str | None:
    for pattern, section in EXACT_SECTION_ROUTES:
        if pattern.search(query):
            return section
    return None


def detect_semester(query: str) -> int | str | None:
    for pattern, semester in SEMESTER_PATTERNS:
        if pattern.search(query):
            return semester
    return None


def _requested_month(query: str) -> int | None:
    match = _MONTH_RE.search(query)
    if match is None:
        return None
    token = match.group(1).lower()
    if token in MONTH_NAMES:
        return MONTH_NAMES.index(token) + 1
    return MONTH_ABBREVIATIONS.index(token) + 1


def analyze_query(query: str) -> QueryProfile:
    """Build the ``QueryProfile`` for *query*."""
    lowered = query.lower().strip()
    year_match = _YEAR_RE.search(lowered)

    return QueryProfile(
        is_comprehensive=any(_contains_phrase(lowered, term) for term in COMPREHENSIVE_TERMS),
        is_listing=bool(LISTING_PATTERN.search(lowered)) or any(_contains_phrase(lowered, term) for term in PLURAL_TERMS),
        is_calendar=is_calendar_query(lowered),
        is_basic=BASIC_QUERY_PATTERN.search(lowered) is not None,
        has_date_term=has_date_term(lowered),
        named_section=detect_section(lowered),
        exact_section=detect_exact_section(lowered),
        semester=detect_semester(lowered),
        requested_month=_requested_month(lowered),
        requested_year=int(year_match.group(1)) if year_match else None,
    )

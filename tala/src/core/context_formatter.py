"""
Tala - Context Formatter
=========================
Renders an ordered list of chunks into the context string handed to the
generation model, under a token budget.

Budget
------
Usage is tracked in characters against ``max_tokens * CHARS_PER_TOKEN``
so the estimate ``len(output) / 4`` can never drift above ``max_tokens``
through per-piece rounding.  A piece that does not fit stops rendering.
Comprehensive queries may add one final truncated fragment when less
than 90% of the budget is used and more than 100 characters remain.

Layout
------
1. Identity block (basic "what is <institution>" queries only).
2. Calendar event chunks under ``SCHEDULE_HEADER``, grouped by title.
   Ranges of one title that touch or overlap merge into a single span.
   Calendar-intent queries render this group first; otherwise it
   follows the other sections.
3. Every other chunk as ``## {section} ({type})`` followed by its text.
4. Suggest-more block (basic, non-listing queries with ``suggest_more``), outside
   the budget.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, timedelta, tzinfo

from tala.config.query_vocabulary import FALLBACK_IDENTITY_BLOCK, IDENTITY_BLOCK, SCHEDULE_HEADER, SUGGEST_MORE_BLOCK
from tala.src.core.calendar_events import semester_label
from tala.src.core.corpus import Chunk
from tala.src.core.query_analyzer import QueryProfile
from tala.src.utils.date_utils import parse_date
from tala.src.utils.text_utils import CHARS_PER_TOKEN

DESCRIPTION_LIMIT = 150
FRAGMENT_USAGE_CEILING = 0.9
FRAGMENT_MIN_CHARS = 100
INLINE_RANGE_LIMIT = 3
# Smallest budget honoured; the fallback block must never trim to "".
MIN_MAX_TOKENS = 1

DateSpan = tuple[date, date]


# ── Calendar helpers ───────────────────────────────────────────────────

def _chunk_span(chunk: Chunk, tz: tzinfo) -> DateSpan | None:
    meta = chunk.metadata
    if meta.get("dateType") == "date_range":
        start, end = parse_date(meta.get("startDate")), parse_date(meta.get("endDate"))
        if start is not None and end is not None:
            first, last = start.astimezone(tz).date(), end.astimezone(tz).date()
            return (first, last) if first <= last else (last, first)
    single = parse_date(meta.get("date") or meta.get("startDate"))
    if single is None:
        return None
    day = single.astimezone(tz).date()
    return day, day


def merge_spans(spans: Sequence[DateSpan]) -> list[DateSpan]:
    """Sort spans and merge the ones that overlap or sit on consecutive days."""
    merged: list[DateSpan] = []
    for start, end in sorted(spans):
        if merged and start <= merged[-1][1] + timedelta(days=1):
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def format_span(span: DateSpan) -> str:
    """``Jan 5, 2026`` / ``Jan 5 - Jan 14, 2026`` / ``Dec 28, 2025 - Jan 3, 2026``"""
    start, end = span
    if start == end:
        return f"{start:%b} {start.day}, {start.year}"
    if start.year == end.year:
        return f"{start:%b} {start.day} - {end:%b} {end.day}, {end.year}"
    return f"{start:%b} {start.day}, {start.year} - {end:%b} {end.day}, {end.year}"


def _group_by_title(chunks: Sequence[Chunk]) -> dict[str, list[Chunk]]:
    groups: dict[str, list[Chunk]] = {}
    for chunk in chunks:
        title = str(chunk.metadata.get("title") or "Untitled Event")
        groups.setdefault(title, []).append(chunk)
    return groups


def render_event_group(title: str, group: Sequence[Chunk], tz: tzinfo) -> str:
    """One schedule entry for every event sharing *title*."""
    first = group[0].metadata
    lines = [f"**{title}**"]

    label = semester_label(first.get("semester"))
    if label:
        lines.append(f"Semester: {label}")

    spans = merge_spans([span for chunk in group if (span := _chunk_span(chunk, tz)) is not None])
    rendered = [format_span(span) for span in spans]
    if len(rendered) == 1:
        lines.append(f"Date: {rendered[0]}")
    elif 1 < len(rendered) <= INLINE_RANGE_LIMIT:
        lines.append(f"Dates: {', '.join(rendered)}")
    elif rendered:
        lines.append("Dates:")
        lines.extend(f"   • {span}" for span in rendered)

    if first.get("time"):
        lines.append(f"Time: {first['time']}")
    if first.get("category"):
        lines.append(f"Category: {first['category']}")
    description = first.get("description")
    if description:
        description = str(description)
        lines.append(description[:DESCRIPTION_LIMIT] + "..." if len(description) > DESCRIPTION_LIMIT else description)
    return "\n".join(lines) + "\n\n"


def render_section(chunk: Chunk) -> str:
    return f"## {chunk.section} ({chunk.type})\n{chunk.text}\n\n"


# ══════════════════════════════════════════════════════════════════════
#  FORMATTER
# ══════════════════════════════════════════════════════════════════════


class _Budget:
    """Running character count against a token budget."""

    __slots__ = ("limit", "used", "parts")

    def __init__(self, max_tokens: int) -> None:
        self.limit = max(max_tokens, MIN_MAX_TOKENS) * CHARS_PER_TOKEN
        self.used = 0
        self.parts: list[str] = []


    def fits(self, text: str) -> bool:
        return self.used + len(text) <= self.limit


    def add(self, text: str) -> bool:
        if not self.fits(text):
            return False
        self.parts.append(text)
        self.used += len(text)
        return True


    def add_fragment(self, text: str) -> bool:
        """Append the head of *text* that still fits, marked with an ellipsis."""
        remaining = self.limit - self.used
        if self.used >= self.limit * FRAGMENT_USAGE_CEILING or remaining <= FRAGMENT_MIN_CHARS:
            return False
        fragment = text[:remaining] + "...\n\n"
        self.parts.append(fragment)
        self.used += len(fragment)
        return True


    def render(self) -> str:
        return "".join(self.parts)


class ContextFormatter:
    """Budgeted renderer; stateless apart from the display timezone."""

    def __init__(self, tz: tzinfo) -> None:
        self._tz = tz


    def _render_calendar(self, budget: _Budget, event_chunks: Sequence[Chunk]) -> bool:
        """Render the schedule block; return ``False`` once the budget is spent."""
        entries = [render_event_group(title, group, self._tz) for title, group in _group_by_title(event_chunks).items()]
        if not entries or not budget.fits(SCHEDULE_HEADER + entries[0]):
            return not entries
        budget.add(SCHEDULE_HEADER)
        for entry in entries:
            if not budget.add(entry):
                return False
        return True


    def _render_sections(self, budget: _Budget, chunks: Sequence[Chunk], allow_fragment: bool) -> bool:
        for chunk in chunks:
            text = render_section(chunk)
            if not budget.add(text):
                if allow_fragment:
                    budget.add_fragment(text)
                return False
        return True


    def render(self, chunks: Sequence[Chunk], profile: QueryProfile, max_tokens: int, suggest_more: bool = False) -> str:
        """
        Render *chunks* (already ranked and ordered) for *profile*.

        Returns the fallback identity block when nothing could be
        rendered, trimmed to the budget if it is larger.
        """
        budget = _Budget(max_tokens)
        if profile.is_basic:
            budget.add(IDENTITY_BLOCK)

        event_chunks = [chunk for chunk in chunks if chunk.is_event]
        other_chunks = [chunk for chunk in chunks if not chunk.is_event]
        allow_fragment = profile.wants_expansion

        if profile.is_calendar:
            if self._render_calendar(budget, event_chunks):
                self._render_sections(budget, other_chunks, allow_fragment)
        elif self._render_sections(budget, other_chunks, allow_fragment):
            self._render_calendar(budget, event_chunks)

        context = budget.render()
        if not chunks or not context:
            return FALLBACK_IDENTITY_BLOCK[:budget.limit] if budget.limit < len(FALLBACK_IDENTITY_BLOCK) else FALLBACK_IDENTITY_BLOCK

        if suggest_more and profile.is_basic and not profile.wants_expansion:
            context += SUGGEST_MORE_BLOCK
        return context

"""
Tala - Cache Layer
===================
In-memory key → value stores for assembled contexts, raw similarity
search results and generated responses.

Eviction policy
---------------
Entries never expire by age.  They leave the cache only through:

  1. a scheduled flush at one of the configured ``HH:MM`` times,
  2. a manual or sync-triggered ``flush_all``,
  3. capacity eviction of the least-recently-*inserted* entry once the
     hard entry ceiling is reached (logged as ``[CACHE] Capacity eviction``).

Domains
-------
``ContextCache``   rendered context strings.
``SearchCache``    raw ``search:`` similarity hits, kept out of the context
                   statistics and capacity.
``ResponseCache``  ``ResponseCacheEntry`` values for generated answers.

All share ``InsertionOrderedCache``; all mutation and every counter
update happens under one re-entrant lock per cache.
"""

from __future__ import annotations

import asyncio
import threading
from collections import OrderedDict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Generic, TypeVar

from tala.config.settings import settings
from tala.src.utils.clock import Clock, SystemClock
from tala.src.utils.logger import get_logger

logger = get_logger(__name__)

V = TypeVar("V")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[V]):
    key: str
    value: V
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True, slots=True)
class ResponseCacheEntry:
    """A cached generated response, tagged with the flow that produced it."""

    value: str
    cached_at: datetime = field(default_factory=_utcnow)
    tag: str = "general"


# ══════════════════════════════════════════════════════════════════════
#  INSERTION-ORDERED STORE
# ══════════════════════════════════════════════════════════════════════


class InsertionOrderedCache(Generic[V]):
    """
    Bounded map with insertion-order eviction and hit/miss accounting.

    Parameters
    ----------
    name
        Label used in log lines.
    max_keys
        Hard entry ceiling.  Inserting a new key at the ceiling evicts
        the oldest inserted key first.
    """

    def __init__(self, name: str, max_keys: int) -> None:
        if max_keys < 1:
            raise ValueError(f"max_keys must be >= 1, got {max_keys}")
        self.name = name
        self.max_keys = max_keys
        self._entries: OrderedDict[str, CacheEntry[V]] = OrderedDict()
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._deletes = 0


    def get(self, key: str) -> V | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            return entry.value


    def peek(self, key: str) -> V | None:
        """Read without touching the hit/miss counters."""
        with self._lock:
            entry = self._entries.get(key)
            return None if entry is None else entry.value


    def set(self, key: str, value: V) -> None:
        """Insert or overwrite; an overwrite counts as a fresh insertion."""
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_keys:
                evicted_key, _ = self._entries.popitem(last=False)
                logger.info("[CACHE] Capacity eviction in %s (max_keys=%d): '%s'", self.name, self.max_keys, evicted_key[:50])
            self._entries[key] = CacheEntry(key=key, value=value)
            self._sets += 1


    def delete(self, key: str) -> bool:
        with self._lock:
            if self._entries.pop(key, None) is None:
                return False
            self._deletes += 1
            return True


    def flush_all(self, reason: str = "manual", reset_stats: bool = False) -> int:
        """Drop every entry and return how many were removed."""
        with self._lock:
            removed = len(self._entries)
            self._entries.clear()
            if reset_stats:
                self._reset_counters()
        logger.info("[CACHE] %s flushed (%s): %d entr%s removed.", self.name, reason, removed, "y" if removed == 1 else "ies")
        return removed


    def reset_stats(self) -> None:
        with self._lock:
            self._reset_counters()


    def _reset_counters(self) -> None:
        self._hits = self._misses = self._sets = self._deletes = 0


    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)


    def stats(self) -> dict[str, int]:
        with self._lock:
            return {"hits": self._hits, "misses": self._misses, "sets": self._sets, "deletes": self._deletes, "entry_count": len(self._entries)}


    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries


    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class ContextCache(InsertionOrderedCache[str]):
    """Rendered context strings keyed by query and request shape."""

    def __init__(self, max_keys: int | None = None) -> None:
        super().__init__("context-cache", max_keys or settings.CONTEXT_CACHE_MAX_KEYS)


class SearchCache(InsertionOrderedCache[list[tuple[int, float]]]):
    """Raw ``(row, distance)`` similarity hits; flushed with the context cache."""

    def __init__(self, max_keys: int | None = None) -> None:
        super().__init__("search-cache", max_keys or settings.CONTEXT_CACHE_MAX_KEYS)


class ResponseCache(InsertionOrderedCache[ResponseCacheEntry]):
    """Generated responses keyed by normalised query."""

    def __init__(self, max_keys: int | None = None) -> None:
        super().__init__("response-cache", max_keys or settings.SESSION_CACHE_MAX_KEYS)


    def put(self, key: str, value: str, tag: str = "general") -> ResponseCacheEntry:
        entry = ResponseCacheEntry(value=value, tag=tag)
        self.set(key, entry)
        return entry


# ══════════════════════════════════════════════════════════════════════
#  SCHEDULED FLUSH
# ══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, order=True)
class FlushRule:
    """A daily wall-clock time at which every cache is flushed."""

    hour: int
    minute: int

    def __post_init__(self) -> None:
        if not (0 <= self.hour <= 23 and 0 <= self.minute <= 59):
            raise ValueError(f"invalid flush time {self.hour:02d}:{self.minute:02d}")


    @classmethod
    def parse(cls, raw: str) -> FlushRule:
        """Parse ``"HH:MM"``; raises ``ValueError`` for anything else."""
        text = raw.strip()
        hour_text, sep, minute_text = text.partition(":")
        if not sep or not hour_text.isdigit() or not minute_text.isdigit() or len(minute_text) != 2:
            raise ValueError(f"flush time must be HH:MM, got '{raw}'")
        return cls(int(hour_text), int(minute_text))


    def next_fire(self, now: datetime) -> datetime:
        """First occurrence of this rule strictly after *now* (same timezone)."""
        candidate = now.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate


    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


def parse_flush_times(raw: str) -> list[FlushRule]:
    """
    Parse a comma-separated ``HH:MM`` list.

    Invalid entries are logged and skipped; duplicates collapse into one
    rule.  The result is sorted by time of day.
    """
    rules: set[FlushRule] = set()
    for part in raw.split(","):
        if not part.strip():
            continue
        try:
            rules.add(FlushRule.parse(part))
        except ValueError as exc:
            logger.warning("[CACHE] Ignoring cache clear time '%s': %s", part.strip(), exc)
    return sorted(rules)


class CacheFlushScheduler:
    """
    Fires ``flush_all`` plus a counter reset on every cache at each rule's
    time of day, then reschedules the rule 24 hours later.

    ``run_pending`` is the clock-driven core and can be driven directly
    by tests; ``start`` runs one asyncio task per rule.
    """

    def __init__(self, caches: Sequence[InsertionOrderedCache[Any]], rules: Iterable[FlushRule], clock: Clock | None = None) -> None:
        self._caches = list(caches)
        self._rules = sorted(set(rules))
        self._clock = clock or SystemClock()
        now = self._clock.now()
        self._next_fire: dict[FlushRule, datetime] = {rule: rule.next_fire(now) for rule in self._rules}
        self._tasks: list[asyncio.Task[None]] = []


    @property
    def rules(self) -> list[FlushRule]:
        return list(self._rules)


    def next_fire(self, rule: FlushRule) -> datetime:
        return self._next_fire[rule]


    def _fire_if_due(self, rule: FlushRule, now: datetime) -> bool:
        """Flush for *rule* when due and reschedule it to the first slot after *now*."""
        if self._next_fire[rule] > now:
            return False
        for cache in self._caches:
            cache.flush_all(reason=f"scheduled {rule}", reset_stats=True)
        # A clock that jumped past several days fires once.
        while self._next_fire[rule] <= now:
            self._next_fire[rule] += timedelta(hours=24)
        return True


    def run_pending(self) -> list[FlushRule]:
        """Fire every rule whose time has come; return the rules fired."""
        now = self._clock.now()
        return [rule for rule in self._rules if self._fire_if_due(rule, now)]


    async def _run_rule(self, rule: FlushRule) -> None:
        while True:
            delay = (self._next_fire[rule] - self._clock.now()).total_seconds()
            await self._clock.sleep(delay)
            self._fire_if_due(rule, self._clock.now())


    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [asyncio.create_task(self._run_rule(rule), name=f"cache-flush-{rule}") for rule in self._rules]
        logger.info("[CACHE] Scheduled flushes at %s.", ", ".join(str(rule) for rule in self._rules) or "(none)")


    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

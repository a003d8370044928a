"""
Tala - Key Rotation
====================
Availability bookkeeping for a pool of credentials (or models).

Each slot carries a ``KeyRotationState``.  ``mark_exhausted`` puts it in
cooldown until ``exhausted_until``; the first ``refresh`` after that
moment resets it to available.  ``acquire`` always hands out the lowest
available index, so traffic returns to the primary slot as soon as its
cooldown ends.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from tala.src.utils.clock import Clock, SystemClock
from tala.src.utils.logger import get_logger

logger = get_logger(__name__)


class AllCredentialsExhaustedError(RuntimeError):
    """Every slot of a rotation pool is in cooldown."""

    def __init__(self, pool: str, retry_at: datetime | None = None) -> None:
        self.pool = pool
        self.retry_at = retry_at
        suffix = f"; earliest retry at {retry_at.isoformat()}" if retry_at else ""
        super().__init__(f"All {pool} are exhausted{suffix}")


@dataclass
class KeyRotationState:
    index: int
    requests_served: int = 0
    tokens_used: int = 0
    exhausted: bool = False
    exhausted_until: datetime | None = None

    def mark_exhausted(self, until: datetime) -> None:
        self.exhausted = True
        self.exhausted_until = until


    def refresh(self, now: datetime) -> bool:
        """Auto-reset an expired cooldown; return ``True`` when available."""
        if self.exhausted and self.exhausted_until is not None and now >= self.exhausted_until:
            self.exhausted = False
            self.exhausted_until = None
        return not self.exhausted


class KeyRotator:
    """
    Parameters
    ----------
    labels
        One label per slot, used in log lines only (never the secret).
    cooldown_seconds
        Default cooldown applied by ``mark_exhausted``.
    pool
        Human name of the pool, e.g. ``"credentials"`` or ``"models"``.
    """

    def __init__(self, labels: Sequence[str], cooldown_seconds: float, clock: Clock | None = None, pool: str = "credentials") -> None:
        if not labels:
            raise ValueError(f"{pool} pool is empty")
        self._labels = list(labels)
        self._states = [KeyRotationState(index=i) for i in range(len(labels))]
        self._cooldown = timedelta(seconds=cooldown_seconds)
        self._clock = clock or SystemClock()
        self._pool = pool
        self._lock = threading.Lock()


    def __len__(self) -> int:
        return len(self._states)


    def label(self, index: int) -> str:
        return self._labels[index]


    def available(self) -> list[int]:
        """Indices currently available, lowest first."""
        now = self._clock.now()
        with self._lock:
            return [state.index for state in self._states if state.refresh(now)]


    def acquire(self) -> int:
        """Return the lowest available index or raise ``AllCredentialsExhaustedError``."""
        now = self._clock.now()
        with self._lock:
            for state in self._states:
                if state.refresh(now):
                    return state.index
            retry_at = min((state.exhausted_until for state in self._states if state.exhausted_until), default=None)
        raise AllCredentialsExhaustedError(self._pool, retry_at)


    def record_success(self, index: int, tokens: int = 0) -> None:
        with self._lock:
            state = self._states[index]
            state.requests_served += 1
            state.tokens_used += max(tokens, 0)


    def mark_exhausted(self, index: int, seconds: float | None = None) -> datetime:
        until = self._clock.now() + (timedelta(seconds=seconds) if seconds is not None else self._cooldown)
        with self._lock:
            self._states[index].mark_exhausted(until)
        logger.warning("[KEYS] %s '%s' exhausted until %s.", self._pool.rstrip("s").capitalize(), self._labels[index], until.isoformat())
        return until


    def snapshot(self) -> list[KeyRotationState]:
        """Copies of every slot state (refreshed against the clock)."""
        now = self._clock.now()
        with self._lock:
            for state in self._states:
                state.refresh(now)
            return [KeyRotationState(s.index, s.requests_served, s.tokens_used, s.exhausted, s.exhausted_until) for s in self._states]

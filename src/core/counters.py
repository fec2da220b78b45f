"""Running item counters shared by the count action and item-count rules."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

from core.clock import local_now


@dataclass(frozen=True)
class Counter:
    """Current total plus the total just before the latest increment."""

    current: int = 0
    prev: int = 0

    def bumped(self, amount: int) -> "Counter":
        return Counter(current=self.current + amount, prev=self.current)


@dataclass(frozen=True)
class CounterSnapshot:
    """Point-in-time copy of the store."""

    counts: Dict[str, Counter]
    began_at: datetime


class CounterStore:
    """Item name -> Counter mapping guarded by a single lock.

    The lock is held only for one increment, snapshot or reset, never while
    an action is awaited.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None) -> None:
        self._clock = clock or local_now
        self._lock = asyncio.Lock()
        self._counts: Dict[str, Counter] = {}
        self._began_at = self._clock()

    async def increment(self, item: str, amount: int) -> Counter:
        """Add ``amount`` to ``item``, creating it at zero when absent."""

        async with self._lock:
            counter = self._counts.get(item, Counter()).bumped(amount)
            self._counts[item] = counter
            return counter

    async def snapshot(self) -> CounterSnapshot:
        async with self._lock:
            return CounterSnapshot(counts=dict(self._counts), began_at=self._began_at)

    async def reset(self) -> None:
        """Forget every counter and restart the counting epoch now."""

        async with self._lock:
            self._counts.clear()
            self._began_at = self._clock()

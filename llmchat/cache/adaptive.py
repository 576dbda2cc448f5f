"""Self-tuning TTL policy driven by observed hit/miss ratios."""

import time
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True)
class CacheTtlState:
    """Snapshot of an :class:`AdaptiveTtlPolicy`."""

    current_ttl: float
    hit_count: int
    miss_count: int
    last_adjusted_at: float


class AdaptiveTtlPolicy:
    """Maintain a TTL that grows when a cache is effective and shrinks when it is not.

    Every recorded hit or miss triggers an adjustment check. The check only
    proceeds once ``sample_size`` lookups were observed or ``adjust_interval``
    seconds elapsed since the last attempt, whichever comes first. A hit ratio
    of at least ``expand_ratio`` raises the TTL by ``step``; a ratio of at most
    ``shrink_ratio`` lowers it by ``step``. The TTL always stays within
    ``[min_ttl, max_ttl]`` and the sampling window restarts after each attempt,
    even when the TTL did not move.

    All durations are in seconds. ``clock`` returns monotonic seconds and can
    be replaced in tests.
    """

    def __init__(
        self,
        initial_ttl: float,
        min_ttl: float,
        max_ttl: float,
        step: float,
        sample_size: int = 20,
        adjust_interval: float = 60.0,
        expand_ratio: float = 0.7,
        shrink_ratio: float = 0.3,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.initial_ttl = initial_ttl
        self.min_ttl = min_ttl
        self.max_ttl = max_ttl
        self.step = step
        self.sample_size = sample_size
        self.adjust_interval = adjust_interval
        self.expand_ratio = expand_ratio
        self.shrink_ratio = shrink_ratio
        self._clock = clock

        self._ttl = min(max_ttl, max(min_ttl, initial_ttl))
        self._hits = 0
        self._misses = 0
        self._last_adjusted = clock()

    def get_ttl(self) -> float:
        return self._ttl

    def record_hit(self) -> None:
        self._hits += 1
        self._maybe_adjust()

    def record_miss(self) -> None:
        self._misses += 1
        self._maybe_adjust()

    def notify_invalidation(self) -> None:
        """Shorten the TTL by one step after the cached value proved stale."""
        self._ttl = max(self.min_ttl, self._ttl - self.step)
        self._restart_window(self._clock())

    def reset(self) -> None:
        """Restore the initial TTL and clear the sampling window."""
        self._ttl = min(self.max_ttl, max(self.min_ttl, self.initial_ttl))
        self._restart_window(self._clock())

    def state(self) -> CacheTtlState:
        return CacheTtlState(
            current_ttl=self._ttl,
            hit_count=self._hits,
            miss_count=self._misses,
            last_adjusted_at=self._last_adjusted,
        )

    def _maybe_adjust(self) -> None:
        total = self._hits + self._misses
        now = self._clock()
        if (
            total < self.sample_size
            and now - self._last_adjusted < self.adjust_interval
        ):
            return

        ratio = self._hits / total if total else 0.0
        if ratio >= self.expand_ratio and self._ttl < self.max_ttl:
            self._ttl = min(self.max_ttl, self._ttl + self.step)
        elif ratio <= self.shrink_ratio and self._ttl > self.min_ttl:
            self._ttl = max(self.min_ttl, self._ttl - self.step)

        self._restart_window(now)

    def _restart_window(self, now: float) -> None:
        self._hits = 0
        self._misses = 0
        self._last_adjusted = now

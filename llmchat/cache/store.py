"""Keyed async cache whose entry lifetime follows an adaptive TTL policy."""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from llmchat.core.logging import get_logger

from .adaptive import AdaptiveTtlPolicy


logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class _Entry(Generic[T]):
    value: T
    expires_at: float


class AdaptiveTTLCache(Generic[T]):
    """Async cache with single-flight fetches and policy-driven expiry.

    Each entry is stored with the policy's TTL at insert time. Concurrent
    lookups for a key that is being fetched share the same fetch and count as
    a single miss.
    """

    def __init__(
        self,
        policy: AdaptiveTtlPolicy,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.policy = policy
        self.name = name
        self._clock = clock
        self._entries: dict[str, _Entry[T]] = {}
        self._inflight: dict[str, asyncio.Future[T]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def peek(self, key: str) -> T | None:
        """Return a fresh cached value without touching the policy counters."""
        entry = self._entries.get(key)
        if entry is None or entry.expires_at <= self._clock():
            return None
        return entry.value

    async def get_or_fetch(self, key: str, fetcher: Callable[[], Awaitable[T]]) -> T:
        entry = self._entries.get(key)
        if entry is not None and entry.expires_at > self._clock():
            self.policy.record_hit()
            return entry.value

        pending = self._inflight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        self.policy.record_miss()
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            value = await fetcher()
        except asyncio.CancelledError:
            self._entries.pop(key, None)
            future.cancel()
            raise
        except Exception as e:
            self._entries.pop(key, None)
            future.set_exception(e)
            # Mark retrieved; the caller receives the exception directly
            future.exception()
            raise
        else:
            ttl = self.policy.get_ttl()
            self._entries[key] = _Entry(value=value, expires_at=self._clock() + ttl)
            future.set_result(value)
            logger.debug(
                "cache_entry_stored",
                cache=self.name,
                key=key,
                ttl_seconds=ttl,
                category="cache",
            )
            return value
        finally:
            self._inflight.pop(key, None)

    def invalidate(self, key: str | None = None, prefix: str | None = None) -> int:
        """Drop matching entries (all when no filter is given) and shorten the TTL.

        Returns:
            Number of entries removed
        """
        if key is None and prefix is None:
            removed = len(self._entries)
            self._entries.clear()
        else:
            doomed = [
                k
                for k in self._entries
                if (key is not None and k == key)
                or (prefix is not None and k.startswith(prefix))
            ]
            for k in doomed:
                del self._entries[k]
            removed = len(doomed)

        self.policy.notify_invalidation()
        logger.debug(
            "cache_invalidated",
            cache=self.name,
            key=key,
            prefix=prefix,
            removed=removed,
            ttl_seconds=self.policy.get_ttl(),
            category="cache",
        )
        return removed

    def clear(self) -> None:
        """Remove every entry and restore the policy's initial TTL."""
        self._entries.clear()
        self.policy.reset()

    def purge_expired(self) -> int:
        now = self._clock()
        stale = [k for k, entry in self._entries.items() if entry.expires_at <= now]
        for k in stale:
            del self._entries[k]
        return len(stale)

    def stats(self) -> dict[str, Any]:
        state = self.policy.state()
        return {
            "name": self.name,
            "entries": len(self._entries),
            "ttl_seconds": state.current_ttl,
            "hits": state.hit_count,
            "misses": state.miss_count,
        }

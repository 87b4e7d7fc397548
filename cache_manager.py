"""
Coalescing cache to keep us under provider rate limits.

Each entry has a freshness window (served as-is) and a longer staleness
window (served only when the upstream answers with a rate-limit error).
Concurrent callers asking for the same key share one in-flight fetch, so a
burst of N requests costs exactly one network call per freshness window.

The cache is an ordinary object: create one per service (or per test);
there is no module-level state.
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, NamedTuple, Optional, Tuple

from errors import is_rate_limit_error

logger = logging.getLogger(__name__)

HIT = "hit"
STALE = "stale"
MISS = "miss"


class CachePolicy(NamedTuple):
    fresh_seconds: float
    stale_seconds: float


class _Entry(NamedTuple):
    value: Any
    fresh_until: float
    stale_until: float


class CoalescingCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        clock: monotonic seconds source (injectable for tests)
        """
        self.cache: Dict[str, _Entry] = {}
        self._inflight: Dict[str, "asyncio.Task"] = {}
        self._clock = clock
        self._counters = {HIT: 0, STALE: 0, MISS: 0}

    def get(self, key: str) -> Optional[Tuple[Any, str]]:
        """Return (value, "hit"|"stale") or None when absent / fully expired."""
        entry = self.cache.get(key)
        if entry is None:
            return None
        now = self._clock()
        if entry.fresh_until > now:
            return entry.value, HIT
        if entry.stale_until > now:
            return entry.value, STALE
        return None

    def set(self, key: str, value: Any, fresh_seconds: float, stale_seconds: float):
        """Store value; the stale window never ends before the fresh one."""
        now = self._clock()
        fresh_until = now + fresh_seconds
        stale_until = max(now + stale_seconds, fresh_until)
        self.cache[key] = _Entry(value, fresh_until, stale_until)

    async def fetch(
        self,
        key: str,
        policy: Tuple[float, float],
        producer: Callable[[], Awaitable[Any]],
        is_rate_limit: Callable[[BaseException], bool] = is_rate_limit_error,
    ) -> Tuple[Any, str]:
        """
        Return (value, state) for *key*, calling *producer* at most once
        concurrently.  state is "hit", "stale" or "miss".
        """
        fresh_seconds, stale_seconds = policy
        cached = self.get(key)
        if cached is not None and cached[1] == HIT:
            return self._record(key, cached)

        task = self._inflight.get(key)
        if task is not None:
            logger.debug("Joining in-flight fetch: %s", key)
            try:
                value = await asyncio.shield(task)
            except Exception as exc:
                return self._stale_or_raise(key, exc, is_rate_limit)
            return self._record(key, (value, STALE if cached is not None else HIT))

        task = asyncio.ensure_future(self._produce(key, fresh_seconds, stale_seconds, producer))
        task.add_done_callback(_consume_exception)
        self._inflight[key] = task
        try:
            value = await asyncio.shield(task)
        except Exception as exc:
            return self._stale_or_raise(key, exc, is_rate_limit)
        return self._record(key, (value, MISS))

    async def _produce(self, key, fresh_seconds, stale_seconds, producer):
        try:
            value = await producer()
            self.set(key, value, fresh_seconds, stale_seconds)
            return value
        finally:
            self._inflight.pop(key, None)

    def _stale_or_raise(self, key, exc, is_rate_limit):
        if is_rate_limit(exc):
            stale = self.get(key)
            if stale is not None and stale[1] == STALE:
                logger.warning("Rate limited on %s, serving stale value", key)
                return self._record(key, stale)
        raise exc

    def _record(self, key: str, result: Tuple[Any, str]) -> Tuple[Any, str]:
        self._counters[result[1]] += 1
        logger.debug("Cache %s: %s", result[1], key)
        return result

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    def clear_expired(self):
        """Remove entries past their staleness window."""
        now = self._clock()
        expired_keys = [
            key for key, entry in self.cache.items()
            if entry.stale_until <= now
        ]
        for key in expired_keys:
            del self.cache[key]

    def get_stats(self) -> Dict:
        """Get cache statistics"""
        return {
            "total_entries": len(self.cache),
            "in_flight": len(self._inflight),
            "hits": self._counters[HIT],
            "stale": self._counters[STALE],
            "misses": self._counters[MISS],
        }


def _consume_exception(task: "asyncio.Task"):
    # Callers may have gone away; the outcome still settles the cache.
    if not task.cancelled():
        task.exception()

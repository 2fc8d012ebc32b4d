"""عدّاد المشاركات: كاش قصير العمر + حد طلبات لكل جلسة."""
import asyncio
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Deque, Dict, Optional

from app.constants import StorageKind
from app.errors import BothBackendsFailed
from app.schemas import SurveyRecord
from app.storage.adapter import FallbackCollection
from app.storage.base import CollectionBackend
from app.utils.logger import get_logger

logger = get_logger("counter_service")


class SlidingWindowLimiter:
    """In-memory sliding-window limiter keyed by caller id."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        max_keys: int = 10_000,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self.max_keys = max_keys
        self._hits: Dict[str, Deque[float]] = {}

    def hit(self, key: str) -> tuple[bool, int]:
        """Record a request. Returns (allowed, retry_after_seconds)."""
        now = self.clock()
        # X-Session-Id يتحكم به العميل؛ لا نترك الجدول ينمو بلا حد
        if key not in self._hits and len(self._hits) >= self.max_keys:
            self.prune()
        hits = self._hits.setdefault(key, deque())
        while hits and now - hits[0] >= self.window_seconds:
            hits.popleft()
        if len(hits) >= self.max_requests:
            retry_after = self.window_seconds - (now - hits[0])
            return False, max(1, int(retry_after + 0.999))
        hits.append(now)
        return True, 0

    def prune(self) -> int:
        """Forget callers with no hit inside the current window."""
        now = self.clock()
        stale = [k for k, hits in self._hits.items() if not hits or now - hits[-1] >= self.window_seconds]
        for key in stale:
            self._hits.pop(key, None)
        return len(stale)

    def __len__(self) -> int:
        return len(self._hits)

    def reset(self) -> None:
        self._hits.clear()


class CounterRateLimited(Exception):
    def __init__(self, retry_after: int, counter: int):
        self.retry_after = retry_after
        self.counter = counter
        super().__init__(f"counter rate limit exceeded, retry after {retry_after}s")


class CounterUnavailable(Exception):
    def __init__(self, counter: int, cause: Exception):
        self.counter = counter
        self.cause = cause
        super().__init__(str(cause))


@dataclass
class CounterState:
    value: int = 0
    last_updated: float = 0.0
    is_updating: bool = False


class CounterCache:
    """Process-wide cached total of survey submissions.

    Read path: fresh cache -> in-flight guard -> primary count with timeout
    -> stale non-zero cache -> JSON file count -> CounterUnavailable.
    """

    def __init__(
        self,
        surveys: FallbackCollection[SurveyRecord],
        *,
        ttl_seconds: float = 5.0,
        refresh_timeout: float = 5.0,
        jump_warning: int = 100,
        rate_limiter: Optional[SlidingWindowLimiter] = None,
        analytics_limiter: Optional[SlidingWindowLimiter] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.surveys = surveys
        self.ttl_seconds = ttl_seconds
        self.refresh_timeout = refresh_timeout
        self.jump_warning = jump_warning
        self.rate_limiter = rate_limiter or SlidingWindowLimiter(10, 60.0)
        self.analytics_limiter = analytics_limiter or SlidingWindowLimiter(5, 60.0)
        self.clock = clock
        self.state = CounterState()

    # ------------------------ writes ------------------------

    def set(self, value: int) -> None:
        """Store an accurate count directly, bypassing the TTL."""
        self.state.value = max(0, int(value))
        self.state.last_updated = self.clock()

    def reset(self) -> None:
        self.set(0)

    def prune_limiters(self) -> int:
        """Drop idle callers from both request windows; run periodically."""
        removed = self.rate_limiter.prune() + self.analytics_limiter.prune()
        if removed:
            logger.debug(f"🧹 Pruned {removed} idle counter callers")
        return removed

    async def sync_from(self, backend: CollectionBackend) -> None:
        """Mutation hook: recount on the backend that just served a write."""
        total = await backend.count()
        self.set(total)
        logger.info(f"✅ Counter cache updated to: {total}")

    # ------------------------ reads ------------------------

    def _age(self, now: float) -> float:
        return now - self.state.last_updated

    def _storage(self) -> str:
        return self.surveys.active_storage.value

    async def get(self, caller: str) -> dict:
        allowed, retry_after = self.rate_limiter.hit(caller)
        if not allowed:
            raise CounterRateLimited(retry_after, self.state.value)
        return await self.read()

    async def read(self) -> dict:
        now = self.clock()
        state = self.state
        age = self._age(now)

        if age < self.ttl_seconds and state.value > 0 and not state.is_updating:
            return {
                "success": True,
                "counter": state.value,
                "storage": self._storage(),
                "cached": True,
                "cacheAge": int(age),
            }

        if state.is_updating:
            return {
                "success": True,
                "counter": state.value,
                "storage": self._storage(),
                "cached": True,
                "updating": True,
            }

        state.is_updating = True
        try:
            return await self._refresh(now)
        finally:
            state.is_updating = False

    async def _refresh(self, now: float) -> dict:
        state = self.state
        storage = self.surveys.active_storage
        try:
            if storage == StorageKind.MONGODB:
                total = await asyncio.wait_for(self.surveys.primary.count(), timeout=self.refresh_timeout)
            else:
                total = await self.surveys.fallback.count()
        except Exception as exc:
            logger.warning(f"Database error in counter: {exc!r}")
            return await self._fallback(now, exc)

        payload = {
            "success": True,
            "counter": total,
            "storage": storage.value,
            "cached": False,
            "timestamp": int(now * 1000),
        }
        previous = state.value
        if previous > 0 and abs(total - previous) > self.jump_warning:
            logger.warning(f"⚠️ Suspicious counter jump: {previous} -> {total}")
            payload["warning"] = f"Counter changed unexpectedly ({previous} -> {total})"
        state.value = total
        state.last_updated = now
        return payload

    async def _fallback(self, now: float, cause: Exception) -> dict:
        state = self.state
        if state.value > 0:
            return {
                "success": True,
                "counter": state.value,
                "storage": "cache-fallback",
                "cached": True,
                "warning": "Using cached data due to database error",
            }
        try:
            total = await self.surveys.fallback.count()
        except Exception as exc:
            raise CounterUnavailable(state.value, BothBackendsFailed("counter", cause, exc)) from exc
        state.value = total
        state.last_updated = now
        return {
            "success": True,
            "counter": total,
            "storage": "json-fallback",
            "cached": False,
            "warning": "Database unavailable, using JSON storage",
        }

    async def analytics(self, caller: str) -> dict:
        allowed, retry_after = self.analytics_limiter.hit(caller)
        if not allowed:
            raise CounterRateLimited(retry_after, self.state.value)
        now = self.clock()
        age = self._age(now)
        analytics = {
            "currentCount": self.state.value,
            "cacheStatus": {
                "lastUpdated": int(self.state.last_updated * 1000),
                "age": int(age * 1000),
                "isValid": age < self.ttl_seconds,
            },
            "storage": self._storage(),
            "serverTime": int(now * 1000),
        }
        if self.surveys.active_storage == StorageKind.MONGODB:
            since = datetime.now(timezone.utc) - timedelta(hours=24)
            try:
                analytics["growth24h"] = await self.surveys.primary.count(since)
            except Exception as exc:
                logger.warning(f"Could not fetch growth analytics: {exc}")
        return analytics

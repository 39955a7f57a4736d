"""
Cache-or-fetch coordination on top of the cache store.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar, TYPE_CHECKING

from opentelemetry import trace

from shared.logging import get_logger
from .cache_store import CacheStore

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


T = TypeVar("T")
FetchFn = Callable[[], Awaitable[T]]

tracer = trace.get_tracer(__name__)


class FetchCoordinator:
    """Return cached values when fresh, otherwise run the fetch function once.

    By default concurrent misses for the same key each run their own fetch.
    With ``coalesce=True`` concurrent misses share one in-flight fetch.
    """

    def __init__(
        self,
        cache: CacheStore,
        *,
        coalesce: bool = False,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.cache = cache
        self.coalesce = coalesce
        self.metrics = metrics
        self.logger = get_logger("dataloader.fetch")

        self._in_flight: Dict[str, "asyncio.Future[Any]"] = {}
        # Bumped by refresh; fetches scheduled under an older value do not store
        self._refresh_counts: Dict[str, int] = {}

    async def get_or_fetch(self, key: str, fetch_fn: FetchFn[T], ttl: Optional[float] = None) -> T:
        """Get ``key`` from the cache or fetch, cache and return it.

        Fetch failures propagate unchanged and nothing is cached.
        """
        self.cache.check_ttl(ttl)
        hit, cached = self.cache.lookup(key)
        if hit:
            return cached

        if not self.coalesce:
            return await self._fetch_and_store(key, fetch_fn, ttl, self._refresh_counts.get(key, 0))

        pending = self._in_flight.get(key)
        if pending is not None:
            self.logger.debug("Joining in-flight fetch", key=key)
            if self.metrics:
                self.metrics.increment_counter("fetch_coalesced_total")
            return await asyncio.shield(pending)

        return await self._start_shared(key, fetch_fn, ttl)

    async def refresh(self, key: str, fetch_fn: FetchFn[T], ttl: Optional[float] = None) -> T:
        """Fetch ``key`` even if a fresh entry exists.

        Never joins a fetch already in flight; in coalesced mode later misses
        join this fetch instead.
        """
        self.cache.check_ttl(ttl)
        self._refresh_counts[key] = self._refresh_counts.get(key, 0) + 1
        self.cache.invalidate(key)
        if not self.coalesce:
            return await self._fetch_and_store(key, fetch_fn, ttl, self._refresh_counts[key])
        return await self._start_shared(key, fetch_fn, ttl)

    async def _start_shared(self, key: str, fetch_fn: FetchFn[T], ttl: Optional[float]) -> T:
        future = asyncio.ensure_future(
            self._fetch_and_store(key, fetch_fn, ttl, self._refresh_counts.get(key, 0))
        )
        self._in_flight[key] = future
        future.add_done_callback(lambda done, key=key: self._release(key, done))
        return await asyncio.shield(future)

    def in_flight(self, key: str) -> bool:
        """Check whether a coalesced fetch for ``key`` is running."""
        return key in self._in_flight

    def _release(self, key: str, future: "asyncio.Future[Any]") -> None:
        if self._in_flight.get(key) is future:
            del self._in_flight[key]
        # Mark the failure as retrieved when every waiter was cancelled.
        if not future.cancelled():
            future.exception()

    async def _fetch_and_store(self, key: str, fetch_fn: FetchFn[T], ttl: Optional[float], refresh_count: int) -> T:
        self.logger.info("Cache miss, fetching", key=key)

        with tracer.start_as_current_span("dataloader.fetch") as span:
            span.set_attribute("cache.key", key)
            loop = asyncio.get_running_loop()
            start = loop.time()
            outcome = "success"
            try:
                # The store lock is never held here.
                result = await fetch_fn()
            except Exception as exc:
                outcome = "error"
                span.record_exception(exc)
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(exc)))
                self.logger.warning("Fetch failed", key=key, error=str(exc), error_type=type(exc).__name__)
                if self.metrics:
                    self.metrics.record_error(type(exc).__name__)
                raise
            finally:
                if self.metrics:
                    self.metrics.observe_histogram(
                        "fetch_duration_seconds", loop.time() - start, outcome=outcome
                    )

        if refresh_count != self._refresh_counts.get(key, 0):
            self.logger.debug("Discarding fetch superseded by refresh", key=key)
            return result

        self.cache.set(key, result, ttl)
        return result

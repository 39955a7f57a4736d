"""
Lazy, cache-backed loader with observable loading/loaded/errored state.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Hashable, List, Optional, Sequence, Tuple, TypeVar, TYPE_CHECKING

from shared.logging import get_logger, loader_key_var
from ..caching.fetch_coordinator import FetchCoordinator

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


T = TypeVar("T")
Listener = Callable[["LazyLoader[Any]"], None]


class LoaderStatus(str, Enum):
    """Loader states."""
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    ERRORED = "errored"


class LazyLoader(Generic[T]):
    """Per-caller state machine around ``FetchCoordinator.get_or_fetch``.

    At most one fetch is in flight per loader; a ``load()`` issued while one
    is running awaits it instead of starting another. State is private to the
    instance; loaders sharing a key coordinate only through the cache.
    """

    def __init__(
        self,
        coordinator: FetchCoordinator,
        cache_key: str,
        fetch_fn: Callable[[], Awaitable[T]],
        *,
        ttl: Optional[float] = None,
        dependencies: Sequence[Hashable] = (),
        immediate: bool = True,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.coordinator = coordinator
        self.ttl = ttl
        self.immediate = immediate
        self.metrics = metrics
        self.logger = get_logger("dataloader.loader")

        self._cache_key = cache_key
        self._fetch_fn = fetch_fn
        self._dependencies: Tuple[Any, ...] = tuple(dependencies)

        self._data: Optional[T] = None
        self._status = LoaderStatus.IDLE
        self._error: Optional[BaseException] = None
        self._loaded = False
        self._generation = 0
        self._in_flight: Optional["asyncio.Future[None]"] = None
        self._in_flight_generation = 0
        self._listeners: List[Listener] = []

    @property
    def data(self) -> Optional[T]:
        return self._data

    @property
    def status(self) -> LoaderStatus:
        return self._status

    @property
    def loading(self) -> bool:
        return self._status is LoaderStatus.LOADING

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def loaded(self) -> bool:
        """Whether the current dependencies already produced a load."""
        return self._loaded

    @property
    def cache_key(self) -> str:
        return self._cache_key

    @property
    def dependencies(self) -> Tuple[Any, ...]:
        return self._dependencies

    async def start(self) -> None:
        """Load on mount when configured for immediate loading."""
        if self.immediate and not self._loaded:
            await self.load()

    async def load(self) -> None:
        """Run one load cycle, or wait for the one already running.

        A cycle started for earlier dependency values is awaited and then
        followed by a fresh cycle for the current ones.
        """
        while self._in_flight is not None and self._in_flight_generation != self._generation:
            await asyncio.shield(self._in_flight)

        if self._in_flight is not None:
            self.logger.debug("Load already in flight", key=self._cache_key)
            await asyncio.shield(self._in_flight)
            return

        self._in_flight_generation = self._generation
        self._in_flight = asyncio.ensure_future(
            self._run_load(self._generation, self._cache_key, self._fetch_fn)
        )
        await asyncio.shield(self._in_flight)

    async def reload(self) -> None:
        """Load again; the cache is still consulted first."""
        self._loaded = False
        await self.load()

    def invalidate_cache(self) -> None:
        """Drop this loader's cache entry without fetching."""
        self.coordinator.cache.invalidate(self._cache_key)
        self._loaded = False

    async def set_dependencies(
        self,
        dependencies: Sequence[Hashable],
        *,
        cache_key: Optional[str] = None,
        fetch_fn: Optional[Callable[[], Awaitable[T]]] = None,
    ) -> bool:
        """Record new dependency values; returns whether they changed.

        Values are compared by equality. A change resets the loaded marker
        and, for immediate loaders, runs exactly one new load cycle once any
        in-flight cycle for the old values has finished.
        """
        signature = tuple(dependencies)
        if signature == self._dependencies:
            return False

        self._dependencies = signature
        if cache_key is not None:
            self._cache_key = cache_key
        if fetch_fn is not None:
            self._fetch_fn = fetch_fn
        self._loaded = False
        self._generation += 1

        self.logger.debug("Loader dependencies changed", key=self._cache_key, dependencies=signature)

        if self.immediate:
            await self.load()
        return True

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(loader)`` on every state change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def _run_load(self, generation: int, key: str, fetch_fn: Callable[[], Awaitable[T]]) -> None:
        previous = self._status
        token = loader_key_var.set(key)
        outcome = "cancelled"

        self._status = LoaderStatus.LOADING
        self._error = None
        self._notify()

        try:
            result = await self.coordinator.get_or_fetch(key, fetch_fn, self.ttl)
        except Exception as exc:
            if generation == self._generation:
                outcome = "error"
                self._error = exc
                self._status = LoaderStatus.ERRORED
                self.logger.error("Error loading data", key=key, error=str(exc), error_type=type(exc).__name__)
            else:
                outcome = "stale"
        else:
            if generation == self._generation:
                outcome = "success"
                self._data = result
                self._status = LoaderStatus.LOADED
                self._loaded = True
            else:
                outcome = "stale"
        finally:
            self._in_flight = None
            loader_key_var.reset(token)
            if self._status is LoaderStatus.LOADING:
                # Superseded by a dependency change, or cancelled.
                self._status = previous
            if self.metrics:
                self.metrics.increment_counter("loader_loads_total", outcome=outcome)
            self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as exc:
                self.logger.error("Loader listener failed", key=self._cache_key, error=str(exc))

"""
Data layer service for the listing client.

One ``DataLayerService`` is created at process start and handed to every
collaborator; it owns the shared cache, its sweeper and the event bus.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Sequence, TypeVar, Union

from prometheus_client import CollectorRegistry

from shared.config import DataLayerConfig, get_config
from shared.logging import configure_logging, get_logger
from shared.metrics import get_metrics_collector

from .caching.cache_store import CacheStore
from .caching.fetch_coordinator import FetchCoordinator
from .caching.invalidation_rules import ChangeType, InvalidationRuleTable, default_rule_table
from .loaders.lazy_loader import LazyLoader
from .refresh.events import EventBus
from .refresh.refresh_signal import RefreshCallback, RefreshSignal


T = TypeVar("T")


class DataLayerService:
    """Container wiring the cache, coordinator, loaders and refresh signals."""

    def __init__(
        self,
        config: Optional[DataLayerConfig] = None,
        *,
        rules: Optional[InvalidationRuleTable] = None,
        registry: Optional[CollectorRegistry] = None,
        events: Optional[EventBus] = None,
        configure_logs: bool = True,
    ):
        self.config = config or get_config()
        if configure_logs:
            configure_logging(self.config.service_name, self.config.log_level)
        self.logger = get_logger(f"{self.config.service_name}.service")
        self.metrics = get_metrics_collector(self.config.service_name, registry)

        # Initialize components
        self.cache = CacheStore(
            default_ttl=self.config.default_ttl_seconds,
            rules=rules or default_rule_table(),
            cleanup_interval=self.config.cleanup_interval_seconds,
            copy_values=self.config.copy_values,
            metrics=self.metrics,
        )
        self.coordinator = FetchCoordinator(
            self.cache,
            coalesce=self.config.coalesce_fetches,
            metrics=self.metrics,
        )
        self.events = events or EventBus()

    async def start(self):
        """Start background work."""
        await self.cache.start()
        if self.config.enable_metrics_server:
            self.metrics.start_metrics_server(self.config.metrics_port)
        self.logger.info(
            "Data layer started",
            env=self.config.env,
            default_ttl=self.config.default_ttl_seconds,
            coalesce=self.config.coalesce_fetches,
        )

    async def stop(self):
        """Stop background work and drop cached data."""
        await self.cache.stop()
        self.cache.clear()
        self.logger.info("Data layer stopped")

    @asynccontextmanager
    async def lifespan(self) -> AsyncIterator["DataLayerService"]:
        """Run the service for the duration of a block."""
        await self.start()
        try:
            yield self
        finally:
            await self.stop()

    async def get_or_fetch(self, key: str, fetch_fn: Callable[[], Awaitable[T]], ttl: Optional[float] = None) -> T:
        return await self.coordinator.get_or_fetch(key, fetch_fn, ttl)

    async def refresh(self, key: str, fetch_fn: Callable[[], Awaitable[T]], ttl: Optional[float] = None) -> T:
        return await self.coordinator.refresh(key, fetch_fn, ttl)

    def invalidate_on_change(self, change_type: Union[ChangeType, str], entity_id: Optional[str] = None) -> int:
        """Entry point for write paths after a mutation."""
        return self.cache.invalidate_on_change(change_type, entity_id)

    def create_loader(
        self,
        cache_key: str,
        fetch_fn: Callable[[], Awaitable[T]],
        *,
        ttl: Optional[float] = None,
        dependencies: Sequence[Any] = (),
        immediate: bool = True,
        fresh: bool = False,
    ) -> LazyLoader[T]:
        """Build a loader; ``fresh`` selects the short TTL for volatile data."""
        if ttl is None and fresh:
            ttl = self.config.fresh_data_ttl_seconds
        return LazyLoader(
            self.coordinator,
            cache_key,
            fetch_fn,
            ttl=ttl,
            dependencies=dependencies,
            immediate=immediate,
            metrics=self.metrics,
        )

    def create_refresh_signal(self, callback: RefreshCallback, triggers: Sequence[str]) -> RefreshSignal:
        """Build a refresh signal bound to this service's events and cache."""
        return RefreshSignal(
            callback,
            triggers,
            events=self.events,
            cache=self.cache,
            initially_visible=self.events.visible,
            metrics=self.metrics,
        )

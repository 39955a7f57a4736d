"""
Loader presets for the listing client's read paths.

These only fix the cache key, TTL and dependencies; the data itself comes
from an injected ``PropertySource``.
"""

from typing import Any, Dict, List, Optional, Protocol, TYPE_CHECKING

from ..caching.fetch_coordinator import FetchCoordinator
from .lazy_loader import LazyLoader

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


PROPERTY_TTL = 120
USER_PROPERTIES_TTL = 180
AVAILABLE_PROPERTIES_TTL = 120
DEFAULT_AVAILABLE_LIMIT = 20


class PropertySource(Protocol):
    """Backing data source for property reads."""

    async def get_property_by_id(self, property_id: str) -> Optional[Dict[str, Any]]:
        ...

    async def get_properties_by_user(self, user_id: str) -> List[Dict[str, Any]]:
        ...

    async def get_all_available_properties(self, limit: int) -> List[Dict[str, Any]]:
        ...


def property_loader(
    coordinator: FetchCoordinator,
    source: PropertySource,
    property_id: str,
    *,
    immediate: bool = True,
    metrics: Optional["MetricsCollector"] = None,
) -> LazyLoader[Optional[Dict[str, Any]]]:
    """Loader for a single property's details."""
    return LazyLoader(
        coordinator,
        f"property_{property_id}",
        lambda: source.get_property_by_id(property_id),
        ttl=PROPERTY_TTL,
        dependencies=(property_id,),
        immediate=immediate,
        metrics=metrics,
    )


def user_properties_loader(
    coordinator: FetchCoordinator,
    source: PropertySource,
    user_id: str,
    *,
    immediate: bool = True,
    metrics: Optional["MetricsCollector"] = None,
) -> LazyLoader[List[Dict[str, Any]]]:
    """Loader for the listings a user owns."""
    return LazyLoader(
        coordinator,
        f"user_properties_{user_id}",
        lambda: source.get_properties_by_user(user_id),
        ttl=USER_PROPERTIES_TTL,
        dependencies=(user_id,),
        immediate=immediate,
        metrics=metrics,
    )


def available_properties_loader(
    coordinator: FetchCoordinator,
    source: PropertySource,
    limit: int = DEFAULT_AVAILABLE_LIMIT,
    *,
    immediate: bool = True,
    metrics: Optional["MetricsCollector"] = None,
) -> LazyLoader[List[Dict[str, Any]]]:
    """Loader for the public listing page."""
    return LazyLoader(
        coordinator,
        f"all_properties_{limit}",
        lambda: source.get_all_available_properties(limit),
        ttl=AVAILABLE_PROPERTIES_TTL,
        dependencies=(limit,),
        immediate=immediate,
        metrics=metrics,
    )


async def switch_property(
    loader: LazyLoader[Optional[Dict[str, Any]]],
    source: PropertySource,
    property_id: str,
) -> bool:
    """Point a property loader at another property."""
    return await loader.set_dependencies(
        (property_id,),
        cache_key=f"property_{property_id}",
        fetch_fn=lambda: source.get_property_by_id(property_id),
    )

"""
Refresh signals: bind a reload callback to named triggers and visibility.
"""

import inspect
import uuid
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple, Union, TYPE_CHECKING

from shared.logging import get_logger, request_id_var
from ..caching.cache_store import CacheStore
from .events import VISIBILITY_EVENT, EventSource, Unsubscribe, refresh_event

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


RefreshCallback = Callable[[], Union[None, Awaitable[None]]]

USER_DATA_TRIGGERS = ("user", "saved")
PROPERTY_DATA_TRIGGERS = ("property", "properties")


class RefreshSignal:
    """Runs a refresh callback when a bound trigger fires.

    Named triggers fire on ``refresh-<name>`` events; the visibility trigger
    fires once per hidden to visible transition.
    """

    def __init__(
        self,
        callback: RefreshCallback,
        triggers: Sequence[str],
        *,
        events: EventSource,
        cache: CacheStore,
        initially_visible: bool = True,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.callback = callback
        self.triggers: Tuple[str, ...] = tuple(triggers)
        self.events = events
        self.cache = cache
        self.metrics = metrics
        self.logger = get_logger("dataloader.refresh")

        self._visible = initially_visible
        self._subscriptions: List[Unsubscribe] = []

    @property
    def active(self) -> bool:
        return bool(self._subscriptions)

    def start(self) -> None:
        """Subscribe to the bound triggers."""
        if self._subscriptions:
            return

        for name in self.triggers:
            self._subscriptions.append(self.events.subscribe(refresh_event(name), self._on_trigger))
        self._subscriptions.append(self.events.subscribe(VISIBILITY_EVENT, self._on_visibility))

        self.logger.debug("Refresh signal started", triggers=list(self.triggers))

    def stop(self) -> None:
        """Unsubscribe from every trigger."""
        while self._subscriptions:
            self._subscriptions.pop()()

    async def __aenter__(self) -> "RefreshSignal":
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.stop()

    async def manual_refresh(self) -> None:
        """Run the callback now."""
        await self._run("manual")

    async def force_refresh(self) -> None:
        """Invalidate keys matching each trigger name, then run the callback."""
        for name in self.triggers:
            self.cache.invalidate_pattern(name)
        await self._run("force")

    async def _on_trigger(self, payload: Any = None) -> None:
        await self._run("trigger")

    async def _on_visibility(self, payload: Any = None) -> None:
        visible = bool(payload.get("visible")) if isinstance(payload, dict) else bool(payload)
        became_visible = visible and not self._visible
        self._visible = visible
        if became_visible:
            await self._run("visibility")

    async def _run(self, source: str) -> None:
        if self.metrics:
            self.metrics.increment_counter("refresh_triggers_total", source=source)

        token = request_id_var.set(str(uuid.uuid4()))
        try:
            self.logger.debug("Refreshing", source=source, triggers=list(self.triggers))
            result = self.callback()
            if inspect.isawaitable(result):
                await result
        finally:
            request_id_var.reset(token)


def user_data_refresh(callback: RefreshCallback, *, events: EventSource, cache: CacheStore, **kwargs: Any) -> RefreshSignal:
    """Refresh signal for user and saved-property data."""
    return RefreshSignal(callback, USER_DATA_TRIGGERS, events=events, cache=cache, **kwargs)


def property_data_refresh(callback: RefreshCallback, *, events: EventSource, cache: CacheStore, **kwargs: Any) -> RefreshSignal:
    """Refresh signal for property data."""
    return RefreshSignal(callback, PROPERTY_DATA_TRIGGERS, events=events, cache=cache, **kwargs)

"""
Event source abstraction for refresh triggers.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union

from shared.logging import get_logger


REFRESH_EVENT_PREFIX = "refresh-"
VISIBILITY_EVENT = "visibilitychange"

EventHandler = Callable[[Any], Union[None, Awaitable[None]]]
Unsubscribe = Callable[[], None]


def refresh_event(name: str) -> str:
    """Event name for a named refresh trigger."""
    return f"{REFRESH_EVENT_PREFIX}{name}"


class EventSource(Protocol):
    """Anything refresh signals can subscribe to."""

    def subscribe(self, name: str, handler: EventHandler) -> Unsubscribe:
        ...


class EventBus:
    """In-process publish/subscribe keyed by event name."""

    def __init__(self, visible: bool = True):
        self.logger = get_logger("dataloader.events")
        self._handlers: Dict[str, List[EventHandler]] = {}
        self._visible = visible

    @property
    def visible(self) -> bool:
        return self._visible

    def subscribe(self, name: str, handler: EventHandler) -> Unsubscribe:
        """Register ``handler`` for ``name``; returns its unsubscribe handle."""
        self._handlers.setdefault(name, []).append(handler)
        self.logger.debug("Event handler subscribed", event_name=name)

        def unsubscribe() -> None:
            handlers = self._handlers.get(name)
            if handlers and handler in handlers:
                handlers.remove(handler)
                if not handlers:
                    del self._handlers[name]
                self.logger.debug("Event handler unsubscribed", event_name=name)

        return unsubscribe

    async def publish(self, name: str, payload: Optional[Any] = None) -> int:
        """Run every handler for ``name``; returns how many succeeded.

        A failing handler is logged and does not stop the others.
        """
        handlers = list(self._handlers.get(name, ()))
        if not handlers:
            return 0

        results = await asyncio.gather(
            *(self._invoke(handler, payload) for handler in handlers),
            return_exceptions=True,
        )

        delivered = 0
        for outcome in results:
            if isinstance(outcome, Exception):
                self.logger.error("Event handler failed", event_name=name, error=str(outcome))
                continue
            delivered += 1
        return delivered

    async def emit_refresh(self, name: str) -> int:
        """Fire the named refresh trigger."""
        return await self.publish(refresh_event(name))

    async def set_visibility(self, visible: bool) -> int:
        """Record the hosting context's visibility; publishes only on change."""
        if visible == self._visible:
            return 0
        self._visible = visible
        return await self.publish(VISIBILITY_EVENT, {"visible": visible})

    def subscriber_count(self, name: str) -> int:
        return len(self._handlers.get(name, ()))

    @staticmethod
    async def _invoke(handler: EventHandler, payload: Any) -> None:
        result = handler(payload)
        if inspect.isawaitable(result):
            await result

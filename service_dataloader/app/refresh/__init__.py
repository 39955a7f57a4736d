"""
Refresh package.

Binds loader reload callbacks to named triggers and visibility changes
delivered by an injected event source.
"""

from .events import EventBus, EventSource, VISIBILITY_EVENT, refresh_event
from .refresh_signal import RefreshSignal, property_data_refresh, user_data_refresh

__all__ = [
    "EventBus",
    "EventSource",
    "RefreshSignal",
    "VISIBILITY_EVENT",
    "property_data_refresh",
    "refresh_event",
    "user_data_refresh",
]

"""
Loaders package.

Per-caller loaders turn cache-backed fetches into observable state.
"""

from .lazy_loader import LazyLoader, LoaderStatus
from .property_loaders import (
    PropertySource,
    available_properties_loader,
    property_loader,
    switch_property,
    user_properties_loader,
)

__all__ = [
    "LazyLoader",
    "LoaderStatus",
    "PropertySource",
    "available_properties_loader",
    "property_loader",
    "switch_property",
    "user_properties_loader",
]

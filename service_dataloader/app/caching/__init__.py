"""
Caching package.

In-memory TTL cache, invalidation rules and the fetch coordinator. Prefer
short-lived entries and explicit invalidation from write paths.
"""

from .cache_store import CacheEntry, CacheStore
from .fetch_coordinator import FetchCoordinator
from .invalidation_rules import (
    DEFAULT_INVALIDATION_RULES,
    ChangeType,
    InvalidationRuleTable,
    KeyPattern,
    PatternScope,
)

__all__ = [
    "CacheEntry",
    "CacheStore",
    "ChangeType",
    "DEFAULT_INVALIDATION_RULES",
    "FetchCoordinator",
    "InvalidationRuleTable",
    "KeyPattern",
    "PatternScope",
]

"""
In-memory TTL cache for the data layer.

Expiry is evaluated lazily on read and swept periodically by a background
task, so no per-entry timers exist. A single lock guards the entry map and is
only ever held for in-memory work.
"""

import asyncio
import copy
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar, Union, TYPE_CHECKING

from shared.errors import ValidationError
from shared.logging import get_logger
from .invalidation_rules import (
    ChangeType,
    InvalidationRuleTable,
    PatternScope,
    compile_pattern,
    default_rule_table,
)

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


T = TypeVar("T")

DEFAULT_TTL = 300.0
DEFAULT_CLEANUP_INTERVAL = 300.0


@dataclass
class CacheEntry(Generic[T]):
    """Cached value with its insertion time and time to live (seconds)."""
    key: str
    value: T
    stored_at: float
    ttl: float

    def is_valid(self, now: float) -> bool:
        return now - self.stored_at <= self.ttl

    @property
    def expires_at(self) -> float:
        return self.stored_at + self.ttl


class CacheStore:
    """Process-wide key/value store with per-entry TTL."""

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL,
        rules: Optional[InvalidationRuleTable] = None,
        *,
        cleanup_interval: float = DEFAULT_CLEANUP_INTERVAL,
        copy_values: bool = False,
        clock: Callable[[], float] = time.monotonic,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.check_ttl(default_ttl)
        self.default_ttl = default_ttl
        self.rules = rules if rules is not None else default_rule_table()
        self.cleanup_interval = cleanup_interval
        self.copy_values = copy_values
        self.clock = clock
        self.metrics = metrics
        self.logger = get_logger("dataloader.cache")

        self._entries: Dict[str, CacheEntry[Any]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

        # Sweeper task
        self.cleanup_task: Optional[asyncio.Task] = None
        self.running = False

    @staticmethod
    def check_ttl(ttl: Optional[float]) -> None:
        """Reject negative TTLs; None means the default TTL."""
        if ttl is not None and ttl < 0:
            raise ValidationError("TTL must be non-negative", {"ttl": ttl})

    def _copy(self, value: T) -> T:
        return copy.deepcopy(value) if self.copy_values else value

    def get(self, key: str) -> Optional[Any]:
        """Get a fresh value, or None on a miss.

        Expired entries are removed as a side effect.
        """
        return self.lookup(key)[1]

    def lookup(self, key: str) -> Tuple[bool, Optional[Any]]:
        """Get ``(hit, value)``; distinguishes a cached None from a miss."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                reason = "absent"
            elif not entry.is_valid(self.clock()):
                del self._entries[key]
                self._misses += 1
                reason = "expired"
            else:
                self._hits += 1
                value = entry.value
                reason = None
            size = len(self._entries)

        if reason is None:
            self.logger.debug("Cache hit", key=key)
            self._record("cache_hits_total")
            return True, self._copy(value)

        self.logger.debug("Cache miss", key=key, reason=reason)
        self._record("cache_misses_total", reason=reason)
        if reason == "expired":
            self._record("cache_invalidations_total", reason="expired")
            self._set_size(size)
        return False, None

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value, replacing any existing entry for the key."""
        cache_ttl = self.default_ttl if ttl is None else ttl
        self.check_ttl(cache_ttl)
        entry = CacheEntry(key=key, value=self._copy(value), stored_at=self.clock(), ttl=cache_ttl)

        with self._lock:
            self._entries[key] = entry
            size = len(self._entries)

        self.logger.debug("Cache set", key=key, ttl=cache_ttl)
        self._set_size(size)

    def invalidate(self, key: str) -> bool:
        """Remove one entry. Returns whether an entry was present."""
        with self._lock:
            removed = self._entries.pop(key, None) is not None
            size = len(self._entries)

        if removed:
            self.logger.debug("Cache invalidated", key=key)
            self._record("cache_invalidations_total", reason="key")
            self._set_size(size)
        return removed

    def invalidate_pattern(self, pattern: str) -> int:
        """Remove every stored key matching a ``*`` glob.

        Deletes exactly the keys that match at the time of the call.
        """
        regex = compile_pattern(pattern)
        with self._lock:
            matched = [key for key in self._entries if regex.search(key)]
            for key in matched:
                del self._entries[key]
            size = len(self._entries)

        if matched:
            self.logger.debug("Cache invalidated by pattern", pattern=pattern, keys=matched)
            self._record("cache_invalidations_total", amount=len(matched), reason="pattern")
            self._set_size(size)
        return len(matched)

    def invalidate_on_change(self, change_type: Union[ChangeType, str], entity_id: Optional[str] = None) -> int:
        """Invalidate the keys a write of ``change_type`` makes stale.

        Entity-scoped wildcard patterns become exact keys when an id is given;
        everything else is matched as a pattern. Unknown change types are a
        no-op.
        """
        patterns = self.rules.patterns_for(change_type)
        if not patterns:
            self.logger.debug("No invalidation rules for change", change_type=str(change_type))
            return 0

        removed = 0
        for key_pattern in patterns:
            if key_pattern.has_wildcard and entity_id and key_pattern.scope is PatternScope.ENTITY:
                removed += int(self.invalidate(key_pattern.for_entity(entity_id)))
            else:
                removed += self.invalidate_pattern(key_pattern.pattern)

        self.logger.info(
            "Cache invalidation triggered",
            change_type=getattr(change_type, "value", change_type),
            entity_id=entity_id,
            removed=removed,
        )
        return removed

    def refresh_user_data(self, user_id: str) -> int:
        """Drop everything cached for one user."""
        removed = 0
        for pattern in (
            f"user_properties_{user_id}",
            f"saved_properties_{user_id}*",
            f"user_profile_{user_id}",
        ):
            removed += self.invalidate_pattern(pattern)

        self.logger.info("User data cache refreshed", user_id=user_id, removed=removed)
        return removed

    def refresh_property_data(self) -> int:
        """Drop every property listing and detail entry."""
        removed = 0
        for pattern in ("all_properties_*", "user_properties_*", "property_*"):
            removed += self.invalidate_pattern(pattern)

        self.logger.info("Property data cache refreshed", removed=removed)
        return removed

    def clear(self) -> None:
        """Drop all entries."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()

        self.logger.info("Cache cleared", removed=count)
        self._record("cache_invalidations_total", amount=count, reason="clear")
        self._set_size(0)

    def cleanup(self) -> int:
        """Remove every expired entry. Safe to call at any time."""
        with self._lock:
            now = self.clock()
            expired = [key for key, entry in self._entries.items() if not entry.is_valid(now)]
            for key in expired:
                del self._entries[key]
            size = len(self._entries)

        if expired:
            self.logger.info("Cache cleanup removed expired entries", removed=len(expired))
            self._record("cache_invalidations_total", amount=len(expired), reason="expired")
            self._set_size(size)
        return len(expired)

    def stats(self) -> Dict[str, Any]:
        """Diagnostic snapshot; not for correctness decisions."""
        with self._lock:
            keys: List[str] = list(self._entries)
            return {
                "count": len(keys),
                "keys": keys,
                "hits": self._hits,
                "misses": self._misses,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._entries.get(key)  # type: ignore[arg-type]
            return entry is not None and entry.is_valid(self.clock())

    async def start(self):
        """Start the periodic sweep."""
        if self.running:
            return
        self.running = True
        self.cleanup_task = asyncio.create_task(self._cleanup_loop())
        self.logger.info("Cache sweeper started", interval=self.cleanup_interval)

    async def stop(self):
        """Stop the periodic sweep."""
        self.running = False
        if self.cleanup_task:
            self.cleanup_task.cancel()
            try:
                await self.cleanup_task
            except asyncio.CancelledError:
                pass
            self.cleanup_task = None

        self.logger.info("Cache sweeper stopped")

    async def _cleanup_loop(self):
        """Sweep expired entries on a fixed interval."""
        while self.running:
            await asyncio.sleep(self.cleanup_interval)
            try:
                self.cleanup()
            except Exception as exc:  # pragma: no cover - keep the sweeper alive
                self.logger.error("Cache cleanup failed", error=str(exc))

    def _record(self, metric_name: str, amount: float = 1, **labels) -> None:
        if self.metrics and amount:
            self.metrics.increment_counter(metric_name, amount, **labels)

    def _set_size(self, size: int) -> None:
        if self.metrics:
            self.metrics.set_gauge("cache_entries", size)

"""
Data layer package for the listing client.

The data layer sits between page code and the backing data sources,
providing:
- A process-wide TTL cache with lazy expiry and a periodic sweep
- Rule-driven invalidation so writes clear families of derived reads
- Cache-or-fetch coordination, optionally single-flight per key
- Per-caller loaders with loading/loaded/errored state
- Refresh signals bound to named triggers and visibility changes

Structure:
- app.main: DataLayerService container and lifecycle.
- app.caching: Cache store, invalidation rules and fetch coordinator.
- app.loaders: Lazy loader and property loader presets.
- app.refresh: Event source abstraction and refresh signals.
"""

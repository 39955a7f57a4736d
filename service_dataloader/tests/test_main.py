"""
Unit tests for the DataLayerService container.
"""

import pytest
from unittest.mock import AsyncMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from prometheus_client import CollectorRegistry

from service_dataloader.app.caching.invalidation_rules import ChangeType, InvalidationRuleTable
from service_dataloader.app.loaders.lazy_loader import LoaderStatus
from service_dataloader.app.main import DataLayerService
from shared.config import get_config


class TestDataLayerService:
    """Test cases for DataLayerService."""

    @pytest.fixture
    def registry(self):
        return CollectorRegistry()

    @pytest.fixture
    def service(self, registry):
        config = get_config(default_ttl_seconds=60, fresh_data_ttl_seconds=5, cleanup_interval_seconds=30)
        return DataLayerService(config, registry=registry, configure_logs=False)

    def test_components_share_one_cache(self, service):
        assert service.coordinator.cache is service.cache
        assert service.cache.default_ttl == 60
        assert service.cache.cleanup_interval == 30
        assert service.coordinator.coalesce is False

    def test_coalesce_from_config(self, registry):
        service = DataLayerService(get_config(coalesce_fetches=True), registry=registry, configure_logs=False)

        assert service.coordinator.coalesce is True

    def test_config_from_environment(self, monkeypatch):
        monkeypatch.setenv("DATALAYER_DEFAULT_TTL_SECONDS", "42")
        monkeypatch.setenv("DATALAYER_COALESCE_FETCHES", "true")

        config = get_config()

        assert config.default_ttl_seconds == 42
        assert config.coalesce_fetches is True

    @pytest.mark.asyncio
    async def test_lifespan_starts_and_stops_sweeper(self, service):
        async with service.lifespan():
            assert service.cache.running is True
            service.cache.set("k", "v")

        assert service.cache.running is False
        assert service.cache.stats()["count"] == 0

    @pytest.mark.asyncio
    async def test_create_loader_uses_fresh_ttl(self, service):
        loader = service.create_loader("recent_properties", AsyncMock(return_value=[]), fresh=True)
        default = service.create_loader("all_properties_20", AsyncMock(return_value=[]))

        assert loader.ttl == 5
        assert default.ttl is None

        await loader.start()
        assert loader.status is LoaderStatus.LOADED

    @pytest.mark.asyncio
    async def test_get_or_fetch_and_refresh(self, service):
        fetch = AsyncMock(side_effect=["v1", "v2"])

        assert await service.get_or_fetch("k", fetch) == "v1"
        assert await service.get_or_fetch("k", fetch) == "v1"
        assert await service.refresh("k", fetch) == "v2"

    def test_invalidate_on_change(self, service):
        service.cache.set("property_p1", 1)
        service.cache.set("all_properties_20", 2)
        service.cache.set("user_profile_u1", 3)

        service.invalidate_on_change(ChangeType.PROPERTY_UPDATE, "p1")

        assert service.cache.stats()["keys"] == ["user_profile_u1"]

    def test_custom_rules(self, registry):
        rules = InvalidationRuleTable({"user_update": ["user_profile_*"]})
        service = DataLayerService(get_config(), rules=rules, registry=registry, configure_logs=False)

        assert service.cache.rules is rules

    @pytest.mark.asyncio
    async def test_refresh_signal_wired_to_events(self, service, registry):
        callback = AsyncMock()
        signal = service.create_refresh_signal(callback, ["user"])
        signal.start()

        await service.events.emit_refresh("user")

        callback.assert_awaited_once()
        assert registry.get_sample_value("refresh_triggers_total", {"source": "trigger"}) == 1.0

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, service, registry):
        fetch = AsyncMock(return_value="v")
        loader = service.create_loader("k", fetch)

        await loader.start()
        service.cache.get("k")

        assert registry.get_sample_value("cache_hits_total") == 1.0
        assert registry.get_sample_value("cache_misses_total", {"reason": "absent"}) == 1.0
        assert registry.get_sample_value("loader_loads_total", {"outcome": "success"}) == 1.0
        assert registry.get_sample_value("cache_entries") == 1.0

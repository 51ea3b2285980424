"""Tests for Application lifecycle wiring."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from power_scheduler.config.manager import ConfigManager
from power_scheduler.config.schema import AppConfig
from power_scheduler.main import Application
from power_scheduler.pricing.providers.esios import EsiosProvider


class TestApplicationConstruction:
    def test_create_application(self, config, config_manager) -> None:
        app = Application(config, config_manager)
        assert app.config is config
        assert app.config_manager is config_manager
        assert app._running is False

    def test_initial_state(self, config, config_manager) -> None:
        app = Application(config, config_manager)
        assert app._tasks == []
        assert app._price_provider is None
        assert app._orchestrator is None

    def test_now_is_naive_local_time(self, config, config_manager) -> None:
        now = Application(config, config_manager).now()
        assert now.tzinfo is None
        assert now.microsecond == 0


class TestProviderCreation:
    @pytest.mark.asyncio
    async def test_esios_by_default(self, config, config_manager) -> None:
        provider = Application(config, config_manager)._create_price_provider()
        assert isinstance(provider, EsiosProvider)
        await provider.close()

    def test_unknown_source(self, config_manager) -> None:
        config = AppConfig(price_source={"type": "omie"})
        with pytest.raises(ValueError):
            Application(config, config_manager)._create_price_provider()


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_and_stop_without_api(self, tmp_path: Path, config_manager: ConfigManager) -> None:
        config = AppConfig(
            api={"enabled": False},
            db={"path": str(tmp_path / "app.db")},
            scheduler={"backfill_on_startup": False},
        )
        app = Application(config, config_manager)

        task = asyncio.create_task(app.start())
        for _ in range(50):
            if app._orchestrator is not None and app._orchestrator.is_running:
                break
            await asyncio.sleep(0.02)
        assert app._running
        assert app._orchestrator.is_running
        assert (tmp_path / "app.db").exists()

        await app.stop()
        await asyncio.wait_for(task, timeout=2)

        assert not app._running
        assert app._tasks == []
        assert not app._orchestrator.is_running

    @pytest.mark.asyncio
    async def test_stop_when_not_running(self, config, config_manager) -> None:
        app = Application(config, config_manager)
        await app.stop()
        assert app._running is False

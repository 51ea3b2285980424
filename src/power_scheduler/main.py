"""Power Scheduler application entry point and lifecycle orchestrator.

Startup sequence:
  config → SQLite → price provider → regenerator → rule service →
  scheduler tasks → API server
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
import sys
from datetime import datetime
from pathlib import Path

from power_scheduler import __version__
from power_scheduler.config.manager import ConfigManager
from power_scheduler.config.schema import AppConfig
from power_scheduler.db.engine import close_db, init_db
from power_scheduler.db.repository import Repository
from power_scheduler.logging.structured import setup_logging
from power_scheduler.pricing.base import PriceProvider
from power_scheduler.timezone_utils import local_now, resolve_timezone

logger = logging.getLogger(__name__)


class Application:
    """Main application lifecycle manager.

    Wires all modules together and manages startup/shutdown ordering.
    """

    def __init__(self, config: AppConfig, config_manager: ConfigManager) -> None:
        self.config = config
        self.config_manager = config_manager
        self._running = False
        self._tasks: list[asyncio.Task] = []
        self._stop_event = asyncio.Event()
        self._tz = resolve_timezone(config.scheduler.timezone)

        # References held for cleanup
        self._price_provider: PriceProvider | None = None
        self._orchestrator = None
        self._server = None

    def now(self) -> datetime:
        """Local wall-clock time in the configured timezone."""
        return local_now(self._tz)

    def _create_price_provider(self) -> PriceProvider:
        source = self.config.price_source
        if source.type == "esios":
            from power_scheduler.pricing.providers.esios import EsiosProvider

            return EsiosProvider(source, self._tz)
        raise ValueError(f"Unknown price source type: {source.type}")

    async def start(self) -> None:
        """Start all application components in dependency order."""
        logger.info("Starting Power Scheduler v%s", __version__)
        self._running = True
        self._stop_event.clear()

        # ── 1. Database ──────────────────────────────────────
        db = await init_db(self.config.db.path)
        repo = Repository(db)
        logger.info("Database initialised")

        # ── 2. Price provider ────────────────────────────────
        price_provider = self._create_price_provider()
        self._price_provider = price_provider

        # ── 3. Regenerator ───────────────────────────────────
        from power_scheduler.scheduling.regenerator import ScheduleRegenerator

        regenerator = ScheduleRegenerator(repo, price_provider, clock=self.now)

        # ── 4. Rule service ──────────────────────────────────
        from power_scheduler.rules.service import RuleService

        rule_service = RuleService(repo, regenerator, clock=self.now)

        # ── 5. Scheduler tasks ───────────────────────────────
        from power_scheduler.scheduling.orchestrator import DailyOrchestrator

        orchestrator = DailyOrchestrator(
            regenerator, repo, self.config.scheduler, clock=self.now,
        )
        self._orchestrator = orchestrator
        self._tasks.append(asyncio.create_task(orchestrator.run(), name="scheduler"))

        logger.info(
            "System initialised: timezone=%s, price_source=%s",
            self.config.scheduler.timezone,
            self.config.price_source.type,
        )

        # ── 6. API server ────────────────────────────────────
        if not self.config.api.enabled:
            logger.info("API disabled, running scheduler only")
            await self._stop_event.wait()
            return

        from power_scheduler.api.app import create_app

        app = create_app(self.config, repo, rule_service, price_provider, orchestrator)
        app.state.application = self

        import uvicorn

        uvi_config = uvicorn.Config(
            app,
            host=self.config.api.host,
            port=self.config.api.port,
            log_level="warning",
        )
        server = uvicorn.Server(uvi_config)
        # Keep process signal handling in main() so Ctrl+C behaviour is predictable.
        server.install_signal_handlers = lambda: None
        self._server = server

        logger.info(
            "API available at http://%s:%d",
            self.config.api.host,
            self.config.api.port,
        )

        # Server.serve() blocks until shutdown
        await server.serve()

    async def stop(self) -> None:
        """Gracefully stop all components in reverse order."""
        if not self._running:
            return

        logger.info("Shutting down Power Scheduler")
        self._running = False
        self._stop_event.set()

        # Tell uvicorn to exit its serve() loop.
        if self._server is not None:
            self._server.should_exit = True

        if self._orchestrator is not None:
            self._orchestrator.stop()

        # Cancel background tasks
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

        if self._price_provider is not None:
            try:
                await self._price_provider.close()
            except Exception:
                logger.exception("Error closing price provider")

        await close_db()
        self._server = None
        logger.info("Shutdown complete")


def main() -> None:
    """Entry point for the application."""
    defaults_path = Path("config.defaults.yaml")
    user_path = Path("config.yaml")

    config_manager = ConfigManager(defaults_path, user_path)
    config = config_manager.load()

    setup_logging(config.logging)

    app = Application(config, config_manager)
    stop_requested = False
    signal_count = 0

    async def _run() -> None:
        try:
            await app.start()
        finally:
            if app._running:
                with contextlib.suppress(Exception):
                    await app.stop()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    def _request_stop() -> None:
        nonlocal stop_requested, signal_count
        signal_count += 1
        if signal_count >= 2:
            os._exit(130)
        if stop_requested or loop.is_closed():
            return
        stop_requested = True
        loop.call_soon_threadsafe(lambda: asyncio.create_task(app.stop()))

    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _request_stop)
    else:
        signal.signal(signal.SIGINT, lambda *_: _request_stop())
        if hasattr(signal, "SIGTERM"):
            signal.signal(signal.SIGTERM, lambda *_: _request_stop())

    try:
        loop.run_until_complete(_run())
    except KeyboardInterrupt:
        _request_stop()
        with contextlib.suppress(Exception):
            loop.run_until_complete(app.stop())
    finally:
        pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            with contextlib.suppress(Exception):
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        loop.close()


if __name__ == "__main__":
    main()

"""FastAPI application factory for the scheduler API."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from power_scheduler.config.schema import AppConfig
from power_scheduler.db.repository import Repository
from power_scheduler.exceptions import (
    DeviceInUseError,
    InvalidStatusTransitionError,
    NotFoundError,
    PriceUnavailableError,
    RuleValidationError,
)
from power_scheduler.pricing.base import PriceProvider
from power_scheduler.rules.service import RuleService
from power_scheduler.scheduling.orchestrator import DailyOrchestrator

logger = logging.getLogger(__name__)


def create_app(
    config: AppConfig,
    repo: Repository,
    rule_service: RuleService,
    price_provider: PriceProvider,
    orchestrator: DailyOrchestrator | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    from power_scheduler import __version__

    app = FastAPI(
        title="Power Scheduler",
        description="Cheapest-hour device scheduling from day-ahead electricity prices",
        version=__version__,
    )

    # Live references for the routes
    app.state.config = config
    app.state.repo = repo
    app.state.rule_service = rule_service
    app.state.price_provider = price_provider
    app.state.orchestrator = orchestrator

    @app.exception_handler(RuleValidationError)
    async def validation_error(request: Request, exc: RuleValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc), "field": exc.field})

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(DeviceInUseError)
    async def device_in_use(request: Request, exc: DeviceInUseError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc), "rule_ids": exc.rule_ids})

    @app.exception_handler(InvalidStatusTransitionError)
    async def invalid_transition(request: Request, exc: InvalidStatusTransitionError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(PriceUnavailableError)
    async def prices_unavailable(request: Request, exc: PriceUnavailableError) -> JSONResponse:
        logger.warning("Request %s failed: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    from power_scheduler.api.routes.devices import router as devices_router
    from power_scheduler.api.routes.prices import router as prices_router
    from power_scheduler.api.routes.rules import router as rules_router
    from power_scheduler.api.routes.schedule import router as schedule_router
    from power_scheduler.api.routes.status import router as status_router

    app.include_router(status_router, prefix="/api")
    app.include_router(prices_router, prefix="/api")
    app.include_router(devices_router, prefix="/api")
    app.include_router(rules_router, prefix="/api")
    app.include_router(schedule_router, prefix="/api")

    return app

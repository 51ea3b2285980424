"""Service status endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/status")
async def system_status(request: Request) -> dict:
    """Scheduler state plus a count of today's entries."""
    from power_scheduler import __version__

    config = request.app.state.config
    orchestrator = request.app.state.orchestrator

    now = request.app.state.rule_service.now()
    return {
        "status": "running",
        "version": __version__,
        "local_time": now.isoformat(),
        "timezone": config.scheduler.timezone,
        "scheduler": orchestrator.status() if orchestrator else None,
        "entries_today": await request.app.state.repo.count_actions_for_date(now.date()),
    }

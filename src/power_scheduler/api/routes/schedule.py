"""Schedule endpoints: daily listings, manual generation, dry runs and status reports."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, HTTPException, Request

from power_scheduler.rules.schemas import CalculateRequest, StatusUpdate

router = APIRouter()


def _today(request: Request) -> date:
    return request.app.state.rule_service.now().date()


async def _schedule_for(request: Request, day: date) -> dict:
    actions = await request.app.state.repo.list_actions_for_date(day)
    return {"date": day.isoformat(), "count": len(actions), "actions": actions}


@router.get("/schedule/today")
async def schedule_today(request: Request) -> dict:
    return await _schedule_for(request, _today(request))


@router.get("/schedule/{day}")
async def schedule_for_date(request: Request, day: str) -> dict:
    try:
        parsed = date.fromisoformat(day)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date '{day}', expected YYYY-MM-DD") from None
    return await _schedule_for(request, parsed)


@router.post("/schedule/generate")
async def generate_schedule(request: Request) -> dict:
    """Regenerate today and tomorrow for all enabled rules."""
    results = await request.app.state.rule_service.generate_now()
    return {
        "status": "ok",
        "results": [
            {
                "date": r.date.isoformat(),
                "prices_available": not r.prices_unavailable,
                "rules_processed": r.rules_processed,
                "created_count": r.created_count,
                "message": r.message,
                "messages": [o.message for o in r.outcomes],
            }
            for r in results
        ],
    }


@router.post("/schedule/calculate")
async def calculate_schedule(request: Request, body: CalculateRequest) -> dict:
    """Dry run of a rule's selection; nothing is written."""
    day = body.target_date or _today(request)
    selection = await request.app.state.rule_service.calculate(body.rule_id, day)
    return {
        "rule_id": body.rule_id,
        "date": day.isoformat(),
        "hours": selection.hours,
        "total_price": selection.total_price,
    }


@router.patch("/schedule/{action_id}/status")
async def update_action_status(request: Request, action_id: int, body: StatusUpdate) -> dict:
    action = await request.app.state.rule_service.update_action_status(action_id, body.status)
    return {"status": "ok", "action": action}

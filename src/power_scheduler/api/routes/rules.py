"""Rule management endpoints.

Writes sync the rule's schedule before responding. With ``?background=true``
the sync runs after the response is sent and only the rule is returned.
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from fastapi import APIRouter, BackgroundTasks, Request

from power_scheduler.rules.schemas import RuleCreate, RuleUpdate
from power_scheduler.rules.service import RuleService
from power_scheduler.scheduling.models import Rule
from power_scheduler.scheduling.weekdays import DaysOfWeek

router = APIRouter()
logger = logging.getLogger(__name__)


def _rule_dict(rule: Rule) -> dict:
    return {**asdict(rule), "days": DaysOfWeek(rule.days_of_week).names()}


async def _sync_in_background(service: RuleService, rule: Rule) -> None:
    try:
        sync = await service.sync_schedule(rule)
        logger.info("Background sync for rule %d: %s", rule.id, sync.summary)
    except Exception:
        logger.exception("Background sync for rule %d failed", rule.id)


async def _respond_with_sync(
    service: RuleService, rule: Rule, background: bool, tasks: BackgroundTasks,
) -> dict:
    if background:
        tasks.add_task(_sync_in_background, service, rule)
        return {"status": "ok", "rule": _rule_dict(rule), "schedule": None}
    sync = await service.sync_schedule(rule)
    return {"status": "ok", "rule": _rule_dict(rule), "schedule": sync.to_dict()}


@router.get("/rules")
async def list_rules(request: Request) -> dict:
    return {"rules": await request.app.state.rule_service.list_rules()}


@router.post("/rules", status_code=201)
async def create_rule(
    request: Request, body: RuleCreate, tasks: BackgroundTasks, background: bool = False,
) -> dict:
    service: RuleService = request.app.state.rule_service
    rule = await service.create_rule(body)
    return await _respond_with_sync(service, rule, background, tasks)


@router.get("/rules/{rule_id}")
async def get_rule(request: Request, rule_id: int) -> dict:
    rule = await request.app.state.rule_service.get_rule(rule_id)
    return {"rule": _rule_dict(rule)}


@router.put("/rules/{rule_id}")
async def update_rule(
    request: Request, rule_id: int, body: RuleUpdate, tasks: BackgroundTasks,
    background: bool = False,
) -> dict:
    service: RuleService = request.app.state.rule_service
    rule = await service.update_rule(rule_id, body)
    return await _respond_with_sync(service, rule, background, tasks)


@router.post("/rules/{rule_id}/enable")
async def enable_rule(
    request: Request, rule_id: int, tasks: BackgroundTasks, background: bool = False,
) -> dict:
    service: RuleService = request.app.state.rule_service
    rule = await service.set_enabled(rule_id, True)
    return await _respond_with_sync(service, rule, background, tasks)


@router.post("/rules/{rule_id}/disable")
async def disable_rule(
    request: Request, rule_id: int, tasks: BackgroundTasks, background: bool = False,
) -> dict:
    service: RuleService = request.app.state.rule_service
    rule = await service.set_enabled(rule_id, False)
    return await _respond_with_sync(service, rule, background, tasks)


@router.delete("/rules/{rule_id}")
async def delete_rule(request: Request, rule_id: int) -> dict:
    cancelled = await request.app.state.rule_service.delete_rule(rule_id)
    return {"status": "ok", "cancelled_count": cancelled}

"""Device endpoints.

Deactivating or reactivating a device re-syncs its rules' schedules, like
the rule endpoints do, unless ``?background=true`` is passed.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Request

from power_scheduler.rules.schemas import DeviceCreate, DeviceUpdate
from power_scheduler.rules.service import RuleService

router = APIRouter()
logger = logging.getLogger(__name__)


async def _sync_device_in_background(service: RuleService, device_id: int) -> None:
    try:
        syncs = await service.sync_device(device_id)
        logger.info("Background sync for device %d: %d rule(s)", device_id, len(syncs))
    except Exception:
        logger.exception("Background sync for device %d failed", device_id)


@router.get("/devices")
async def list_devices(request: Request, active_only: bool = False) -> dict:
    return {"devices": await request.app.state.rule_service.list_devices(active_only=active_only)}


@router.post("/devices", status_code=201)
async def create_device(request: Request, body: DeviceCreate) -> dict:
    device = await request.app.state.rule_service.create_device(body)
    return {"status": "ok", "device": device}


@router.get("/devices/{device_id}")
async def get_device(request: Request, device_id: int) -> dict:
    return {"device": await request.app.state.rule_service.get_device(device_id)}


@router.patch("/devices/{device_id}")
async def update_device(
    request: Request, device_id: int, body: DeviceUpdate, tasks: BackgroundTasks,
    background: bool = False,
) -> dict:
    service: RuleService = request.app.state.rule_service
    device = await service.update_device(device_id, body)
    if "is_active" not in body.model_fields_set:
        return {"status": "ok", "device": device, "schedules": []}
    if background:
        tasks.add_task(_sync_device_in_background, service, device_id)
        return {"status": "ok", "device": device, "schedules": None}
    syncs = await service.sync_device(device_id)
    return {"status": "ok", "device": device, "schedules": [s.to_dict() for s in syncs]}


@router.delete("/devices/{device_id}")
async def delete_device(request: Request, device_id: int) -> dict:
    await request.app.state.rule_service.delete_device(device_id)
    return {"status": "ok", "device_id": device_id}

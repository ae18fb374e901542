from datetime import date
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
from gps_tracker.dependencies import get_db
from gps_tracker.schemas.system_log import SystemLogOut, SystemLogPage
from gps_tracker.services import device_service, system_log_service

router = APIRouter()

@router.get("", response_model=SystemLogPage)
async def read_system_logs(
    device_id: Optional[str] = Query(None, alias="deviceId"),
    day: Optional[date] = Query(None, alias="date"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    device_pk = None
    if device_id:
        db_device = await device_service.get_device_by_device_id(db, device_id)
        if db_device is None:
            return SystemLogPage(logs=[], total_count=0, has_more=False)
        device_pk = db_device.id

    logs = await system_log_service.get_system_logs(db, device_pk, limit=limit, day=day, offset=offset)
    total = await system_log_service.count_system_logs(db, device_pk, day=day)
    return SystemLogPage(
        logs=[SystemLogOut.model_validate(entry) for entry in logs],
        total_count=total,
        has_more=offset + limit < total,
    )

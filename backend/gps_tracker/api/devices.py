from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
from gps_tracker.core.clock import utcnow
from gps_tracker.dependencies import get_db
from gps_tracker.schemas.base import CamelModel
from gps_tracker.schemas.command import (
    CommandCancelOut, CommandCreate, CommandOut, LostModeOut, LostModeRequest,
)
from gps_tracker.schemas.device import (
    DeviceConfig, DeviceConfigOut, DeviceOut, DeviceUpdate, StatusHistoryOut,
)
from gps_tracker.schemas.position import LocationOut
from gps_tracker.services import command_service, device_service, geofence_service, position_service

router = APIRouter()

class DeviceStatusOut(CamelModel):
    device: DeviceOut
    latest_location: Optional[LocationOut] = None
    unread_alerts_count: int
    pending_commands: List[CommandOut]
    lost_mode_command: Optional[CommandOut] = None
    has_lost_mode_command: bool

@router.get("", response_model=List[DeviceOut])
async def read_devices(skip: int = 0, limit: int = Query(100, ge=1, le=1000), db: AsyncSession = Depends(get_db)):
    return await device_service.get_devices(db, skip=skip, limit=limit)

@router.get("/{device_id}", response_model=DeviceOut)
async def read_device(device_id: str, db: AsyncSession = Depends(get_db)):
    return await device_service.require_device(db, device_id)

@router.put("/{device_id}", response_model=DeviceOut)
async def update_device_endpoint(device_id: str, device: DeviceUpdate, db: AsyncSession = Depends(get_db)):
    db_device = await device_service.require_device(db, device_id)
    return await device_service.update_device(db, db_device, device)

@router.get("/{device_id}/config", response_model=DeviceConfigOut)
async def read_device_config(device_id: str, db: AsyncSession = Depends(get_db)):
    db_device = await device_service.require_device(db, device_id)
    return DeviceConfigOut(config=DeviceConfig.model_validate(db_device.config or {}), timestamp=utcnow())

@router.get("/{device_id}/status", response_model=DeviceStatusOut)
async def read_device_status(device_id: str, db: AsyncSession = Depends(get_db)):
    db_device = await device_service.require_device(db, device_id)
    pending = await command_service.get_pending_commands(db, db_device.id)
    lost_mode_command = next(
        (c for c in pending if c.command_type in command_service.LOST_MODE_COMMANDS), None
    )
    return DeviceStatusOut(
        device=db_device,
        latest_location=await position_service.get_latest_location(db, db_device.id),
        unread_alerts_count=await geofence_service.count_unread_alerts(db, db_device.id),
        pending_commands=pending,
        lost_mode_command=lost_mode_command,
        has_lost_mode_command=lost_mode_command is not None,
    )

@router.get("/{device_id}/history", response_model=List[LocationOut])
async def read_device_history(device_id: str, limit: int = Query(100, ge=1, le=1000), db: AsyncSession = Depends(get_db)):
    db_device = await device_service.require_device(db, device_id)
    return await position_service.get_device_locations(db, db_device.id, limit=limit)

@router.get("/{device_id}/status-history", response_model=List[StatusHistoryOut])
async def read_status_history(device_id: str, limit: int = Query(100, ge=1, le=1000), db: AsyncSession = Depends(get_db)):
    db_device = await device_service.require_device(db, device_id)
    return await device_service.get_status_history(db, db_device.id, limit=limit)

# ----------------------------------------------------------------------------
# Comandos
# ----------------------------------------------------------------------------

@router.get("/{device_id}/commands", response_model=List[CommandOut])
async def read_pending_commands(device_id: str, db: AsyncSession = Depends(get_db)):
    db_device = await device_service.require_device(db, device_id)
    return await command_service.get_pending_commands(db, db_device.id)

@router.post("/{device_id}/commands", response_model=CommandOut, status_code=201)
async def create_command(device_id: str, command: CommandCreate, db: AsyncSession = Depends(get_db)):
    db_device = await device_service.require_device(db, device_id)
    return await command_service.create_command(
        db, db_device, command.command_type, command.payload, source="web_interface"
    )

@router.delete("/{device_id}/commands/{command_id}", response_model=CommandCancelOut)
async def cancel_command(device_id: str, command_id: int, db: AsyncSession = Depends(get_db)):
    db_device = await device_service.require_device(db, device_id)
    command = await command_service.cancel_command(db, command_id, device_pk=db_device.id)
    return CommandCancelOut(message="Command cancelled", status=command.status)

@router.post("/{device_id}/lost-mode", response_model=LostModeOut)
async def toggle_lost_mode(device_id: str, request: LostModeRequest, db: AsyncSession = Depends(get_db)):
    db_device = await device_service.require_device(db, device_id)
    command = await command_service.set_lost_mode(db, db_device, request.lost_mode)
    message = "Lost mode command sent to device" if request.lost_mode else "Lost mode disable command sent to device"
    return LostModeOut(message=message, command_id=command.id, status=command.status)

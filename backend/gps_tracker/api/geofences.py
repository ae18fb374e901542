"""
Geocercas y alertas de geocerca (panel).

Crear la primera geocerca activa de un dispositivo o eliminar la última
encola automáticamente el comando enable/disable_geofence_monitoring.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from gps_tracker.dependencies import get_db
from gps_tracker.schemas import geofence as schemas
from gps_tracker.services import device_service, geofence_service
from gps_tracker.services.geofence_service import GeofenceChange

router = APIRouter()

def _change_out(change: GeofenceChange) -> schemas.GeofenceChangeOut:
    auto_command = None
    if change.auto_command is not None:
        command_type = change.auto_command.command_type.value
        auto_command = schemas.AutoCommand(
            id=change.auto_command.id,
            type=command_type,
            message=(
                "GPS monitoring automatically enabled"
                if command_type == "enable_geofence_monitoring"
                else "GPS monitoring automatically disabled"
            ),
        )
    return schemas.GeofenceChangeOut(
        geofence=change.geofence,
        auto_command=auto_command,
        message=change.message,
        warning=change.warning,
    )

@router.get("/devices/{device_id}/geofences", response_model=List[schemas.Geofence])
async def read_device_geofences(device_id: str, db: AsyncSession = Depends(get_db)):
    db_device = await device_service.require_device(db, device_id)
    return await geofence_service.get_geofences_by_device(db, db_device.id)

@router.post("/devices/{device_id}/geofences", response_model=schemas.GeofenceChangeOut, status_code=201)
async def create_geofence(device_id: str, geofence: schemas.GeofenceCreate, db: AsyncSession = Depends(get_db)):
    db_device = await device_service.require_device(db, device_id)
    change = await geofence_service.create_geofence(db, db_device, geofence)
    return _change_out(change)

@router.get("/geofences/{geofence_id}", response_model=schemas.Geofence)
async def read_geofence(geofence_id: int, db: AsyncSession = Depends(get_db)):
    return await geofence_service.require_geofence(db, geofence_id)

@router.put("/geofences/{geofence_id}", response_model=schemas.GeofenceChangeOut)
async def update_geofence(geofence_id: int, geofence: schemas.GeofenceUpdate, db: AsyncSession = Depends(get_db)):
    db_geofence = await geofence_service.require_geofence(db, geofence_id)
    db_device = await device_service.get_device(db, db_geofence.device_id)
    change = await geofence_service.update_geofence(db, db_device, db_geofence, geofence)
    return _change_out(change)

@router.delete("/geofences/{geofence_id}", response_model=schemas.GeofenceChangeOut)
async def delete_geofence(geofence_id: int, db: AsyncSession = Depends(get_db)):
    db_geofence = await geofence_service.require_geofence(db, geofence_id)
    db_device = await device_service.get_device(db, db_geofence.device_id)
    change = await geofence_service.delete_geofence(db, db_device, db_geofence)
    return _change_out(change)

@router.post("/devices/{device_id}/sync-geofencing", response_model=schemas.GeofenceSyncOut)
async def sync_geofencing(device_id: str, db: AsyncSession = Depends(get_db)):
    db_device = await device_service.require_device(db, device_id)
    command, active = await geofence_service.sync_geofencing(db, db_device)
    if active:
        return schemas.GeofenceSyncOut(
            action="enabled",
            message=f"Geofencing enabled for {active} zones",
            command_id=command.id,
            geofences=active,
        )
    return schemas.GeofenceSyncOut(
        action="disabled",
        message="Geofencing disabled - no active zones",
        command_id=command.id,
        geofences=0,
    )

@router.get("/devices/{device_id}/geofence-alerts", response_model=List[schemas.GeofenceAlertOut])
async def read_geofence_alerts(device_id: str, limit: int = Query(50, ge=1, le=1000), db: AsyncSession = Depends(get_db)):
    db_device = await device_service.require_device(db, device_id)
    return await geofence_service.get_geofence_alerts(db, db_device.id, limit=limit)

@router.get("/devices/{device_id}/unread-alerts-count", response_model=schemas.UnreadAlertsCount)
async def read_unread_alerts_count(device_id: str, db: AsyncSession = Depends(get_db)):
    db_device = await device_service.require_device(db, device_id)
    return schemas.UnreadAlertsCount(count=await geofence_service.count_unread_alerts(db, db_device.id))

@router.post("/geofence-alerts/{alert_id}/read", response_model=schemas.GeofenceAlertOut)
async def mark_alert_as_read(alert_id: int, db: AsyncSession = Depends(get_db)):
    return await geofence_service.mark_alert_as_read(db, alert_id)

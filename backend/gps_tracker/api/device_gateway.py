"""
Endpoints llamados por el firmware de los rastreadores (sin autenticación).

Un dispositivo desconocido nunca recibe un 404: se le responde 200 con un
comando reboot sintético para que reinicie y se vuelva a registrar.
"""
import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from gps_tracker.core.clock import utcnow
from gps_tracker.core.config import settings
from gps_tracker.dependencies import get_db, get_device_monitor
from gps_tracker.schemas.command import CommandAck, CommandAckOut, CommandOut, HeartbeatOut, RebootInstruction
from gps_tracker.schemas.device import DeviceExists, DeviceOut, DeviceRegister, HeartbeatIn
from gps_tracker.schemas.position import LocationIn, LocationOut
from gps_tracker.services import command_service, device_service, geofence_service, position_service
from gps_tracker.services.device_monitor import DeviceMonitor

logger = logging.getLogger(__name__)
router = APIRouter()

def reboot_response(device_id: str, delay_ms: int, message: str) -> JSONResponse:
    logger.warning(f"⚠️ Dispositivo {device_id} no registrado - se envía comando reboot")
    body = RebootInstruction(
        message=message,
        commands=[CommandOut(**command_service.build_reboot_command(delay_ms))],
    )
    return JSONResponse(status_code=200, content=body.model_dump(mode="json", by_alias=True))

@router.post("/register", response_model=DeviceOut, status_code=201)
async def register_device(
    device: DeviceRegister,
    db: AsyncSession = Depends(get_db),
    monitor: DeviceMonitor = Depends(get_device_monitor),
):
    db_device, created = await device_service.register_device(db, device)
    await monitor.record_activity(db, db_device)
    if not created:
        return JSONResponse(
            status_code=200,
            content=DeviceOut.model_validate(db_device).model_dump(mode="json", by_alias=True),
        )
    return db_device

@router.get("/{device_id}/exists", response_model=DeviceExists)
async def device_exists(device_id: str, db: AsyncSession = Depends(get_db)):
    return DeviceExists(exists=await device_service.device_exists(db, device_id))

@router.post("/{device_id}/location", response_model=LocationOut, status_code=201)
async def report_location(
    device_id: str,
    location: LocationIn,
    db: AsyncSession = Depends(get_db),
    monitor: DeviceMonitor = Depends(get_device_monitor),
):
    db_device = await device_service.get_device_by_device_id(db, device_id)
    if db_device is None:
        return reboot_response(
            device_id,
            settings.REBOOT_DELAY_LOCATION_MS,
            "Device not found in database. Location not saved. Please reboot to re-register.",
        )

    db_location = await position_service.add_device_location(db, db_device.id, location)
    await monitor.record_activity(db, db_device)
    await geofence_service.check_geofencing(db, db_device, location.latitude, location.longitude)
    return db_location

@router.post("/{device_id}/heartbeat", response_model=HeartbeatOut)
async def heartbeat(
    device_id: str,
    heartbeat_in: HeartbeatIn,
    db: AsyncSession = Depends(get_db),
    monitor: DeviceMonitor = Depends(get_device_monitor),
):
    db_device = await device_service.get_device_by_device_id(db, device_id)
    if db_device is None:
        return reboot_response(
            device_id,
            settings.REBOOT_DELAY_HEARTBEAT_MS,
            "Device not found in database. Please reboot to re-register.",
        )

    await monitor.record_activity(db, db_device)
    await device_service.add_status_history(db, db_device, heartbeat_in)
    pending = await command_service.get_pending_commands(db, db_device.id)
    return HeartbeatOut(
        timestamp=utcnow(),
        config=db_device.config or {},
        commands=[CommandOut.model_validate(c) for c in pending],
    )

@router.post("/{device_id}/commands/{command_id}/ack", response_model=CommandAckOut)
async def acknowledge_command(
    device_id: str,
    command_id: int,
    ack: CommandAck,
    db: AsyncSession = Depends(get_db),
    monitor: DeviceMonitor = Depends(get_device_monitor),
):
    db_device = await device_service.get_device_by_device_id(db, device_id)
    if db_device is None:
        return reboot_response(
            device_id,
            settings.REBOOT_DELAY_HEARTBEAT_MS,
            "Device not found in database. Please reboot to re-register.",
        )

    await monitor.record_activity(db, db_device)
    command = await command_service.update_command_status(
        db, command_id, ack.status, device_pk=db_device.id
    )
    return CommandAckOut(timestamp=utcnow(), status=command.status)

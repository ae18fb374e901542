import logging
from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from gps_tracker.core.errors import NotFoundError
from gps_tracker.models.device import Device, DeviceStatus
from gps_tracker.models.status_history import DeviceStatusHistory
from gps_tracker.models.system_log import LogCategory
from gps_tracker.schemas.device import DeviceRegister, DeviceUpdate, HeartbeatIn, DEFAULT_DEVICE_CONFIG
from gps_tracker.services import system_log_service

logger = logging.getLogger(__name__)

async def get_device_by_device_id(db: AsyncSession, device_id: str) -> Optional[Device]:
    result = await db.execute(
        select(Device).where(Device.device_id == device_id)
    )
    return result.scalars().first()

async def require_device(db: AsyncSession, device_id: str) -> Device:
    db_device = await get_device_by_device_id(db, device_id)
    if db_device is None:
        raise NotFoundError("Device", device_id)
    return db_device

async def get_device(db: AsyncSession, pk: int) -> Optional[Device]:
    result = await db.execute(select(Device).where(Device.id == pk))
    return result.scalars().first()

async def get_devices(db: AsyncSession, skip: int = 0, limit: int = 100) -> List[Device]:
    result = await db.execute(
        select(Device).order_by(Device.created_at.desc(), Device.id.desc()).offset(skip).limit(limit)
    )
    return result.scalars().all()

async def device_exists(db: AsyncSession, device_id: str) -> bool:
    result = await db.execute(select(Device.id).where(Device.device_id == device_id))
    return result.first() is not None

async def register_device(db: AsyncSession, data: DeviceRegister) -> Tuple[Device, bool]:
    """
    Crea el dispositivo con la configuración por defecto o, si ya existe,
    actualiza sus metadatos de hardware/firmware conservando la configuración.
    Devuelve (dispositivo, creado).
    """
    db_device = await get_device_by_device_id(db, data.device_id)
    if db_device is not None:
        db_device.device_name = data.device_name or db_device.device_name
        db_device.device_type = data.device_type
        db_device.firmware_version = data.firmware_version
        db_device.hardware_version = data.hardware_version
        await system_log_service.add_system_log(
            db,
            "Device re-registered",
            category=LogCategory.SYSTEM,
            device_id=db_device.id,
            metadata={"deviceData": data.model_dump(by_alias=True)},
        )
        await db.commit()
        await db.refresh(db_device)
        logger.info(f"🔁 Dispositivo re-registrado: {db_device.device_id}")
        return db_device, False

    default_config = DEFAULT_DEVICE_CONFIG.to_storage()
    db_device = Device(
        device_id=data.device_id,
        device_name=data.device_name,
        device_type=data.device_type,
        firmware_version=data.firmware_version,
        hardware_version=data.hardware_version,
        config=default_config,
        status=DeviceStatus.OFFLINE,
        is_active=True,
    )
    db.add(db_device)
    await db.flush()
    await system_log_service.add_system_log(
        db,
        f"Device registered with default config: {db_device.label} ({db_device.device_id})",
        category=LogCategory.SYSTEM,
        device_id=db_device.id,
        metadata={"defaultConfig": default_config},
    )
    await db.commit()
    await db.refresh(db_device)
    logger.info(f"✅ Nuevo dispositivo registrado: {db_device.device_id} con configuración por defecto")
    return db_device, True

async def update_device(db: AsyncSession, db_device: Device, device_update: DeviceUpdate) -> Device:
    """Cambios desde el panel: nombre y estado manual (modo perdido, error...)."""
    changes = device_update.model_dump(exclude_unset=True)
    if "device_name" in changes:
        db_device.device_name = changes["device_name"]
    if changes.get("status") is not None and changes["status"] != db_device.status:
        previous = db_device.status
        db_device.status = changes["status"]
        await system_log_service.add_system_log(
            db,
            f"Device status manually changed from {previous.value} to {db_device.status.value}",
            category=LogCategory.SYSTEM,
            device_id=db_device.id,
        )
    await db.commit()
    await db.refresh(db_device)
    return db_device

async def add_status_history(db: AsyncSession, db_device: Device, heartbeat: HeartbeatIn) -> DeviceStatusHistory:
    entry = DeviceStatusHistory(
        device_id=db_device.id,
        status=heartbeat.status,
        battery_level=heartbeat.battery_level,
        net_signal_quality=heartbeat.network.signal_quality,
        net_operator=heartbeat.network.operator,
        lost_mode=heartbeat.gps.lost_mode_active,
        geofencing_mode=heartbeat.gps.geofence_active,
        gps_hdop=heartbeat.gps.hdop,
        gps_satellites=heartbeat.gps.satellites,
        last_gps_read_attempt=heartbeat.gps.last_read_attempt,
        error_count=heartbeat.error_count,
    )
    db.add(entry)
    await db.commit()
    await db.refresh(entry)
    return entry

async def get_status_history(db: AsyncSession, device_pk: int, limit: int = 50) -> List[DeviceStatusHistory]:
    result = await db.execute(
        select(DeviceStatusHistory)
        .where(DeviceStatusHistory.device_id == device_pk)
        .order_by(DeviceStatusHistory.timestamp.desc(), DeviceStatusHistory.id.desc())
        .limit(limit)
    )
    return result.scalars().all()

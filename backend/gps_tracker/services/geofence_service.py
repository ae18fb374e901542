"""
Geocercas circulares por dispositivo.

- check_geofencing(): evalúa cada posición nueva contra las geocercas activas.
- El alta/baja/edición de geocercas activa o desactiva el GPS de geocercas
  del equipo cuando el número de geocercas activas cruza 0 <-> 1.

Limitación conocida: la pertenencia se evalúa por reporte, sin guardar el
estado anterior. Se genera una alerta 'enter' en cada reporte dentro de la
zona (no solo al cruzar el borde) y las alertas 'exit' no se evalúan.
Hacerlo bien exige guardar dentro/fuera por (dispositivo, geocerca).
"""
import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from gps_tracker.core.clock import utcnow
from gps_tracker.core.errors import ConflictError, NotFoundError
from gps_tracker.core.locks import device_locks
from gps_tracker.models.command import DeviceCommand, CommandType
from gps_tracker.models.device import Device
from gps_tracker.models.geofence import Geofence, GeofenceAlert, AlertType
from gps_tracker.models.system_log import LogLevel, LogCategory
from gps_tracker.schemas.geofence import GeofenceCreate, GeofenceUpdate
from gps_tracker.services import command_service, system_log_service

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6_371_000.0

def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distancia ortodrómica en metros entre dos puntos (grados decimales)."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c

def is_inside_geofence(geofence: Geofence, latitude: float, longitude: float) -> bool:
    # El borde cuenta como dentro
    distance = haversine_distance(latitude, longitude, geofence.center_latitude, geofence.center_longitude)
    return distance <= geofence.radius

@dataclass
class GeofenceChange:
    geofence: Optional[Geofence]
    auto_command: Optional[DeviceCommand] = None
    message: Optional[str] = None
    warning: Optional[str] = None

# ----------------------------------------------------------------------------
# Consultas
# ----------------------------------------------------------------------------

async def get_geofence(db: AsyncSession, geofence_id: int) -> Optional[Geofence]:
    result = await db.execute(select(Geofence).where(Geofence.id == geofence_id))
    return result.scalars().first()

async def require_geofence(db: AsyncSession, geofence_id: int) -> Geofence:
    db_geofence = await get_geofence(db, geofence_id)
    if db_geofence is None:
        raise NotFoundError("Geofence", geofence_id)
    return db_geofence

async def get_geofences_by_device(db: AsyncSession, device_pk: int) -> List[Geofence]:
    result = await db.execute(
        select(Geofence)
        .where(Geofence.device_id == device_pk)
        .order_by(Geofence.created_at.desc(), Geofence.id.desc())
    )
    return result.scalars().all()

async def count_active_geofences(db: AsyncSession, device_pk: int) -> int:
    result = await db.execute(
        select(func.count(Geofence.id)).where(Geofence.device_id == device_pk, Geofence.is_active.is_(True))
    )
    return result.scalar_one()

# ----------------------------------------------------------------------------
# Evaluación de posiciones
# ----------------------------------------------------------------------------

async def check_geofencing(db: AsyncSession, device: Device, latitude: float, longitude: float) -> List[GeofenceAlert]:
    """
    Genera alertas 'enter' para las geocercas activas que contienen la posición.
    Un fallo en una geocerca no interrumpe la evaluación de las demás.
    """
    alerts: List[GeofenceAlert] = []
    for geofence in await get_geofences_by_device(db, device.id):
        if not geofence.is_active:
            continue
        try:
            inside = is_inside_geofence(geofence, latitude, longitude)
        except Exception:
            logger.exception(f"❌ Error evaluando la geocerca {geofence.id} para {device.device_id}")
            continue

        if inside and geofence.alert_on_enter:
            alert = GeofenceAlert(
                device_id=device.id,
                geofence_id=geofence.id,
                alert_type=AlertType.ENTER,
                latitude=latitude,
                longitude=longitude,
            )
            db.add(alert)
            alerts.append(alert)
            await system_log_service.add_system_log(
                db,
                f"Device entered geofence: {geofence.name}",
                level=LogLevel.WARNING,
                category=LogCategory.GEOFENCE,
                device_id=device.id,
                metadata={"geofenceId": geofence.id, "latitude": latitude, "longitude": longitude},
            )

    if alerts:
        await db.commit()
        logger.info(f"📍 {len(alerts)} alertas de geocerca para {device.device_id}")
    return alerts

# ----------------------------------------------------------------------------
# Comandos automáticos de monitorización
# ----------------------------------------------------------------------------

async def _request_monitoring(
    db: AsyncSession,
    device: Device,
    enable: bool,
    payload: dict,
    log_message: str,
) -> DeviceCommand:
    command_type = CommandType.ENABLE_GEOFENCE_MONITORING if enable else CommandType.DISABLE_GEOFENCE_MONITORING
    command = await command_service.create_command_held(db, device, command_type, payload, source="geofence_auto")
    await system_log_service.add_system_log(
        db,
        f"{log_message} (Command: {command.id})",
        category=LogCategory.GEOFENCE,
        device_id=device.id,
        metadata={**payload, "commandId": command.id},
    )
    await db.commit()
    return command

# (motivo, mensaje de registro) según la operación que cruzó el umbral
_MONITORING_TRIGGERS = {
    ("create", True): ("geofence_created", "First geofence created - GPS monitoring enabled automatically"),
    ("update", True): ("geofence_activated", "Geofence activated - GPS monitoring enabled automatically"),
    ("update", False): ("geofence_deactivated", "Last active geofence deactivated - GPS monitoring disabled automatically"),
    ("delete", False): ("last_geofence_deleted", "Last geofence deleted - GPS monitoring disabled automatically"),
}

async def _on_active_count_change(
    db: AsyncSession,
    device: Device,
    geofence_id: int,
    operation: str,
    before: int,
    after: int,
    change: GeofenceChange,
) -> None:
    """Crea el comando enable/disable si el recuento de geocercas activas cruza 0 <-> 1."""
    if before == 0 and after > 0:
        enable = True
    elif before > 0 and after == 0:
        enable = False
    else:
        return

    device_pk, device_ref = device.id, device.device_id
    reason, log_message = _MONITORING_TRIGGERS[(operation, enable)]
    payload = {"reason": reason, "geofenceId": geofence_id}
    action = "enable" if enable else "disable"
    try:
        change.auto_command = await _request_monitoring(db, device, enable, payload, log_message)
        logger.info(f"✅ Monitorización GPS ({action}) automática para {device_ref}: comando {change.auto_command.id}")
    except ConflictError as e:
        # Ya hay uno pendiente del mismo tipo: el objetivo ya está cubierto
        logger.warning(f"⚠️ Comando {action}_geofence_monitoring ya pendiente para {device_ref} (id={e.command_id})")
        change.warning = f"Geofence saved but a {action} monitoring command was already pending"
        await system_log_service.add_system_log(
            db,
            f"Automatic {action} of GPS monitoring skipped: command already pending",
            level=LogLevel.WARNING,
            category=LogCategory.GEOFENCE,
            device_id=device_pk,
            metadata={"geofenceId": geofence_id, "pendingCommandId": e.command_id},
        )
        await db.commit()

# ----------------------------------------------------------------------------
# Ciclo de vida de las geocercas
# ----------------------------------------------------------------------------

# El recuento antes/después y la escritura van bajo el lock del dispositivo:
# dos cambios simultáneos no pueden leer el mismo 'before'.

async def create_geofence(db: AsyncSession, device: Device, geofence_in: GeofenceCreate) -> GeofenceChange:
    device_pk = device.id
    async with device_locks.hold(device_pk):
        before = await count_active_geofences(db, device_pk)
        db_geofence = Geofence(device_id=device_pk, **geofence_in.model_dump())
        db.add(db_geofence)
        await db.commit()
        await db.refresh(db_geofence)
        logger.info(f"📍 Geocerca creada: {db_geofence.name} (ID: {db_geofence.id}) para {device.device_id}")

        after = await count_active_geofences(db, device_pk)
        change = GeofenceChange(geofence=db_geofence)
        await _on_active_count_change(db, device, db_geofence.id, "create", before, after, change)
    if change.auto_command is None and change.warning is None and after > 0:
        change.message = "Geofence added to existing monitoring"
    return change

async def update_geofence(db: AsyncSession, device: Device, db_geofence: Geofence, geofence_update: GeofenceUpdate) -> GeofenceChange:
    device_pk = device.id
    async with device_locks.hold(device_pk):
        before = await count_active_geofences(db, device_pk)
        for field, value in geofence_update.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(db_geofence, field, value)
        db_geofence.updated_at = utcnow()
        await db.commit()
        await db.refresh(db_geofence)
        logger.info(f"📝 Geocerca actualizada: {db_geofence.name}")

        after = await count_active_geofences(db, device_pk)
        change = GeofenceChange(geofence=db_geofence)
        await _on_active_count_change(db, device, db_geofence.id, "update", before, after, change)
    return change

async def delete_geofence(db: AsyncSession, device: Device, db_geofence: Geofence) -> GeofenceChange:
    device_pk = device.id
    async with device_locks.hold(device_pk):
        before = await count_active_geofences(db, device_pk)
        geofence_id = db_geofence.id
        await db.delete(db_geofence)
        await db.commit()
        logger.info(f"🗑️ Geocerca {geofence_id} eliminada")

        after = await count_active_geofences(db, device_pk)
        change = GeofenceChange(geofence=None)
        await _on_active_count_change(db, device, geofence_id, "delete", before, after, change)
    if change.auto_command is None and change.warning is None:
        change.message = "Geofence deleted - GPS monitoring continues for remaining zones"
    return change

async def sync_geofencing(db: AsyncSession, device: Device) -> Tuple[DeviceCommand, int]:
    """
    Reparación manual: recalcula las geocercas activas y fuerza el comando
    correcto (enable si hay alguna, disable si no hay ninguna), cancelando el
    pendiente de sentido contrario. Si ya hay uno pendiente del tipo correcto
    se reutiliza. Devuelve (comando, número de geocercas activas).
    """
    active = await count_active_geofences(db, device.id)
    if active > 0:
        command_type, opposite = CommandType.ENABLE_GEOFENCE_MONITORING, CommandType.DISABLE_GEOFENCE_MONITORING
        payload = {"reason": "manual_sync", "geofenceCount": active}
    else:
        command_type, opposite = CommandType.DISABLE_GEOFENCE_MONITORING, CommandType.ENABLE_GEOFENCE_MONITORING
        payload = {"reason": "manual_sync_no_geofences"}

    try:
        command = await command_service.replace_pending(
            db, device, command_type, opposite, payload, source="manual_sync"
        )
    except ConflictError as e:
        command = await command_service.get_command(db, e.command_id)

    await system_log_service.add_system_log(
        db,
        f"Manual geofencing sync - {'enable' if active else 'disable'} command pending (Command: {command.id})",
        category=LogCategory.GEOFENCE,
        device_id=device.id,
        metadata={"commandId": command.id, "geofenceCount": active},
    )
    await db.commit()
    return command, active

# ----------------------------------------------------------------------------
# Alertas
# ----------------------------------------------------------------------------

async def get_geofence_alerts(db: AsyncSession, device_pk: int, limit: int = 50) -> List[GeofenceAlert]:
    result = await db.execute(
        select(GeofenceAlert)
        .where(GeofenceAlert.device_id == device_pk)
        .order_by(GeofenceAlert.triggered_at.desc(), GeofenceAlert.id.desc())
        .limit(limit)
    )
    return result.scalars().all()

async def count_unread_alerts(db: AsyncSession, device_pk: int) -> int:
    result = await db.execute(
        select(func.count(GeofenceAlert.id)).where(
            GeofenceAlert.device_id == device_pk, GeofenceAlert.is_read.is_(False)
        )
    )
    return result.scalar_one()

async def mark_alert_as_read(db: AsyncSession, alert_id: int) -> GeofenceAlert:
    result = await db.execute(select(GeofenceAlert).where(GeofenceAlert.id == alert_id))
    alert = result.scalars().first()
    if alert is None:
        raise NotFoundError("Geofence alert", alert_id)
    if not alert.is_read:
        alert.is_read = True
        alert.read_at = utcnow()
        await db.commit()
        await db.refresh(alert)
    return alert

"""
Cola de comandos por dispositivo.

Invariante: como máximo un comando 'pending' por (dispositivo, tipo).
La comprobación y la inserción se hacen bajo el lock del dispositivo y,
además, el índice único parcial de device_commands rechaza el duplicado
si otro proceso se adelanta.
"""
import logging
import time
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from gps_tracker.core.clock import utcnow
from gps_tracker.core.config import settings
from gps_tracker.core.errors import ConflictError, NotFoundError, PayloadValidationError
from gps_tracker.core.locks import device_locks
from gps_tracker.models.command import DeviceCommand, CommandType, CommandStatus
from gps_tracker.models.device import Device
from gps_tracker.models.system_log import LogCategory
from gps_tracker.schemas.device import DeviceConfig
from gps_tracker.services import system_log_service

logger = logging.getLogger(__name__)

LOST_MODE_COMMANDS = (CommandType.ENABLE_LOST_MODE, CommandType.DISABLE_LOST_MODE)

async def get_command(db: AsyncSession, command_id: int) -> Optional[DeviceCommand]:
    result = await db.execute(select(DeviceCommand).where(DeviceCommand.id == command_id))
    return result.scalars().first()

async def get_pending_commands(db: AsyncSession, device_pk: int) -> List[DeviceCommand]:
    """Comandos pendientes, del más reciente al más antiguo. Es lo que viaja en el heartbeat."""
    result = await db.execute(
        select(DeviceCommand)
        .where(DeviceCommand.device_id == device_pk, DeviceCommand.status == CommandStatus.PENDING)
        .order_by(DeviceCommand.created_at.desc(), DeviceCommand.id.desc())
    )
    return result.scalars().all()

async def _find_pending(db: AsyncSession, device_pk: int, command_type: CommandType) -> Optional[DeviceCommand]:
    result = await db.execute(
        select(DeviceCommand).where(
            DeviceCommand.device_id == device_pk,
            DeviceCommand.command_type == command_type,
            DeviceCommand.status == CommandStatus.PENDING,
        )
    )
    return result.scalars().first()

def _validate_payload(command_type: CommandType, payload: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if command_type is not CommandType.UPDATE_CONFIG:
        return payload
    try:
        return DeviceConfig.model_validate(payload or {}).to_storage()
    except ValidationError as e:
        raise PayloadValidationError("Invalid configuration payload", details=e.errors())

def _conflict(existing: DeviceCommand) -> ConflictError:
    return ConflictError(
        f"A {existing.command_type.value} command is already pending for this device",
        reason="command_already_pending",
        command_id=existing.id,
        can_cancel=True,
    )

async def _create_locked(
    db: AsyncSession,
    device: Device,
    command_type: CommandType,
    payload: Optional[Dict[str, Any]],
    source: str,
) -> DeviceCommand:
    device_pk = device.id
    existing = await _find_pending(db, device_pk, command_type)
    if existing is not None:
        raise _conflict(existing)

    now = utcnow()
    command = DeviceCommand(
        device_id=device_pk,
        command_type=command_type,
        command_data=payload,
        status=CommandStatus.PENDING,
        created_at=now,
        expires_at=now + timedelta(seconds=settings.COMMAND_TTL_SECONDS) if settings.COMMAND_TTL_SECONDS > 0 else None,
    )
    db.add(command)
    try:
        await db.flush()
    except IntegrityError:
        # Otro proceso insertó el mismo tipo entre la comprobación y el insert
        await db.rollback()
        existing = await _find_pending(db, device_pk, command_type)
        if existing is None:
            raise
        raise _conflict(existing)

    await system_log_service.add_system_log(
        db,
        f"Command created: {command_type.value}",
        category=LogCategory.COMMAND,
        device_id=device_pk,
        metadata={"commandId": command.id, "commandData": payload, "source": source},
    )
    await db.commit()
    await db.refresh(command)
    logger.info(f"✅ Comando creado: {command_type.value} para {device.device_id} (id={command.id})")
    return command

async def create_command(
    db: AsyncSession,
    device: Device,
    command_type: CommandType,
    payload: Optional[Dict[str, Any]] = None,
    source: str = "direct_api",
) -> DeviceCommand:
    """
    Encola un comando en estado 'pending'.
    Lanza ConflictError si ya hay uno pendiente del mismo tipo para el dispositivo.
    """
    command_type = CommandType(command_type)
    payload = _validate_payload(command_type, payload)
    async with device_locks.hold(device.id):
        return await _create_locked(db, device, command_type, payload, source)

async def create_command_held(
    db: AsyncSession,
    device: Device,
    command_type: CommandType,
    payload: Optional[Dict[str, Any]] = None,
    source: str = "direct_api",
) -> DeviceCommand:
    """Igual que create_command, para quien ya tiene el lock del dispositivo."""
    command_type = CommandType(command_type)
    return await _create_locked(db, device, command_type, _validate_payload(command_type, payload), source)

async def _apply_config(db: AsyncSession, command: DeviceCommand) -> None:
    device = await db.get(Device, command.device_id, with_for_update=True)
    if device is None:
        raise NotFoundError("Device", command.device_id)
    config = DeviceConfig.model_validate(command.command_data or {}).to_storage()
    device.config = config
    await system_log_service.add_system_log(
        db,
        "Configuration successfully applied by device",
        category=LogCategory.CONFIG,
        device_id=device.id,
        metadata={"commandId": command.id, "appliedConfig": config},
    )

async def update_command_status(
    db: AsyncSession,
    command_id: int,
    status: CommandStatus,
    timestamp: Optional[datetime] = None,
    device_pk: Optional[int] = None,
) -> DeviceCommand:
    """
    Cambia el estado de un comando y sella la marca de tiempo correspondiente.
    Un 'executed' de update_config sustituye la configuración del dispositivo
    en la misma transacción; repetir el ack vuelve a aplicar la misma config.
    """
    status = CommandStatus(status)
    command = await get_command(db, command_id)
    if command is None or (device_pk is not None and command.device_id != device_pk):
        raise NotFoundError("Command", command_id)

    async with device_locks.hold(command.device_id):
        stamp = timestamp or utcnow()
        command.status = status
        if status is CommandStatus.SENT:
            command.sent_at = stamp
        elif status is CommandStatus.ACKNOWLEDGED:
            command.acknowledged_at = stamp
        elif status is CommandStatus.EXECUTED:
            command.executed_at = stamp
            if command.command_type is CommandType.UPDATE_CONFIG:
                await _apply_config(db, command)

        await db.commit()
        await db.refresh(command)
    logger.info(f"📬 Comando {command.id} ({command.command_type.value}) -> {status.value}")
    return command

async def _cancel_locked(db: AsyncSession, command: DeviceCommand, reason: str) -> bool:
    if command.status.is_terminal:
        return False
    command.status = CommandStatus.CANCELLED
    await system_log_service.add_system_log(
        db,
        f"Command {command.id} cancelled by {reason}",
        category=LogCategory.COMMAND,
        device_id=command.device_id,
        metadata={"commandId": command.id, "commandType": command.command_type.value},
    )
    await db.flush()
    return True

async def cancel_command(db: AsyncSession, command_id: int, device_pk: Optional[int] = None) -> DeviceCommand:
    """Cancelar un comando ya terminado no es un error: se devuelve tal cual."""
    command = await get_command(db, command_id)
    if command is None or (device_pk is not None and command.device_id != device_pk):
        raise NotFoundError("Command", command_id)
    async with device_locks.hold(command.device_id):
        if await _cancel_locked(db, command, "user"):
            await db.commit()
            await db.refresh(command)
    return command

async def replace_pending(
    db: AsyncSession,
    device: Device,
    command_type: CommandType,
    opposite_type: CommandType,
    payload: Optional[Dict[str, Any]] = None,
    source: str = "direct_api",
) -> DeviceCommand:
    """
    Protocolo en dos pasos para comandos con sentido opuesto (activar/desactivar):
    cancela el pendiente contrario y crea el nuevo. Si ya hay uno pendiente
    del mismo tipo se responde con conflicto, indicando que se puede cancelar.
    """
    async with device_locks.hold(device.id):
        opposite = await _find_pending(db, device.id, opposite_type)
        if opposite is not None:
            await _cancel_locked(db, opposite, f"{command_type.value} request")
        return await _create_locked(db, device, command_type, payload, source)

async def set_lost_mode(db: AsyncSession, device: Device, enabled: bool) -> DeviceCommand:
    if enabled:
        command_type, opposite = CommandType.ENABLE_LOST_MODE, CommandType.DISABLE_LOST_MODE
    else:
        command_type, opposite = CommandType.DISABLE_LOST_MODE, CommandType.ENABLE_LOST_MODE
    return await replace_pending(db, device, command_type, opposite, source="web_interface")

async def get_pending_lost_mode_command(db: AsyncSession, device_pk: int) -> Optional[DeviceCommand]:
    for command in await get_pending_commands(db, device_pk):
        if command.command_type in LOST_MODE_COMMANDS:
            return command
    return None

async def expire_overdue_commands(db: AsyncSession, now: datetime) -> int:
    """Pasa a 'expired' los comandos pendientes o enviados cuyo expires_at ya pasó."""
    result = await db.execute(
        select(DeviceCommand).where(
            DeviceCommand.status.in_([CommandStatus.PENDING, CommandStatus.SENT]),
            DeviceCommand.expires_at.is_not(None),
            DeviceCommand.expires_at < now,
        )
    )
    expired = result.scalars().all()
    for command in expired:
        command.status = CommandStatus.EXPIRED
        await system_log_service.add_system_log(
            db,
            f"Command {command.id} expired ({command.command_type.value})",
            category=LogCategory.COMMAND,
            device_id=command.device_id,
            metadata={"commandId": command.id, "expiresAt": command.expires_at},
        )
    if expired:
        await db.commit()
    return len(expired)

def build_reboot_command(delay_ms: int) -> Dict[str, Any]:
    """
    Comando reboot sintético (no se guarda) para dispositivos que no están
    registrados: reinician y vuelven a registrarse en lugar de perder datos.
    """
    return {
        "id": f"reboot-{int(time.time() * 1000)}",
        "command_type": CommandType.REBOOT,
        "command_data": {"reason": "device_not_registered", "delay": delay_ms},
        "status": CommandStatus.PENDING,
        "created_at": utcnow(),
    }

"""
Monitor de actividad de los dispositivos.

- Un barrido periódico marca 'offline' a los dispositivos que llevan más de
  HEARTBEAT_TIMEOUT sin contactar.
- Cada petición entrante de un dispositivo pasa por record_activity(), que
  actualiza last_seen y lo devuelve a 'online' si estaba desconectado.

Las dos escrituras son UPDATE condicionales: el paso a 'offline' vuelve a
comprobar last_seen en la misma sentencia, así un barrido con datos viejos
nunca pisa una actividad recién registrada.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional
from sqlalchemy import update, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from gps_tracker.core.clock import utcnow
from gps_tracker.core.locks import device_locks
from gps_tracker.models.device import Device, DeviceStatus
from gps_tracker.models.system_log import LogLevel, LogCategory
from gps_tracker.services import command_service, system_log_service

logger = logging.getLogger(__name__)

HEARTBEAT_TIMEOUT = timedelta(minutes=5)
CHECK_INTERVAL = 60.0  # segundos

class DeviceMonitor:
    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        heartbeat_timeout: timedelta = HEARTBEAT_TIMEOUT,
        check_interval: float = CHECK_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session_factory = session_factory
        self.heartbeat_timeout = heartbeat_timeout
        self.check_interval = check_interval
        self.clock = clock
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            self._task.cancel()
        logger.info("🛰️ Iniciando monitor de dispositivos...")
        self._task = asyncio.create_task(self._run(), name="device-monitor")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Monitor de dispositivos detenido")

    async def _run(self) -> None:
        # El primer barrido se hace al arrancar
        while True:
            await self.check_devices_status()
            await self._sleep(self.check_interval)

    async def check_devices_status(self) -> int:
        """
        Barrido completo. Devuelve cuántos dispositivos pasaron a 'offline'.
        Nunca lanza: los errores se registran y el barrido continúa.
        """
        went_offline = 0
        try:
            now = self.clock()
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Device.id, Device.device_id, Device.device_name, Device.status, Device.last_seen)
                    .order_by(Device.id)
                )
                devices = result.all()

            for device in devices:
                try:
                    if await self._check_device(device, now):
                        went_offline += 1
                except Exception:
                    logger.exception(f"❌ Error comprobando el dispositivo {device.device_id}")

            await self._expire_commands(now)
        except Exception:
            logger.exception("❌ Error en el barrido de estado de dispositivos")
        return went_offline

    async def _check_device(self, device, now: datetime) -> bool:
        if device.last_seen is None:
            # Nunca ha contactado: se mantiene el estado actual
            return False
        if device.status == DeviceStatus.OFFLINE:
            return False
        elapsed = now - device.last_seen
        if elapsed <= self.heartbeat_timeout:
            return False

        cutoff = now - self.heartbeat_timeout
        async with device_locks.hold(device.id):
            async with self.session_factory() as session:
                result = await session.execute(
                    update(Device)
                    .where(
                        Device.id == device.id,
                        Device.status != DeviceStatus.OFFLINE,
                        Device.last_seen.is_not(None),
                        Device.last_seen < cutoff,
                    )
                    .values(status=DeviceStatus.OFFLINE, is_active=False, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    # Llegó actividad entre la lectura y la escritura
                    return False

                minutes = round(elapsed.total_seconds() / 60)
                label = device.device_name or device.device_id
                await system_log_service.add_system_log(
                    session,
                    f"Device {label} went offline - no heartbeat for {minutes} minutes",
                    level=LogLevel.WARNING,
                    category=LogCategory.SYSTEM,
                    device_id=device.id,
                    metadata={"lastSeen": device.last_seen, "minutesOffline": minutes},
                )
                await session.commit()

        logger.warning(f"📴 Dispositivo {device.device_id} desconectado (visto por última vez: {device.last_seen})")
        return True

    async def _expire_commands(self, now: datetime) -> None:
        async with self.session_factory() as session:
            expired = await command_service.expire_overdue_commands(session, now)
        if expired:
            logger.info(f"⌛ {expired} comandos expirados")

    async def record_activity(self, db: AsyncSession, device: Device) -> bool:
        """
        Marca el dispositivo como visto. Si estaba desconectado lo pasa a
        'online' y deja una entrada en el registro; si ya estaba en línea solo
        actualiza last_seen. Devuelve True si hubo reconexión.
        """
        now = self.clock()
        async with device_locks.hold(device.id):
            result = await db.execute(
                update(Device)
                .where(
                    Device.id == device.id,
                    or_(Device.status == DeviceStatus.OFFLINE, Device.is_active.is_(False)),
                )
                .values(status=DeviceStatus.ONLINE, is_active=True, last_seen=now, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            reconnected = result.rowcount > 0
            if reconnected:
                await system_log_service.add_system_log(
                    db,
                    f"Device {device.label} reconnected",
                    level=LogLevel.INFO,
                    category=LogCategory.SYSTEM,
                    device_id=device.id,
                )
            else:
                await db.execute(
                    update(Device)
                    .where(Device.id == device.id)
                    .values(last_seen=now)
                    .execution_options(synchronize_session=False)
                )
            await db.commit()
            await db.refresh(device)

        if reconnected:
            logger.info(f"📶 Dispositivo {device.device_id} en línea tras recibir datos")
        return reconnected

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from fastapi import FastAPI
from gps_tracker.api import device_gateway, devices, geofences, health, system_logs
from gps_tracker.core.config import settings
from gps_tracker.core.database import Base, SessionLocal, engine
from gps_tracker.core.errors import register_exception_handlers
from gps_tracker.models import command, device, geofence, position, status_history, system_log  # noqa: F401 (registra las tablas)
from gps_tracker.services.device_monitor import DeviceMonitor

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

device_monitor = DeviceMonitor(
    SessionLocal,
    heartbeat_timeout=timedelta(seconds=settings.HEARTBEAT_TIMEOUT_SECONDS),
    check_interval=settings.MONITOR_CHECK_INTERVAL_SECONDS,
)

@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.CREATE_TABLES_ON_STARTUP:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("✅ Tablas de la base de datos verificadas")
    monitor = app.state.device_monitor
    if settings.MONITOR_ENABLED:
        monitor.start()
    logger.info(f"🚀 GPS Tracker Server {settings.APP_VERSION} listo")
    yield
    await monitor.stop()
    await engine.dispose()

app = FastAPI(title="GPS Tracker Server", version=settings.APP_VERSION, lifespan=lifespan)
app.state.device_monitor = device_monitor

register_exception_handlers(app)

app.include_router(health.router, prefix="/api", tags=["health"])
app.include_router(device_gateway.router, prefix="/api/device", tags=["device"])
app.include_router(devices.router, prefix="/api/devices", tags=["devices"])
app.include_router(geofences.router, prefix="/api", tags=["geofences"])
app.include_router(system_logs.router, prefix="/api/system-logs", tags=["system-logs"])

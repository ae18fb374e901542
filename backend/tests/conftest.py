import os
from datetime import datetime, timedelta

# La app se importa con una base de datos SQLite y sin monitor en segundo plano
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("MONITOR_ENABLED", "false")
os.environ.setdefault("CREATE_TABLES_ON_STARTUP", "false")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from gps_tracker.core.database import Base
from gps_tracker.dependencies import get_db
from gps_tracker.models import command, device, geofence, position, status_history, system_log  # noqa: F401
from gps_tracker.schemas.device import DeviceRegister
from gps_tracker.services import device_service
from gps_tracker.services.device_monitor import DeviceMonitor


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tracker.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 3, 1, 12, 0, 0))


@pytest.fixture
def monitor(session_factory, clock) -> DeviceMonitor:
    return DeviceMonitor(session_factory, heartbeat_timeout=timedelta(minutes=5), check_interval=60.0, clock=clock)


@pytest_asyncio.fixture
async def tracker(db):
    db_device, _ = await device_service.register_device(
        db, DeviceRegister(device_id="AA:BB", device_name="Tracker")
    )
    return db_device


@pytest_asyncio.fixture
async def client(session_factory, monitor):
    from gps_tracker.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    previous_monitor = app.state.device_monitor
    app.dependency_overrides[get_db] = override_get_db
    app.state.device_monitor = monitor
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
    app.state.device_monitor = previous_monitor

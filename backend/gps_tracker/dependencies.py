from typing import AsyncIterator
from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession
from gps_tracker.core.database import SessionLocal
from gps_tracker.services.device_monitor import DeviceMonitor

async def get_db() -> AsyncIterator[AsyncSession]:
    async with SessionLocal() as session:
        yield session

def get_device_monitor(request: Request) -> DeviceMonitor:
    return request.app.state.device_monitor

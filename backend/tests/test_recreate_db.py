import pytest
from sqlalchemy import func
from sqlalchemy.future import select

from gps_tracker.models.device import Device
from recreate_db import sync_schema


async def _device_count(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count(Device.id)))).scalar_one()


@pytest.mark.asyncio
async def test_sync_schema_keeps_data_without_drop(engine, session_factory, tracker) -> None:
    tables = await sync_schema(engine)

    assert "device_commands" in tables
    assert "system_logs" in tables
    assert await _device_count(session_factory) == 1


@pytest.mark.asyncio
async def test_sync_schema_with_drop_starts_empty(engine, session_factory, tracker) -> None:
    await sync_schema(engine, drop=True)

    assert await _device_count(session_factory) == 0

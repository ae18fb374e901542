from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from typing import List, Optional

from gps_tracker.core.clock import utcnow
from gps_tracker.models.position import DeviceLocation
from gps_tracker.schemas.position import LocationIn

async def add_device_location(db: AsyncSession, device_pk: int, location_in: LocationIn) -> DeviceLocation:
    db_location = DeviceLocation(
        device_id=device_pk,
        latitude=location_in.latitude,
        longitude=location_in.longitude,
        altitude=location_in.altitude,
        speed=location_in.speed,
        heading=location_in.heading,
        satellites=location_in.satellites,
        hdop=location_in.hdop,
        battery_level=location_in.battery_level,
        signal_quality=location_in.signal_quality,
        network_operator=location_in.network_operator,
        timestamp=utcnow(),
    )
    db.add(db_location)
    await db.commit()
    await db.refresh(db_location)
    return db_location

async def get_device_locations(db: AsyncSession, device_pk: int, limit: int = 100) -> List[DeviceLocation]:
    query = (
        select(DeviceLocation)
        .where(DeviceLocation.device_id == device_pk)
        .order_by(DeviceLocation.timestamp.desc(), DeviceLocation.id.desc())
        .limit(limit)
    )
    result = await db.execute(query)
    return result.scalars().all()

async def get_latest_location(db: AsyncSession, device_pk: int) -> Optional[DeviceLocation]:
    query = (
        select(DeviceLocation)
        .where(DeviceLocation.device_id == device_pk)
        .order_by(DeviceLocation.timestamp.desc(), DeviceLocation.id.desc())
        .limit(1)
    )
    result = await db.execute(query)
    return result.scalar_one_or_none()

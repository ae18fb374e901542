from pydantic import Field
from datetime import datetime
from typing import Optional
from gps_tracker.schemas.base import CamelModel

class LocationIn(CamelModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    altitude: Optional[float] = None
    speed: Optional[float] = Field(None, ge=0)
    heading: Optional[float] = Field(None, ge=0, le=360)
    satellites: Optional[int] = Field(None, ge=0)
    hdop: Optional[float] = Field(None, ge=0)
    battery_level: Optional[float] = Field(None, ge=0, le=100)
    signal_quality: Optional[int] = None
    network_operator: Optional[str] = Field(None, max_length=100)

class LocationOut(CamelModel):
    id: int
    device_id: int
    latitude: float
    longitude: float
    altitude: Optional[float] = None
    speed: Optional[float] = None
    heading: Optional[float] = None
    satellites: Optional[int] = None
    hdop: Optional[float] = None
    battery_level: Optional[float] = None
    signal_quality: Optional[int] = None
    network_operator: Optional[str] = None
    timestamp: datetime

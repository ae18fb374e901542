from pydantic import Field
from datetime import datetime
from typing import Optional
from gps_tracker.models.geofence import AlertType
from gps_tracker.schemas.base import CamelModel

class GeofenceBase(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    center_latitude: float = Field(..., ge=-90, le=90)
    center_longitude: float = Field(..., ge=-180, le=180)
    radius: float = Field(..., gt=0)
    is_active: bool = True
    alert_on_enter: bool = True
    alert_on_exit: bool = True

class GeofenceCreate(GeofenceBase):
    pass

class GeofenceUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    center_latitude: Optional[float] = Field(None, ge=-90, le=90)
    center_longitude: Optional[float] = Field(None, ge=-180, le=180)
    radius: Optional[float] = Field(None, gt=0)
    is_active: Optional[bool] = None
    alert_on_enter: Optional[bool] = None
    alert_on_exit: Optional[bool] = None

class Geofence(GeofenceBase):
    id: int
    device_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class AutoCommand(CamelModel):
    id: int
    type: str
    message: str

class GeofenceChangeOut(CamelModel):
    success: bool = True
    geofence: Optional[Geofence] = None
    auto_command: Optional[AutoCommand] = None
    message: Optional[str] = None
    warning: Optional[str] = None

class GeofenceSyncOut(CamelModel):
    success: bool = True
    action: str
    message: str
    command_id: int
    geofences: int

class GeofenceAlertOut(CamelModel):
    id: int
    device_id: int
    geofence_id: int
    alert_type: AlertType
    latitude: float
    longitude: float
    is_read: bool
    triggered_at: Optional[datetime] = None
    read_at: Optional[datetime] = None

class UnreadAlertsCount(CamelModel):
    count: int

from pydantic import Field, field_validator
from typing import Optional, List, Any, Dict
from datetime import datetime
from gps_tracker.models.device import DeviceStatus
from gps_tracker.schemas.base import CamelModel

# Límites en milisegundos (salvo el umbral de batería, en %)
HEARTBEAT_INTERVAL_RANGE = (30_000, 3_600_000)
LOST_MODE_INTERVAL_RANGE = (5_000, 60_000)
GPS_READ_INTERVAL_RANGE = (5_000, 300_000)
LOW_BATTERY_THRESHOLD_RANGE = (5.0, 50.0)

class DeviceConfig(CamelModel):
    heartbeat_interval: int = Field(30_000, ge=HEARTBEAT_INTERVAL_RANGE[0], le=HEARTBEAT_INTERVAL_RANGE[1])
    lost_mode_interval: int = Field(15_000, ge=LOST_MODE_INTERVAL_RANGE[0], le=LOST_MODE_INTERVAL_RANGE[1])
    gps_read_interval: int = 0  # 0 = GPS de geocercas apagado
    low_battery_threshold: float = Field(15.0, ge=LOW_BATTERY_THRESHOLD_RANGE[0], le=LOW_BATTERY_THRESHOLD_RANGE[1])

    @field_validator("gps_read_interval")
    @classmethod
    def check_gps_read_interval(cls, value: int) -> int:
        low, high = GPS_READ_INTERVAL_RANGE
        if value != 0 and not (low <= value <= high):
            raise ValueError(f"gpsReadInterval must be 0 (off) or between {low} and {high} ms")
        return value

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)

DEFAULT_DEVICE_CONFIG = DeviceConfig()

class DeviceRegister(CamelModel):
    device_id: str = Field(..., min_length=1, max_length=100)
    device_name: Optional[str] = Field(None, max_length=255)
    device_type: str = Field("GPS_TRACKER", max_length=50)
    firmware_version: Optional[str] = Field(None, max_length=50)
    hardware_version: Optional[str] = Field(None, max_length=50)

class DeviceUpdate(CamelModel):
    device_name: Optional[str] = Field(None, max_length=255)
    # Cambio manual desde el panel (p. ej. modo perdido)
    status: Optional[DeviceStatus] = None

class DeviceOut(CamelModel):
    id: int
    device_id: str
    device_name: Optional[str] = None
    device_type: str
    firmware_version: Optional[str] = None
    hardware_version: Optional[str] = None
    config: Dict[str, Any] = {}
    status: DeviceStatus
    last_seen: Optional[datetime] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class DeviceConfigOut(CamelModel):
    config: DeviceConfig
    timestamp: datetime

class DeviceExists(CamelModel):
    exists: bool

class GpsStatus(CamelModel):
    lost_mode_active: Optional[bool] = None
    geofence_active: Optional[bool] = None
    hdop: Optional[float] = None
    satellites: Optional[int] = None
    last_read_attempt: Optional[int] = None

class NetworkStatus(CamelModel):
    signal_quality: Optional[str] = None
    operator: Optional[str] = None

    @field_validator("signal_quality", mode="before")
    @classmethod
    def coerce_signal_quality(cls, value):
        # El firmware a veces lo envía como número
        return str(value) if value is not None else None

class HeartbeatIn(CamelModel):
    status: str = Field("online", max_length=50)
    battery_level: Optional[float] = None
    signal_quality: Optional[int] = None
    error_count: Optional[int] = None
    gps: GpsStatus = GpsStatus()
    network: NetworkStatus = NetworkStatus()

class StatusHistoryOut(CamelModel):
    id: int
    status: str
    lost_mode: Optional[bool] = None
    geofencing_mode: Optional[bool] = None
    battery_level: Optional[float] = None
    net_signal_quality: Optional[str] = None
    net_operator: Optional[str] = None
    gps_hdop: Optional[float] = None
    gps_satellites: Optional[int] = None
    last_gps_read_attempt: Optional[int] = None
    error_count: Optional[int] = None
    timestamp: Optional[datetime] = None

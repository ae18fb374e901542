from enum import Enum
from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON
from sqlalchemy.orm import relationship
from gps_tracker.core.clock import utcnow
from gps_tracker.core.database import Base, string_enum

class DeviceStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    LOST_MODE = "lost_mode"
    LOW_BATTERY = "low_battery"
    ERROR = "error"

class Device(Base):
    __tablename__ = "devices"
    id = Column(Integer, primary_key=True)
    device_id = Column(String(100), unique=True, nullable=False)  # MAC del hardware
    device_name = Column(String(255))
    device_type = Column(String(50), nullable=False, default="GPS_TRACKER")
    firmware_version = Column(String(50))
    hardware_version = Column(String(50))

    # Solo se modifica al confirmar un comando update_config
    config = Column(JSON, nullable=False, default=dict)

    status = Column(string_enum(DeviceStatus, 20), nullable=False, default=DeviceStatus.OFFLINE)
    last_seen = Column(DateTime)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    locations = relationship("DeviceLocation", back_populates="device", cascade="all, delete-orphan")
    commands = relationship("DeviceCommand", back_populates="device", cascade="all, delete-orphan")
    status_history = relationship("DeviceStatusHistory", back_populates="device", cascade="all, delete-orphan")
    geofences = relationship("Geofence", back_populates="device", cascade="all, delete-orphan")

    @property
    def label(self) -> str:
        return self.device_name or self.device_id

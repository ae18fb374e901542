from enum import Enum
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from gps_tracker.core.clock import utcnow
from gps_tracker.core.database import Base, string_enum

class AlertType(str, Enum):
    ENTER = "enter"
    EXIT = "exit"

class Geofence(Base):
    __tablename__ = "geofences"
    id = Column(Integer, primary_key=True)
    device_id = Column(Integer, ForeignKey("devices.id"), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text)

    # Geocerca circular: centro + radio en metros
    center_latitude = Column(Float, nullable=False)
    center_longitude = Column(Float, nullable=False)
    radius = Column(Float, nullable=False)

    is_active = Column(Boolean, nullable=False, default=True)
    alert_on_enter = Column(Boolean, nullable=False, default=True)
    alert_on_exit = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    device = relationship("Device", back_populates="geofences")
    alerts = relationship("GeofenceAlert", back_populates="geofence", cascade="all, delete-orphan")

class GeofenceAlert(Base):
    __tablename__ = "geofence_alerts"
    id = Column(Integer, primary_key=True)
    device_id = Column(Integer, ForeignKey("devices.id"), nullable=False)
    geofence_id = Column(Integer, ForeignKey("geofences.id"), nullable=False)

    alert_type = Column(string_enum(AlertType, 20), nullable=False)

    # Posición en el momento de la alerta
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    is_read = Column(Boolean, nullable=False, default=False)

    triggered_at = Column(DateTime, default=utcnow)
    read_at = Column(DateTime)

    geofence = relationship("Geofence", back_populates="alerts")

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from gps_tracker.core.clock import utcnow
from gps_tracker.core.database import Base

class DeviceLocation(Base):
    """Reporte de posición. Solo inserción: nunca se actualiza ni se borra."""
    __tablename__ = "device_locations"
    __table_args__ = (
        Index("idx_device_locations_device_time", "device_id", "timestamp"),
    )

    id = Column(Integer, primary_key=True)
    device_id = Column(Integer, ForeignKey("devices.id"), nullable=False)

    # Datos GPS
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    altitude = Column(Float)
    speed = Column(Float)
    heading = Column(Float)
    satellites = Column(Integer)
    hdop = Column(Float)

    # Telemetría del equipo
    battery_level = Column(Float)
    signal_quality = Column(Integer)
    network_operator = Column(String(100))

    timestamp = Column(DateTime, nullable=False, default=utcnow)
    created_at = Column(DateTime, default=utcnow)

    device = relationship("Device", back_populates="locations")

from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from gps_tracker.core.clock import utcnow
from gps_tracker.core.database import Base

class DeviceStatusHistory(Base):
    __tablename__ = "device_status_history"
    id = Column(Integer, primary_key=True)
    device_id = Column(Integer, ForeignKey("devices.id"), nullable=False)

    status = Column(String(50), nullable=False)

    lost_mode = Column(Boolean)
    geofencing_mode = Column(Boolean)
    battery_level = Column(Float)
    net_signal_quality = Column(String(20))
    net_operator = Column(String(40))
    gps_hdop = Column(Float)
    gps_satellites = Column(Integer)
    last_gps_read_attempt = Column(Integer)
    error_count = Column(Integer)

    timestamp = Column(DateTime, default=utcnow)

    device = relationship("Device", back_populates="status_history")

from enum import Enum
from sqlalchemy import Column, Integer, DateTime, ForeignKey, Text, JSON, Index
from gps_tracker.core.clock import utcnow
from gps_tracker.core.database import Base, string_enum

class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

class LogCategory(str, Enum):
    SYSTEM = "system"
    GPS = "gps"
    NETWORK = "network"
    COMMAND = "command"
    GEOFENCE = "geofence"
    CONFIG = "config"

class SystemLog(Base):
    __tablename__ = "system_logs"
    __table_args__ = (
        Index("idx_system_logs_device_time", "device_id", "timestamp"),
    )

    id = Column(Integer, primary_key=True)
    device_id = Column(Integer, ForeignKey("devices.id"), nullable=True)
    level = Column(string_enum(LogLevel, 20), nullable=False)
    category = Column(string_enum(LogCategory, 50), nullable=False, default=LogCategory.SYSTEM)
    message = Column(Text, nullable=False)
    # 'metadata' está reservado por el declarative Base
    meta = Column("metadata", JSON)
    timestamp = Column(DateTime, default=utcnow)

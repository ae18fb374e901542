from enum import Enum
from sqlalchemy import Column, Integer, DateTime, ForeignKey, Index, JSON, text
from sqlalchemy.orm import relationship
from gps_tracker.core.clock import utcnow
from gps_tracker.core.database import Base, string_enum

class CommandType(str, Enum):
    ENABLE_LOST_MODE = "enable_lost_mode"
    DISABLE_LOST_MODE = "disable_lost_mode"
    GET_LOCATION = "get_location"
    UPDATE_CONFIG = "update_config"
    REBOOT = "reboot"
    ENABLE_GEOFENCE_MONITORING = "enable_geofence_monitoring"
    DISABLE_GEOFENCE_MONITORING = "disable_geofence_monitoring"

class CommandStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    ACKNOWLEDGED = "acknowledged"
    EXECUTED = "executed"
    FAILED = "failed"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_COMMAND_STATUSES

TERMINAL_COMMAND_STATUSES = frozenset({
    CommandStatus.EXECUTED,
    CommandStatus.FAILED,
    CommandStatus.EXPIRED,
    CommandStatus.CANCELLED,
})

# Como máximo un comando 'pending' por (dispositivo, tipo)
_PENDING_ONLY = text("status = 'pending'")

class DeviceCommand(Base):
    __tablename__ = "device_commands"
    __table_args__ = (
        Index(
            "uq_device_commands_pending_type",
            "device_id",
            "command_type",
            unique=True,
            postgresql_where=_PENDING_ONLY,
            sqlite_where=_PENDING_ONLY,
        ),
        Index("idx_device_commands_device_status", "device_id", "status"),
    )

    id = Column(Integer, primary_key=True)
    device_id = Column(Integer, ForeignKey("devices.id"), nullable=False)

    command_type = Column(string_enum(CommandType, 50), nullable=False)
    command_data = Column(JSON)

    status = Column(string_enum(CommandStatus, 20), nullable=False, default=CommandStatus.PENDING)

    created_at = Column(DateTime, default=utcnow)
    sent_at = Column(DateTime)
    acknowledged_at = Column(DateTime)
    executed_at = Column(DateTime)
    expires_at = Column(DateTime)

    device = relationship("Device", back_populates="commands")

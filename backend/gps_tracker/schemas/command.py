from pydantic import Field, field_validator
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from gps_tracker.models.command import CommandType, CommandStatus
from gps_tracker.schemas.base import CamelModel

class CommandCreate(CamelModel):
    command_type: CommandType
    payload: Optional[Dict[str, Any]] = None

class CommandOut(CamelModel):
    # Los reboot sintéticos usan un id textual ('reboot-<ms>')
    id: Union[int, str]
    device_id: Optional[int] = None
    command_type: CommandType
    command_data: Optional[Dict[str, Any]] = None
    status: CommandStatus
    created_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    acknowledged_at: Optional[datetime] = None
    executed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

# Estados que el dispositivo puede reportar en el ack
ACK_STATUSES = frozenset({
    CommandStatus.SENT,
    CommandStatus.ACKNOWLEDGED,
    CommandStatus.EXECUTED,
    CommandStatus.FAILED,
})

class CommandAck(CamelModel):
    status: CommandStatus = CommandStatus.ACKNOWLEDGED

    @field_validator("status")
    @classmethod
    def check_device_status(cls, value: CommandStatus) -> CommandStatus:
        if value not in ACK_STATUSES:
            allowed = ", ".join(sorted(s.value for s in ACK_STATUSES))
            raise ValueError(f"status must be one of: {allowed}")
        return value

class CommandAckOut(CamelModel):
    success: bool = True
    timestamp: datetime
    status: CommandStatus

class CommandCancelOut(CamelModel):
    success: bool = True
    message: str
    status: CommandStatus

class LostModeRequest(CamelModel):
    lost_mode: bool

class LostModeOut(CamelModel):
    success: bool = True
    message: str
    command_id: int
    status: CommandStatus

class HeartbeatOut(CamelModel):
    success: bool = True
    timestamp: datetime
    config: Dict[str, Any]
    commands: List[CommandOut]

class RebootInstruction(CamelModel):
    """Respuesta a un dispositivo no registrado: se le ordena reiniciar y registrarse de nuevo."""
    success: bool = False
    action: str = "reboot"
    reason: str = "device_not_registered"
    message: str
    commands: List[CommandOut]

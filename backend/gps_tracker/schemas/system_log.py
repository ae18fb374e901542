from pydantic import Field
from datetime import datetime
from typing import Any, Dict, List, Optional
from gps_tracker.models.system_log import LogLevel, LogCategory
from gps_tracker.schemas.base import CamelModel

class SystemLogOut(CamelModel):
    id: int
    device_id: Optional[int] = None
    level: LogLevel
    category: LogCategory
    message: str
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="meta", serialization_alias="metadata")
    timestamp: Optional[datetime] = None

class SystemLogPage(CamelModel):
    logs: List[SystemLogOut]
    total_count: int
    has_more: bool

"""
Registro de sistema (auditoría) de dispositivos.

El alta de una entrada nunca debe abortar la operación que la origina:
si no se puede construir, se informa por el logger de Python y se sigue.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional
from fastapi.encoders import jsonable_encoder
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from gps_tracker.models.system_log import SystemLog, LogLevel, LogCategory

logger = logging.getLogger(__name__)

_PY_LEVELS = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}

async def add_system_log(
    db: AsyncSession,
    message: str,
    level: LogLevel = LogLevel.INFO,
    category: LogCategory = LogCategory.SYSTEM,
    device_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[SystemLog]:
    """
    Añade una entrada al registro dentro de la transacción del llamador.
    La inserción va en un SAVEPOINT: si falla, se deshace solo la entrada
    y el trabajo del llamador sigue intacto.
    """
    try:
        entry = SystemLog(
            device_id=device_id,
            level=LogLevel(level),
            category=LogCategory(category),
            message=message,
            meta=jsonable_encoder(metadata) if metadata is not None else None,
        )
    except Exception:
        logger.exception(f"⚠️ No se pudo construir la entrada de system_logs: [{level}] {message}")
        return None

    # Los cambios pendientes del llamador se vuelcan fuera del SAVEPOINT
    await db.flush()
    try:
        async with db.begin_nested():
            db.add(entry)
    except SQLAlchemyError:
        logger.exception(f"⚠️ No se pudo registrar en system_logs: [{level}] {message}")
        return None

    logger.log(_PY_LEVELS[entry.level], f"[{entry.category.value}] device={device_id} {message}")
    return entry

def _log_filters(device_id: Optional[int], day: Optional[date]):
    conditions = []
    if device_id is not None:
        conditions.append(SystemLog.device_id == device_id)
    if day is not None:
        start = datetime.combine(day, datetime.min.time())
        conditions.append(SystemLog.timestamp >= start)
        conditions.append(SystemLog.timestamp < start + timedelta(days=1))
    return conditions

async def get_system_logs(
    db: AsyncSession,
    device_id: Optional[int] = None,
    limit: int = 50,
    day: Optional[date] = None,
    offset: int = 0,
) -> List[SystemLog]:
    query = (
        select(SystemLog)
        .where(*_log_filters(device_id, day))
        .order_by(SystemLog.timestamp.desc(), SystemLog.id.desc())
        .offset(offset)
        .limit(limit)
    )
    result = await db.execute(query)
    return result.scalars().all()

async def count_system_logs(db: AsyncSession, device_id: Optional[int] = None, day: Optional[date] = None) -> int:
    query = select(func.count(SystemLog.id)).where(*_log_filters(device_id, day))
    result = await db.execute(query)
    return result.scalar_one()

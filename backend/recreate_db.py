#!/usr/bin/env python3
"""
Esquema de la base de datos del servidor de rastreadores.

    python recreate_db.py           # crea las tablas que falten
    python recreate_db.py --drop    # borra todo y lo vuelve a crear (¡pierde los datos!)
"""
import argparse
import asyncio
import logging
from sqlalchemy.ext.asyncio import AsyncEngine
from gps_tracker.core.database import Base, engine
from gps_tracker.models import command, device, geofence, position, status_history, system_log  # noqa: F401

logger = logging.getLogger("recreate_db")

async def sync_schema(target: AsyncEngine, drop: bool = False) -> list:
    """Devuelve las tablas del modelo, en orden de creación."""
    async with target.begin() as conn:
        if drop:
            logger.warning(f"🗑️ Eliminando todas las tablas de {target.url.render_as_string(hide_password=True)}")
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    tables = [table.name for table in Base.metadata.sorted_tables]
    logger.info(f"✅ Esquema listo: {', '.join(tables)}")
    return tables

async def main(drop: bool) -> None:
    try:
        await sync_schema(engine, drop=drop)
    finally:
        await engine.dispose()

if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Crea (o recrea con --drop) las tablas del servidor")
    parser.add_argument("--drop", action="store_true", help="borra las tablas existentes antes de crearlas")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    asyncio.run(main(args.drop))

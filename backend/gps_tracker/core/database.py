from enum import Enum
from typing import Type
from sqlalchemy import Enum as SAEnum
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from gps_tracker.core.config import settings

# Motor de la base de datos (asyncpg en producción, aiosqlite en pruebas)
engine = create_async_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)

# expire_on_commit=False: los objetos siguen siendo legibles después del commit
# sin lanzar MissingGreenlet al serializar la respuesta
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()


def string_enum(enum_cls: Type[Enum], length: int = 30) -> SAEnum:
    """Columna de enumeración guardada como texto con el valor del enum ('pending', 'online'...)."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=length,
        validate_strings=True,
        values_callable=lambda members: [m.value for m in members],
    )

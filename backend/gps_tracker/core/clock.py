from datetime import datetime, timezone


def utcnow() -> datetime:
    # Las columnas DateTime se guardan sin zona horaria, siempre en UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)

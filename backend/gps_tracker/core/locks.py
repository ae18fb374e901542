import asyncio
import weakref
from contextlib import asynccontextmanager
from typing import Hashable


class KeyedLocks:
    """
    Un asyncio.Lock por clave (id interno del dispositivo).
    Serializa las escrituras sobre un mismo dispositivo dentro del proceso;
    entre procesos la garantía la da el índice único de la base de datos.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[Hashable, asyncio.Lock]" = weakref.WeakValueDictionary()

    def get(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: Hashable):
        lock = self.get(key)
        async with lock:
            yield


device_locks = KeyedLocks()

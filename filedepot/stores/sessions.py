"""Session store: string keys with a time to live, used through get/set/delete only"""

import logging
import time
from typing import Callable, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from filedepot.connections import ManagedConnection
from filedepot.errors import InternalError

logger = logging.getLogger("filedepot.sessions")


class SessionStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl: int) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def is_alive(self) -> bool: ...


class RedisSessionStore:
    def __init__(self, connection: ManagedConnection[redis.Redis]):
        self.connection = connection

    async def get(self, key: str) -> str | None:
        try:
            client = await self.connection.ensure()
            value = await client.get(key)
        except (RedisError, ConnectionError) as e:
            logger.exception(f"Could not read session key {key}")
            raise InternalError() from e
        return value.decode("utf-8") if isinstance(value, bytes) else value

    async def set(self, key: str, value: str, ttl: int) -> None:
        try:
            client = await self.connection.ensure()
            await client.set(key, value, ex=ttl)
        except (RedisError, ConnectionError) as e:
            logger.exception(f"Could not store session key {key}")
            raise InternalError() from e

    async def delete(self, key: str) -> None:
        try:
            client = await self.connection.ensure()
            await client.delete(key)
        except (RedisError, ConnectionError) as e:
            logger.exception(f"Could not delete session key {key}")
            raise InternalError() from e

    async def is_alive(self) -> bool:
        return await self.connection.is_alive()


class MemorySessionStore:
    """Keeps sessions in a dict, expiring them lazily on read"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._data: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires = entry
        if expires <= self.clock():
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl: int) -> None:
        self._data[key] = (value, self.clock() + ttl)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def is_alive(self) -> bool:
        return True

r"""
Connections between FileDepot and its backends (Elasticsearch and Redis)

Each backend client lives in a ManagedConnection, which makes its state explicit:

    disconnected -> connecting -> connected
                             \-> failed     (after all retries)
    connected -> failed         (when a health check fails)
    failed -> connecting        (on the next use or health check)
    any -> disconnected         (on close)

A connection only becomes `connected` after the backend answered a ping.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncGenerator, Awaitable, Callable, Generic, TypeVar

import redis.asyncio as redis
from elasticsearch import AsyncElasticsearch

from filedepot.config import Settings, get_settings

logger = logging.getLogger("filedepot.connections")

T = TypeVar("T")


class ConnectionState(str, Enum):
    disconnected = "disconnected"
    connecting = "connecting"
    connected = "connected"
    failed = "failed"


class ManagedConnection(Generic[T]):
    def __init__(
        self,
        name: str,
        factory: Callable[[], T],
        ping: Callable[[T], Awaitable[bool]],
        close: Callable[[T], Awaitable[Any]],
        retries: int = 3,
        backoff: float = 0.5,
    ):
        self.name = name
        self._factory = factory
        self._ping = ping
        self._close = close
        self.retries = retries
        self.backoff = backoff
        self.state = ConnectionState.disconnected
        self._client: T | None = None
        self._lock = asyncio.Lock()

    @property
    def client(self) -> T:
        if self.state != ConnectionState.connected or self._client is None:
            raise ConnectionError(f"{self.name} connection is {self.state.value}")
        return self._client

    async def ensure(self) -> T:
        """
        Return the client, reconnecting first if the connection failed earlier.
        Raises ConnectionError if the backend still does not answer, or if the connection was closed.
        """
        if self.state == ConnectionState.connected and self._client is not None:
            return self._client
        if self.state == ConnectionState.disconnected:
            raise ConnectionError(f"{self.name} connection is {self.state.value}")
        return await self.connect()

    async def connect(self, retries: int | None = None) -> T:
        """
        Open the connection and verify it with a ping, retrying with exponential backoff.
        Raises ConnectionError (and ends in state failed) if the backend never answers.
        """
        if retries is None:
            retries = self.retries
        async with self._lock:
            if self.state == ConnectionState.connected and self._client is not None:
                return self._client
            if self._client is not None:
                # left over from before a failed health check
                await self._safe_close(self._client)
                self._client = None
            self.state = ConnectionState.connecting
            for attempt in range(retries + 1):
                client = self._factory()
                try:
                    alive = await self._ping(client)
                except Exception as e:
                    logger.warning(f"Connecting to {self.name} failed (attempt {attempt + 1}): {e}")
                    alive = False
                if alive:
                    self._client = client
                    self.state = ConnectionState.connected
                    logger.info(f"Connected to {self.name}")
                    return client
                await self._safe_close(client)
                if attempt < retries:
                    await asyncio.sleep(self.backoff * 2**attempt)
            self.state = ConnectionState.failed
            raise ConnectionError(f"Cannot connect to {self.name} after {retries + 1} attempts")

    async def is_alive(self) -> bool:
        """
        Ping the backend. Only a successful ping on an open connection counts as alive.
        A failed connection gets one reconnection attempt, so a single lost ping does not stick.
        """
        if self.state == ConnectionState.failed:
            try:
                await self.connect(retries=0)
            except ConnectionError:
                return False
            return True
        if self.state != ConnectionState.connected or self._client is None:
            return False
        try:
            alive = await self._ping(self._client)
        except Exception as e:
            logger.warning(f"Health check for {self.name} failed: {e}")
            alive = False
        if not alive:
            self.state = ConnectionState.failed
        return alive

    async def close(self) -> None:
        if self._client is not None:
            await self._safe_close(self._client)
            self._client = None
        self.state = ConnectionState.disconnected

    async def _safe_close(self, client: T) -> None:
        try:
            await self._close(client)
        except Exception:
            logger.exception(f"Error closing {self.name} connection")


def connect_elastic(settings: Settings) -> AsyncElasticsearch:
    """
    Create an elasticsearch client using the system settings
    """
    if settings.elastic_password:
        return AsyncElasticsearch(
            settings.elastic_host,
            basic_auth=("elastic", settings.elastic_password),
            verify_certs=bool(settings.elastic_verify_ssl),
        )
    else:
        return AsyncElasticsearch(settings.elastic_host or None)


async def _ping_redis(client: redis.Redis) -> bool:
    return bool(await client.ping())


class FileDepotConnections:
    def __init__(self, settings: Settings):
        logger.debug(
            f"Elasticsearch at {settings.elastic_host}, password? {'yes' if settings.elastic_password else 'no'}; "
            f"redis at {settings.redis_url}"
        )
        self.elastic: ManagedConnection[AsyncElasticsearch] = ManagedConnection(
            "elasticsearch",
            factory=lambda: connect_elastic(settings),
            ping=lambda es: es.ping(),
            close=lambda es: es.close(),
            retries=settings.connect_retries,
            backoff=settings.connect_backoff,
        )
        self.redis: ManagedConnection[redis.Redis] = ManagedConnection(
            "redis",
            factory=lambda: redis.from_url(settings.redis_url),
            ping=_ping_redis,
            close=lambda r: r.aclose(),
            retries=settings.connect_retries,
            backoff=settings.connect_backoff,
        )

    async def start(self) -> None:
        await self.elastic.connect()
        await self.redis.connect()

    async def close(self) -> None:
        await self.redis.close()
        await self.elastic.close()


@asynccontextmanager
async def filedepot_connections(settings: Settings | None = None) -> AsyncGenerator[FileDepotConnections, None]:
    """
    The main context manager to start and stop the backend connections.
    Use this once:
        - For running the server: in the FastAPI lifespan
        - For the thumbnail worker: around the worker loops
        - For CLI commands: within the CLI command
    """
    connections = FileDepotConnections(settings or get_settings())
    try:
        await connections.start()
        yield connections
    finally:
        await connections.close()

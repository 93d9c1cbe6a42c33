"""
At-least-once job queue between the upload path and the thumbnail workers.

A reserved message moves to a processing list and stays there until it is acknowledged.
If a worker dies before acknowledging, recover() puts the message back on the queue,
so a message can be delivered more than once but is never dropped silently.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from filedepot.connections import ManagedConnection
from filedepot.errors import InternalError
from filedepot.models import Job

logger = logging.getLogger("filedepot.jobqueue")


@dataclass(frozen=True)
class Delivery:
    """A reserved message. Pass it back to ack() when done."""

    message: str


class JobQueue(Protocol):
    async def enqueue(self, job: Job) -> None: ...

    async def reserve(self, timeout: float = 1.0) -> Delivery | None:
        """Wait up to timeout seconds for a message, returns None if there is none"""
        ...

    async def ack(self, delivery: Delivery) -> None: ...

    async def recover(self) -> int:
        """Move unacknowledged messages back onto the queue, returns how many were moved"""
        ...


class RedisJobQueue:
    def __init__(self, connection: ManagedConnection[redis.Redis], name: str):
        self.connection = connection
        self.queue_key = f"queue:{name}"
        self.processing_key = f"queue:{name}:processing"

    async def enqueue(self, job: Job) -> None:
        try:
            client = await self.connection.ensure()
            await client.lpush(self.queue_key, job.to_message())
        except (RedisError, ConnectionError) as e:
            logger.exception(f"Could not enqueue {job}")
            raise InternalError() from e

    async def reserve(self, timeout: float = 1.0) -> Delivery | None:
        try:
            client = await self.connection.ensure()
            message = await client.blmove(
                self.queue_key, self.processing_key, timeout, src="RIGHT", dest="LEFT"
            )
        except (RedisError, ConnectionError) as e:
            logger.exception("Could not reserve a job")
            raise InternalError() from e
        if message is None:
            return None
        return Delivery(message.decode("utf-8") if isinstance(message, bytes) else message)

    async def ack(self, delivery: Delivery) -> None:
        try:
            client = await self.connection.ensure()
            await client.lrem(self.processing_key, 1, delivery.message)
        except (RedisError, ConnectionError) as e:
            logger.exception("Could not acknowledge a job")
            raise InternalError() from e

    async def recover(self) -> int:
        n = 0
        try:
            client = await self.connection.ensure()
            while await client.lmove(self.processing_key, self.queue_key, src="RIGHT", dest="RIGHT"):
                n += 1
        except (RedisError, ConnectionError) as e:
            logger.exception("Could not recover unacknowledged jobs")
            raise InternalError() from e
        if n:
            logger.info(f"Moved {n} unacknowledged job(s) back onto {self.queue_key}")
        return n


class MemoryJobQueue:
    """Queue inside the current process, with the same reserve/ack semantics"""

    def __init__(self):
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self.in_flight: list[str] = []

    async def enqueue(self, job: Job) -> None:
        self._queue.put_nowait(job.to_message())

    async def reserve(self, timeout: float = 1.0) -> Delivery | None:
        try:
            message = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        self.in_flight.append(message)
        return Delivery(message)

    async def ack(self, delivery: Delivery) -> None:
        if delivery.message in self.in_flight:
            self.in_flight.remove(delivery.message)

    async def recover(self) -> int:
        n = len(self.in_flight)
        for message in self.in_flight:
            self._queue.put_nowait(message)
        self.in_flight.clear()
        return n

    def qsize(self) -> int:
        return self._queue.qsize()

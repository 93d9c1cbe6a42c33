"""
Background generation of image thumbnails.

Workers reserve jobs from the queue, create one thumbnail per ThumbnailSize and only then
acknowledge the job. Thumbnails are simply overwritten when a job is delivered again,
so processing the same job twice is harmless.
"""

import asyncio
import logging
from typing import Iterable

import pydantic

from filedepot.content import ContentStore
from filedepot.errors import InternalError, NotFound
from filedepot.files import FileRegistry
from filedepot.models import Job, ThumbnailSize
from filedepot.stores.jobqueue import Delivery, JobQueue
from filedepot.thumbnails.image_processing import create_thumbnail

logger = logging.getLogger("filedepot.thumbnails")

PAUSE_ON_ERROR_SECONDS = 5


class ThumbnailPipeline:
    def __init__(
        self,
        files: FileRegistry,
        content: ContentStore,
        queue: JobQueue,
        sizes: Iterable[ThumbnailSize] = tuple(ThumbnailSize),
    ):
        self.files = files
        self.content = content
        self.queue = queue
        self.sizes = tuple(sizes)

    async def process(self, job: Job) -> dict[ThumbnailSize, bool]:
        """
        Create the thumbnails for one job. Returns which sizes were written.
        Jobs that can never succeed (node missing, not an image, no content) are logged and
        skipped. Storage failures raise InternalError so the job is delivered again later.
        """
        try:
            node = await self.files.get(job.user_id, job.file_id)
        except NotFound:
            logger.error(f"Thumbnail job for unknown file {job.file_id} (user {job.user_id}), skipping")
            return {}
        if node.type != "image":
            logger.error(f"Thumbnail job for {node.id}, which is a {node.type} and not an image, skipping")
            return {}
        if not node.storage_ref:
            logger.error(f"Thumbnail job for image {node.id} without content, skipping")
            return {}
        try:
            original = await self.content.get(node.storage_ref)
        except NotFound:
            logger.error(f"Content of image {node.id} is missing, skipping")
            return {}

        result: dict[ThumbnailSize, bool] = {}
        for size in self.sizes:
            try:
                data = await asyncio.to_thread(create_thumbnail, original, int(size))
                await self.content.put_derivative(node.storage_ref, size, data)
                result[size] = True
            except Exception:
                logger.exception(f"Could not create {int(size)}px thumbnail for image {node.id}")
                result[size] = False
        logger.info(f"Thumbnails for {node.id}: {', '.join(str(int(s)) for s, ok in result.items() if ok) or 'none'}")
        return result

    async def handle(self, delivery: Delivery) -> None:
        try:
            job = Job.from_message(delivery.message)
        except pydantic.ValidationError:
            logger.error(f"Dropping malformed thumbnail job {delivery.message!r}")
        else:
            try:
                await self.process(job)
            except InternalError:
                logger.exception(f"Thumbnail job {job} failed, leaving it for redelivery")
                return
        await self.queue.ack(delivery)

    async def run_once(self, timeout: float = 1.0) -> bool:
        """Handle at most one job, returns False if none arrived within timeout"""
        delivery = await self.queue.reserve(timeout)
        if delivery is None:
            return False
        await self.handle(delivery)
        return True

    async def run(self, timeout: float = 1.0) -> None:
        """Main worker loop, runs until cancelled"""
        while True:
            try:
                await self.run_once(timeout)
            except asyncio.CancelledError:
                raise
            except InternalError:
                logger.warning(f"Job queue unavailable, pausing {PAUSE_ON_ERROR_SECONDS}s")
                await asyncio.sleep(PAUSE_ON_ERROR_SECONDS)


class ThumbnailWorkers:
    """Runs a number of pipeline loops as asyncio tasks"""

    def __init__(self, pipeline: ThumbnailPipeline, n: int = 1):
        self.pipeline = pipeline
        self.n = n
        self.tasks: list[asyncio.Task] = []

    def start(self) -> None:
        if self.tasks:
            return
        logger.info(f"Starting {self.n} thumbnail worker(s)")
        self.tasks = [asyncio.create_task(self.pipeline.run(), name=f"thumbnails-{i}") for i in range(self.n)]

    async def stop(self) -> None:
        for task in self.tasks:
            task.cancel()
        await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks = []

    async def wait(self) -> None:
        await asyncio.gather(*self.tasks)

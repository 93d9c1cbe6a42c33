import io
import os

import pytest
from PIL import Image

from filedepot.errors import InternalError
from filedepot.models import Job, ThumbnailSize
from filedepot.stores.jobqueue import Delivery
from filedepot.thumbnails import pipeline as pipeline_module
from filedepot.thumbnails.image_processing import InvalidImage, create_thumbnail
from tests.tools import image_bytes, image_size


def test_create_thumbnail():
    data = create_thumbnail(image_bytes(800, 600), 100)
    assert image_size(data) == (100, 75)
    # smaller images are scaled up
    assert image_size(create_thumbnail(image_bytes(50, 50), 250)) == (250, 250)


@pytest.mark.parametrize("format,mode", [("JPEG", "RGB"), ("PNG", "RGBA"), ("GIF", "RGB"), ("BMP", "RGB")])
def test_create_thumbnail_keeps_format(format, mode):
    data = create_thumbnail(image_bytes(300, 200, format=format, mode=mode), 100)
    img = Image.open(io.BytesIO(data))
    assert img.format == format
    assert img.size == (100, 67)


def test_invalid_image():
    with pytest.raises(InvalidImage):
        create_thumbnail(b"this is not an image", 100)


async def _upload_image(services, user, data=None):
    return await services.files.create(user.id, "cat.png", "image", content=data or image_bytes())


@pytest.mark.anyio
async def test_pipeline(services, user):
    image = await _upload_image(services, user)
    assert await services.thumbnails.run_once(timeout=0.1)
    for size in ThumbnailSize:
        data = await services.content.get_derivative(image.storage_ref, size)
        assert image_size(data)[0] == int(size)
    assert services.queue.in_flight == [], "The job should be acknowledged"
    assert not await services.thumbnails.run_once(timeout=0.01)


@pytest.mark.anyio
async def test_process_twice(services, user, settings):
    image = await _upload_image(services, user)
    job = Job(user_id=user.id, file_id=image.id)
    first = await services.thumbnails.process(job)
    second = await services.thumbnails.process(job)
    assert first == second == {size: True for size in ThumbnailSize}
    assert len(os.listdir(settings.folder_path)) == 1 + len(ThumbnailSize)


@pytest.mark.anyio
async def test_jobs_that_cannot_succeed(services, user, user2):
    file = await services.files.create(user.id, "x.txt", "file", content=b"x")
    folder = await services.files.create(user.id, "x", "folder")
    image = await _upload_image(services, user)
    for job in [
        Job(user_id=user.id, file_id="doesnotexist"),
        Job(user_id=user.id, file_id=file.id),
        Job(user_id=user.id, file_id=folder.id),
        Job(user_id=user2.id, file_id=image.id),
    ]:
        assert await services.thumbnails.process(job) == {}


@pytest.mark.anyio
async def test_corrupt_image(services, user):
    image = await _upload_image(services, user, data=b"not really a png")
    assert await services.thumbnails.run_once(timeout=0.1)
    assert services.queue.in_flight == [], "Corrupt images should not be retried forever"
    result = await services.thumbnails.process(Job(user_id=user.id, file_id=image.id))
    assert result == {size: False for size in ThumbnailSize}


@pytest.mark.anyio
async def test_sizes_are_independent(services, user, monkeypatch):
    image = await _upload_image(services, user)

    def create_thumbnail_except_medium(data, width):
        if width == ThumbnailSize.MEDIUM:
            raise InvalidImage("boom")
        return create_thumbnail(data, width)

    monkeypatch.setattr(pipeline_module, "create_thumbnail", create_thumbnail_except_medium)
    result = await services.thumbnails.process(Job(user_id=user.id, file_id=image.id))
    assert result == {ThumbnailSize.SMALL: True, ThumbnailSize.MEDIUM: False, ThumbnailSize.LARGE: True}


@pytest.mark.anyio
async def test_malformed_message(services):
    await services.queue.enqueue(Job(user_id="x", file_id="y"))
    delivery = await services.queue.reserve(timeout=0.1)
    bad = Delivery("{not json")
    services.queue.in_flight.append(bad.message)
    await services.thumbnails.handle(bad)
    await services.thumbnails.handle(delivery)
    assert services.queue.in_flight == []


@pytest.mark.anyio
async def test_storage_failure_leaves_job(services, user, monkeypatch):
    await _upload_image(services, user)

    async def broken_get(storage_ref):
        raise InternalError()

    monkeypatch.setattr(services.content, "get", broken_get)
    assert await services.thumbnails.run_once(timeout=0.1)
    assert len(services.queue.in_flight) == 1, "The job should be left for redelivery"
    monkeypatch.undo()

    assert await services.queue.recover() == 1
    assert await services.thumbnails.run_once(timeout=0.1)
    assert services.queue.in_flight == []

"""
Store behaviour that must be the same on every backend.
The elastic variants need running elasticsearch and redis servers, see conftest.backend_services.
"""

import anyio
import pytest

from filedepot.errors import AlreadyExists, NotFound
from filedepot.models import ROOT, Job, NodeId, ThumbnailSize
from tests.tools import image_bytes, image_size


@pytest.mark.anyio
async def test_unique_email(backend_services):
    user = await backend_services.users.create("bob@dylan.com", "toto1234!")
    with pytest.raises(AlreadyExists):
        await backend_services.users.create("Bob@Dylan.com", "other")
    assert (await backend_services.users.find_by_email("bob@dylan.com")).id == user.id
    assert await backend_services.users.count() == 1


@pytest.mark.anyio
async def test_list_pages(backend_services):
    files = backend_services.files
    user = await backend_services.users.create("bob@dylan.com", "toto1234!")
    parent = await files.create(user.id, "parent", "folder")
    names = [f"folder {i}" for i in range(25)]
    for name in names:
        await files.create(user.id, name, "folder", parent=NodeId(id=parent.id))

    pages = [await files.list(user.id, NodeId(id=parent.id), page) for page in range(3)]
    assert [len(p) for p in pages] == [20, 5, 0]
    assert [node.name for page in pages for node in page] == names
    assert await files.list(user.id, NodeId(id=parent.id), 500) == []
    # nodes without a parent are the top level
    assert [node.id for node in await files.list(user.id, ROOT)] == [parent.id]


@pytest.mark.anyio
async def test_visibility(backend_services):
    files = backend_services.files
    bob = await backend_services.users.create("bob@dylan.com", "toto1234!")
    alice = await backend_services.users.create("alice@example.com", "secret")
    file = await files.create(bob.id, "x.txt", "file", content=b"x")

    with pytest.raises(NotFound):
        await files.set_visibility(alice.id, file.id, public=True)
    with pytest.raises(NotFound):
        await files.set_visibility(bob.id, "doesnotexist", public=True)
    with pytest.raises(NotFound):
        await files.get_public_or_owned(file.id, alice.id)

    node = await files.set_visibility(bob.id, file.id, public=True)
    assert node.is_public
    assert node.storage_ref == file.storage_ref
    assert (await files.get_public_or_owned(file.id, alice.id)).is_public
    assert not (await files.set_visibility(bob.id, file.id, public=False)).is_public


@pytest.mark.anyio
async def test_queue_redelivery(backend_services):
    queue = backend_services.queue
    assert await queue.reserve(timeout=0.1) is None
    await queue.enqueue(Job(user_id="u1", file_id="f1"))
    await queue.enqueue(Job(user_id="u1", file_id="f2"))
    first = await queue.reserve(timeout=0.1)
    assert Job.from_message(first.message).file_id == "f1"

    # the worker died before acknowledging
    assert await queue.recover() == 1
    deliveries = [await queue.reserve(timeout=0.1) for _ in range(2)]
    assert {Job.from_message(d.message).file_id for d in deliveries} == {"f1", "f2"}
    for delivery in deliveries:
        await queue.ack(delivery)
    assert await queue.recover() == 0
    assert await queue.reserve(timeout=0.1) is None


@pytest.mark.anyio
async def test_session_ttl(backend_services):
    sessions = backend_services.sessions
    await sessions.set("auth_unittest", "u1", 1)
    assert await sessions.get("auth_unittest") == "u1"
    await anyio.sleep(1.2)
    assert await sessions.get("auth_unittest") is None

    await sessions.set("auth_unittest", "u1", 60)
    await sessions.delete("auth_unittest")
    assert await sessions.get("auth_unittest") is None
    assert await sessions.is_alive()
    assert await backend_services.documents.is_alive()


@pytest.mark.anyio
async def test_thumbnails(backend_services):
    user = await backend_services.users.create("bob@dylan.com", "toto1234!")
    image = await backend_services.files.create(user.id, "cat.png", "image", content=image_bytes(600, 300))
    assert await backend_services.thumbnails.run_once(timeout=0.5)
    for size in ThumbnailSize:
        data = await backend_services.content.get_derivative(image.storage_ref, size)
        assert image_size(data) == (int(size), int(size) // 2)
    assert await backend_services.queue.recover() == 0, "The job should be acknowledged"

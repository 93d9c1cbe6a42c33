import pytest
from httpx import ASGITransport, AsyncClient

from filedepot.api import create_app
from filedepot.config import Backend, Settings
from filedepot.connections import FileDepotConnections
from filedepot.services import build_services, memory_services
from filedepot.stores.documents import MAPPINGS

UNITS_PREFIX = "filedepot_unittest"


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture(scope="function")
def settings(tmp_path):
    return Settings(backend=Backend.memory, folder_path=tmp_path / "files_manager")


@pytest.fixture(scope="function")
def services(settings):
    return memory_services(settings)


async def _delete_unittest_data(connections: FileDepotConnections):
    es = await connections.elastic.ensure()
    for collection in MAPPINGS:
        await es.options(ignore_status=404).indices.delete(index=f"{UNITS_PREFIX}_{collection}")
    r = await connections.redis.ensure()
    await r.delete(f"queue:{UNITS_PREFIX}", f"queue:{UNITS_PREFIX}:processing")


@pytest.fixture(scope="function", params=[Backend.memory, Backend.elastic], ids=["memory", "elastic"])
async def backend_services(request, tmp_path):
    """
    Services on every backend. The elastic variant uses the elasticsearch and redis servers
    configured for FileDepot (with separate indices and queue), and is skipped if they are not running.
    """
    settings = Settings(
        backend=request.param,
        folder_path=tmp_path / "files_manager",
        index_prefix=UNITS_PREFIX,
        queue_name=UNITS_PREFIX,
        connect_retries=0,
    )
    if settings.backend == Backend.memory:
        yield memory_services(settings)
        return
    connections = FileDepotConnections(settings)
    try:
        await connections.start()
    except ConnectionError as e:
        await connections.close()
        pytest.skip(f"Elasticsearch and redis are needed for this test: {e}")
    try:
        await _delete_unittest_data(connections)
        yield await build_services(settings, connections)
    finally:
        await _delete_unittest_data(connections)
        await connections.close()


@pytest.fixture(scope="function")
async def client(services):
    app = create_app(services)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test", follow_redirects=False) as client:
        yield client


@pytest.fixture(scope="function")
async def user(services):
    return await services.users.create("bob@dylan.com", "toto1234!")


@pytest.fixture(scope="function")
async def token(services, user):
    """A valid X-Token for user"""
    return await services.auth.authenticate("bob@dylan.com", "toto1234!")


@pytest.fixture(scope="function")
async def user2(services):
    return await services.users.create("alice@example.com", "secret")


@pytest.fixture(scope="function")
async def token2(services, user2):
    return await services.auth.authenticate("alice@example.com", "secret")

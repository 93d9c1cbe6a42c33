import pytest

from filedepot.connections import ManagedConnection
from filedepot.errors import AlreadyExists
from filedepot.stores.documents import ElasticDocumentStore, MemoryDocumentStore, _query


def test_query():
    assert _query({"id": "abc", "user_id": "u1", "parent_id": None}) == {
        "bool": {
            "filter": [{"ids": {"values": ["abc"]}}, {"term": {"user_id": "u1"}}],
            "must_not": [{"exists": {"field": "parent_id"}}],
        }
    }


@pytest.mark.anyio
async def test_memory_store():
    store = MemoryDocumentStore()
    a = await store.insert("files", {"name": "a", "parent_id": None})
    b = await store.insert("files", {"name": "b", "parent_id": a})
    assert await store.insert("files", {"name": "c"}, id="c") == "c"
    with pytest.raises(AlreadyExists):
        await store.insert("files", {"name": "c2"}, id="c")

    assert [id for id, _ in await store.find("files", {})] == [a, b, "c"]
    assert [id for id, _ in await store.find("files", {}, skip=1, limit=1)] == [b]
    assert await store.find_one("files", {"parent_id": a}) == (b, {"name": "b", "parent_id": a})
    assert await store.count("files") == 3
    assert await store.count("users") == 0


@pytest.mark.anyio
async def test_memory_find_one_and_update():
    store = MemoryDocumentStore()
    id = await store.insert("files", {"user_id": "u1", "is_public": False})
    assert await store.find_one_and_update("files", {"id": id, "user_id": "u2"}, {"is_public": True}) is None
    assert await store.find_one_and_update("files", {"id": "x", "user_id": "u1"}, {"is_public": True}) is None
    hit = await store.find_one_and_update("files", {"id": id, "user_id": "u1"}, {"is_public": True})
    assert hit == (id, {"user_id": "u1", "is_public": True})


class FakeElastic:
    """Sorted search hits, refusing from/size beyond the result window like elasticsearch does"""

    def __init__(self, n: int, window: int):
        self.hits = [{"_id": f"d{i}", "_source": {"name": f"doc {i}", "seq": i}, "sort": [i]} for i in range(n)]
        self.window = window

    async def search(self, index, query, sort, size, from_=0, search_after=None, source=None):
        assert from_ + size <= self.window, "Result window is too large"
        hits = self.hits
        if search_after is not None:
            hits = [hit for hit in hits if hit["sort"] > search_after]
        return {"hits": {"hits": hits[from_ : from_ + size]}}

    async def ping(self):
        return True

    async def close(self):
        pass


@pytest.mark.anyio
async def test_elastic_deep_pages():
    fake = FakeElastic(25, window=10)
    connection = ManagedConnection("elasticsearch", lambda: fake, lambda es: es.ping(), lambda es: es.close())
    await connection.connect()
    store = ElasticDocumentStore(connection, "test")
    store.max_result_window = 10

    async def ids(skip, limit):
        return [id for id, _ in await store.find("files", {}, skip=skip, limit=limit)]

    assert await ids(0, 5) == ["d0", "d1", "d2", "d3", "d4"]
    assert await ids(8, 5) == ["d8", "d9", "d10", "d11", "d12"]
    assert await ids(20, 5) == ["d20", "d21", "d22", "d23", "d24"]
    assert await ids(23, 5) == ["d23", "d24"]
    assert await ids(25, 5) == []
    assert await ids(500, 20) == []
    hit = (await store.find("files", {}, skip=12, limit=1))[0]
    assert hit == ("d12", {"name": "doc 12"}), "seq is internal"

"""
Document store: collection oriented persistence of users and file nodes.

Queries are plain equality filters ({"field": value}). The special key "id" matches the
document id, and a value of None matches documents where the field is missing.
Results come back as (id, document) tuples, ordered by insertion.
"""

import asyncio
import functools
import itertools
import logging
import time
import uuid
from typing import Protocol

from elasticsearch import ApiError, AsyncElasticsearch, ConflictError, NotFoundError, TransportError

from filedepot.connections import ManagedConnection
from filedepot.errors import AlreadyExists, InternalError

logger = logging.getLogger("filedepot.documents")

Hit = tuple[str, dict]


class DocumentStore(Protocol):
    async def insert(self, collection: str, doc: dict, id: str | None = None) -> str:
        """Insert a document and return its id. With an explicit id, fail with AlreadyExists if it is taken."""
        ...

    async def find_one(self, collection: str, where: dict) -> Hit | None: ...

    async def find(self, collection: str, where: dict, skip: int = 0, limit: int = 20) -> list[Hit]: ...

    async def find_one_and_update(self, collection: str, where: dict, values: dict) -> Hit | None:
        """Atomically set `values` on the document matching `where` (which must include the id)"""
        ...

    async def count(self, collection: str, where: dict | None = None) -> int: ...

    async def is_alive(self) -> bool: ...


######################## ELASTICSEARCH #########################

MAPPINGS: dict[str, dict] = dict(
    users=dict(
        email={"type": "keyword"},
        password={"type": "keyword", "index": False},
        seq={"type": "long"},
    ),
    files=dict(
        user_id={"type": "keyword"},
        name={"type": "keyword"},
        type={"type": "keyword"},
        is_public={"type": "boolean"},
        parent_id={"type": "keyword"},
        storage_ref={"type": "keyword"},
        seq={"type": "long"},
    ),
)

# Checks every `where` field against the stored document and only then applies the update,
# so the check and the write happen in one single-document operation inside elasticsearch
UPDATE_IF_MATCH = """
boolean match = true;
for (entry in params.where.entrySet()) {
  if (ctx._source[entry.getKey()] != entry.getValue()) { match = false; }
}
if (match) { ctx._source.putAll(params.values); } else { ctx.op = 'noop'; }
"""


def _query(where: dict) -> dict:
    filters: list[dict] = []
    must_not: list[dict] = []
    for field, value in where.items():
        if field == "id":
            filters.append({"ids": {"values": [value]}})
        elif value is None:
            must_not.append({"exists": {"field": field}})
        else:
            filters.append({"term": {field: value}})
    return {"bool": {"filter": filters, "must_not": must_not}}


def _seq() -> int:
    # Nanosecond timestamps keep insertion order across API processes
    return time.time_ns()


class ElasticDocumentStore:
    #: Elasticsearch refuses from/size searches beyond index.max_result_window (10000 by default)
    max_result_window = 10000

    def __init__(self, connection: ManagedConnection[AsyncElasticsearch], prefix: str):
        self.connection = connection
        self.prefix = prefix

    def index_name(self, collection: str) -> str:
        return f"{self.prefix}_{collection}"

    async def create_indices(self) -> None:
        """Create the indices for all collections if they do not exist yet"""
        try:
            es = await self.connection.ensure()
            for collection, mapping in MAPPINGS.items():
                index = self.index_name(collection)
                if not await es.indices.exists(index=index):
                    logger.info(f"Creating index {index}")
                    await es.indices.create(index=index, mappings={"properties": mapping})
        except (ApiError, TransportError, ConnectionError) as e:
            logger.exception("Could not create elasticsearch indices")
            raise InternalError() from e

    async def insert(self, collection: str, doc: dict, id: str | None = None) -> str:
        body = {**doc, "seq": _seq()}
        try:
            es = await self.connection.ensure()
            if id is None:
                res = await es.index(index=self.index_name(collection), document=body, refresh="wait_for")
            else:
                res = await es.create(index=self.index_name(collection), id=id, document=body, refresh="wait_for")
        except ConflictError as e:
            raise AlreadyExists() from e
        except (ApiError, TransportError, ConnectionError) as e:
            logger.exception(f"Could not insert into {collection}")
            raise InternalError() from e
        return res["_id"]

    async def find_one(self, collection: str, where: dict) -> Hit | None:
        hits = await self.find(collection, where, limit=1)
        return hits[0] if hits else None

    async def find(self, collection: str, where: dict, skip: int = 0, limit: int = 20) -> list[Hit]:
        try:
            es = await self.connection.ensure()
            search = functools.partial(
                es.search, index=self.index_name(collection), query=_query(where), sort=[{"seq": "asc"}]
            )
            if skip + limit <= self.max_result_window:
                res = await search(from_=skip, size=limit)
            else:
                # Deep pages: walk past the skipped documents with search_after instead of from
                after = None
                while skip > 0:
                    batch = min(skip, self.max_result_window)
                    res = await search(size=batch, search_after=after, source=False)
                    hits = res["hits"]["hits"]
                    if not hits:
                        return []
                    after = hits[-1]["sort"]
                    skip -= len(hits)
                res = await search(size=limit, search_after=after)
        except (ApiError, TransportError, ConnectionError) as e:
            logger.exception(f"Could not search {collection}")
            raise InternalError() from e
        return [_strip(hit) for hit in res["hits"]["hits"]]

    async def find_one_and_update(self, collection: str, where: dict, values: dict) -> Hit | None:
        where = dict(where)
        id = where.pop("id")
        try:
            es = await self.connection.ensure()
            res = await es.update(
                index=self.index_name(collection),
                id=id,
                script={"source": UPDATE_IF_MATCH, "params": {"where": where, "values": values}},
                source=True,
                refresh="wait_for",
            )
        except NotFoundError:
            return None
        except (ApiError, TransportError, ConnectionError) as e:
            logger.exception(f"Could not update {collection}/{id}")
            raise InternalError() from e
        if res["result"] == "noop":
            return None
        doc = dict(res["get"]["_source"])
        doc.pop("seq", None)
        return res["_id"], doc

    async def count(self, collection: str, where: dict | None = None) -> int:
        try:
            es = await self.connection.ensure()
            if where:
                res = await es.count(index=self.index_name(collection), query=_query(where))
            else:
                res = await es.count(index=self.index_name(collection))
        except (ApiError, TransportError, ConnectionError) as e:
            logger.exception(f"Could not count {collection}")
            raise InternalError() from e
        return res["count"]

    async def is_alive(self) -> bool:
        return await self.connection.is_alive()


def _strip(hit: dict) -> Hit:
    doc = dict(hit["_source"])
    doc.pop("seq", None)
    return hit["_id"], doc


######################## IN MEMORY #########################


class MemoryDocumentStore:
    """Document store that keeps everything in a dict. For development and tests."""

    def __init__(self):
        self.collections: dict[str, dict[str, dict]] = {}
        self._lock = asyncio.Lock()

    def _collection(self, collection: str) -> dict[str, dict]:
        return self.collections.setdefault(collection, {})

    async def insert(self, collection: str, doc: dict, id: str | None = None) -> str:
        docs = self._collection(collection)
        async with self._lock:
            if id is None:
                id = uuid.uuid4().hex[:24]
            elif id in docs:
                raise AlreadyExists()
            docs[id] = dict(doc)
        return id

    async def find_one(self, collection: str, where: dict) -> Hit | None:
        hits = await self.find(collection, where, limit=1)
        return hits[0] if hits else None

    async def find(self, collection: str, where: dict, skip: int = 0, limit: int = 20) -> list[Hit]:
        matches = ((id, doc) for (id, doc) in self._collection(collection).items() if _matches(id, doc, where))
        return [(id, dict(doc)) for (id, doc) in itertools.islice(matches, skip, skip + limit)]

    async def find_one_and_update(self, collection: str, where: dict, values: dict) -> Hit | None:
        docs = self._collection(collection)
        async with self._lock:
            doc = docs.get(where["id"])
            if doc is None or not _matches(where["id"], doc, where):
                return None
            doc.update(values)
            return where["id"], dict(doc)

    async def count(self, collection: str, where: dict | None = None) -> int:
        return sum(1 for (id, doc) in self._collection(collection).items() if _matches(id, doc, where or {}))

    async def is_alive(self) -> bool:
        return True


def _matches(id: str, doc: dict, where: dict) -> bool:
    for field, value in where.items():
        actual = id if field == "id" else doc.get(field)
        if actual != value:
            return False
    return True

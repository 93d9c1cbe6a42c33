"""
Wiring of the FileDepot components.

Every component gets its stores passed in. build_services() connects them to
elasticsearch and redis, memory_services() to in-process stores (for development and tests).
"""

from dataclasses import dataclass

from filedepot.auth import SessionAuthenticator
from filedepot.config import Settings
from filedepot.connections import FileDepotConnections
from filedepot.content import ContentStore
from filedepot.files import FileRegistry
from filedepot.stores.documents import DocumentStore, ElasticDocumentStore, MemoryDocumentStore
from filedepot.stores.jobqueue import JobQueue, MemoryJobQueue, RedisJobQueue
from filedepot.stores.sessions import MemorySessionStore, RedisSessionStore, SessionStore
from filedepot.thumbnails.pipeline import ThumbnailPipeline
from filedepot.users import UserRegistry


@dataclass
class Services:
    documents: DocumentStore
    sessions: SessionStore
    queue: JobQueue
    content: ContentStore
    users: UserRegistry
    auth: SessionAuthenticator
    files: FileRegistry
    thumbnails: ThumbnailPipeline


def assemble(
    settings: Settings, documents: DocumentStore, sessions: SessionStore, queue: JobQueue, content: ContentStore
) -> Services:
    users = UserRegistry(documents)
    files = FileRegistry(documents, content, queue, page_size=settings.page_size)
    return Services(
        documents=documents,
        sessions=sessions,
        queue=queue,
        content=content,
        users=users,
        auth=SessionAuthenticator(users, sessions, ttl=settings.session_ttl),
        files=files,
        thumbnails=ThumbnailPipeline(files, content, queue),
    )


async def build_services(settings: Settings, connections: FileDepotConnections) -> Services:
    """Services backed by elasticsearch and redis. The connections must have been started."""
    documents = ElasticDocumentStore(connections.elastic, settings.index_prefix)
    await documents.create_indices()
    return assemble(
        settings,
        documents=documents,
        sessions=RedisSessionStore(connections.redis),
        queue=RedisJobQueue(connections.redis, settings.queue_name),
        content=ContentStore(settings.folder_path),
    )


def memory_services(settings: Settings) -> Services:
    return assemble(
        settings,
        documents=MemoryDocumentStore(),
        sessions=MemorySessionStore(),
        queue=MemoryJobQueue(),
        content=ContentStore(settings.folder_path),
    )

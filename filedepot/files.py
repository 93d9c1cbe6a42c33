"""
Metadata of folders, files and images, and the rules for creating and reading them.

Nodes are owned by the user that created them. Private nodes are only visible to
their owner; everyone else gets NotFound, so the existence of a private node never leaks.
"""

import logging

from filedepot.content import ContentStore
from filedepot.errors import InternalError, InvalidParent, NotFound, ValidationError
from filedepot.models import FILE_TYPES, ROOT, FileNode, Job, NodeId, ParentRef, Root
from filedepot.stores.documents import DocumentStore
from filedepot.stores.jobqueue import JobQueue

logger = logging.getLogger("filedepot.files")

COLLECTION = "files"
PAGE_SIZE = 20


class FileRegistry:
    def __init__(
        self, documents: DocumentStore, content: ContentStore, queue: JobQueue, page_size: int = PAGE_SIZE
    ):
        self.documents = documents
        self.content = content
        self.queue = queue
        self.page_size = page_size

    async def create(
        self,
        user_id: str,
        name: str | None,
        type: str | None,
        parent: ParentRef = ROOT,
        is_public: bool = False,
        content: bytes | None = None,
    ) -> FileNode:
        """
        Create a folder, file or image.

        Files and images need content, which is written to the content store before the
        metadata is stored. For images a thumbnail job is queued afterwards. If that fails
        the node still exists; the problem is logged and added to node.warnings.
        """
        if not name:
            raise ValidationError("name")
        if type not in FILE_TYPES:
            raise ValidationError("type")
        if type != "folder" and content is None:
            raise ValidationError("content", "Missing data")
        if isinstance(parent, NodeId):
            await self._check_parent(parent)

        node = FileNode(id="", user_id=user_id, name=name, type=type, is_public=is_public, parent=parent)
        if type != "folder" and content is not None:
            node.storage_ref = await self.content.put(content)
        node.id = await self.documents.insert(COLLECTION, node.to_document())
        logger.info(f"User {user_id} created {type} {node.id} ({name!r})")

        if type == "image":
            try:
                await self.queue.enqueue(Job(user_id=user_id, file_id=node.id))
            except InternalError:
                logger.warning(f"Could not schedule thumbnails for {node.id}, the image is stored without them")
                node.warnings.append("Thumbnail generation could not be scheduled")
        return node

    async def _check_parent(self, parent: NodeId) -> None:
        hit = await self.documents.find_one(COLLECTION, {"id": parent.id})
        if hit is None:
            raise InvalidParent("Parent not found")
        if hit[1].get("type") != "folder":
            raise InvalidParent("Parent is not a folder")

    async def get(self, user_id: str, file_id: str) -> FileNode:
        """Get a node owned by this user"""
        hit = await self.documents.find_one(COLLECTION, {"id": file_id, "user_id": user_id})
        if hit is None:
            raise NotFound()
        return FileNode.from_document(*hit)

    async def get_public_or_owned(self, file_id: str, user_id: str | None = None) -> FileNode:
        """Get a node that is public, or owned by user_id. Anonymous callers pass user_id=None."""
        hit = await self.documents.find_one(COLLECTION, {"id": file_id})
        if hit is None:
            raise NotFound()
        node = FileNode.from_document(*hit)
        if not node.is_public and (user_id is None or node.user_id != user_id):
            raise NotFound()
        return node

    async def list(self, user_id: str, parent: ParentRef = ROOT, page: int = 0) -> list[FileNode]:
        """List one page of this user's nodes directly under parent, in creation order"""
        if page < 0:
            raise ValidationError("page", "Invalid page")
        parent_id = None if isinstance(parent, Root) else parent.id
        hits = await self.documents.find(
            COLLECTION,
            {"user_id": user_id, "parent_id": parent_id},
            skip=page * self.page_size,
            limit=self.page_size,
        )
        return [FileNode.from_document(*hit) for hit in hits]

    async def set_visibility(self, user_id: str, file_id: str, public: bool) -> FileNode:
        hit = await self.documents.find_one_and_update(
            COLLECTION, {"id": file_id, "user_id": user_id}, {"is_public": public}
        )
        if hit is None:
            raise NotFound()
        return FileNode.from_document(*hit)

    async def count(self) -> int:
        return await self.documents.count(COLLECTION)

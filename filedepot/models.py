from enum import IntEnum
from typing import Annotated, Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

######################## USERS #########################


class User(BaseModel):
    """A registered user. password holds the one-way digest, never the password itself."""

    id: str
    email: str
    password: str

    @classmethod
    def from_document(cls, id: str, doc: dict) -> "User":
        return cls(id=id, email=doc["email"], password=doc["password"])


######################## FILE NODES #########################

FileType = Literal["folder", "file", "image"]
FILE_TYPES: tuple[str, ...] = get_args(FileType)


class ThumbnailSize(IntEnum):
    """Widths (in pixels) of the derivatives generated for every image"""

    SMALL = 100
    MEDIUM = 250
    LARGE = 500


class Root(BaseModel):
    """The top level of a user's hierarchy"""

    model_config = ConfigDict(frozen=True)
    kind: Literal["root"] = "root"


class NodeId(BaseModel):
    """Reference to an existing folder"""

    model_config = ConfigDict(frozen=True)
    kind: Literal["node"] = "node"
    id: str


ParentRef = Annotated[Root | NodeId, Field(discriminator="kind")]

ROOT = Root()

#: The value that denotes the root in the HTTP API
ROOT_SENTINEL = 0


def parse_parent(value: Any) -> Root | NodeId:
    """
    Convert a parentId as sent by clients into a ParentRef.
    The API uses 0 for the root, but clients also send "0" or nothing at all.
    """
    if value is None or value == ROOT_SENTINEL or value == str(ROOT_SENTINEL) or value == "":
        return ROOT
    return NodeId(id=str(value))


class FileNode(BaseModel):
    id: str
    user_id: str
    name: str
    type: FileType
    is_public: bool = False
    parent: ParentRef = ROOT
    storage_ref: str | None = None

    # Problems that did not prevent creating the node (e.g. thumbnails could not be scheduled)
    _warnings: list[str] = PrivateAttr(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        return self._warnings

    def to_document(self) -> dict:
        return dict(
            user_id=self.user_id,
            name=self.name,
            type=self.type,
            is_public=self.is_public,
            parent_id=self.parent.id if isinstance(self.parent, NodeId) else None,
            storage_ref=self.storage_ref,
        )

    @classmethod
    def from_document(cls, id: str, doc: dict) -> "FileNode":
        return cls(
            id=id,
            user_id=doc["user_id"],
            name=doc["name"],
            type=doc["type"],
            is_public=doc.get("is_public", False),
            parent=parse_parent(doc.get("parent_id")),
            storage_ref=doc.get("storage_ref"),
        )


class FileNodeResponse(BaseModel):
    """The representation of a node in the HTTP API"""

    id: str
    userId: str
    name: str
    type: FileType
    isPublic: bool
    parentId: str | int

    @classmethod
    def from_node(cls, node: FileNode) -> "FileNodeResponse":
        return cls(
            id=node.id,
            userId=node.user_id,
            name=node.name,
            type=node.type,
            isPublic=node.is_public,
            parentId=node.parent.id if isinstance(node.parent, NodeId) else ROOT_SENTINEL,
        )


######################## BACKGROUND JOBS #########################


class Job(BaseModel):
    """Request to generate the thumbnails of an image"""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    user_id: str = Field(alias="userId")
    file_id: str = Field(alias="fileId")

    def to_message(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_message(cls, message: str | bytes) -> "Job":
        return cls.model_validate_json(message)

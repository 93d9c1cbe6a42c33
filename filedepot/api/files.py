"""API Endpoints for uploading, listing, publishing and downloading files."""

import base64
import binascii
import mimetypes

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field

from filedepot.api.auth import authenticated_user, get_services, optional_user
from filedepot.errors import NotFound, ValidationError
from filedepot.models import FILE_TYPES, ROOT_SENTINEL, FileNode, FileNodeResponse, ThumbnailSize, parse_parent
from filedepot.services import Services

app_files = APIRouter(tags=["files"])


# REQUEST MODELS
class CreateFileBody(BaseModel):
    name: str | None = Field(None, description="Name of the folder or file")
    type: str | None = Field(None, description="One of folder, file or image")
    parentId: str | int | None = Field(ROOT_SENTINEL, description="Id of the parent folder, 0 for the top level")
    isPublic: bool = Field(False, description="Whether everyone may read the file")
    data: str | None = Field(None, description="Base64 encoded content (required for files and images)")


def _content(body: CreateFileBody) -> bytes | None:
    """Decoded data. Name and type errors take precedence, so only decode once those are valid"""
    if not (body.name and body.type in FILE_TYPES and body.type != "folder" and body.data):
        return None
    try:
        return base64.b64decode(body.data, validate=True)
    except binascii.Error:
        raise ValidationError("data", "Invalid data")


def _response(node: FileNode) -> FileNodeResponse:
    return FileNodeResponse.from_node(node)


@app_files.post("/files", status_code=status.HTTP_201_CREATED)
async def upload(
    body: CreateFileBody,
    response: Response,
    user_id: str = Depends(authenticated_user),
    services: Services = Depends(get_services),
) -> FileNodeResponse:
    """
    Create a folder, or upload a file or image.

    Thumbnails of images are generated in the background, so they can be missing for a
    short while after the upload.
    """
    node = await services.files.create(
        user_id,
        name=body.name,
        type=body.type,
        parent=parse_parent(body.parentId),
        is_public=body.isPublic,
        content=_content(body),
    )
    for warning in node.warnings:
        response.headers.append("Warning", f'199 filedepot "{warning}"')
    return _response(node)


@app_files.get("/files/{file_id}")
async def get_file(
    file_id: str, user_id: str = Depends(authenticated_user), services: Services = Depends(get_services)
) -> FileNodeResponse:
    """Get one of your own files or folders."""
    return _response(await services.files.get(user_id, file_id))


@app_files.get("/files")
async def list_files(
    parentId: str = Query(str(ROOT_SENTINEL), description="Folder to list, 0 for the top level"),
    page: int = Query(0, description="Page number, starting at 0. Every page has 20 items"),
    user_id: str = Depends(authenticated_user),
    services: Services = Depends(get_services),
) -> list[FileNodeResponse]:
    """List your own files and folders in a folder."""
    nodes = await services.files.list(user_id, parse_parent(parentId), page)
    return [_response(node) for node in nodes]


@app_files.put("/files/{file_id}/publish")
async def publish(
    file_id: str, user_id: str = Depends(authenticated_user), services: Services = Depends(get_services)
) -> FileNodeResponse:
    """Make a file readable by everyone."""
    return _response(await services.files.set_visibility(user_id, file_id, public=True))


@app_files.put("/files/{file_id}/unpublish")
async def unpublish(
    file_id: str, user_id: str = Depends(authenticated_user), services: Services = Depends(get_services)
) -> FileNodeResponse:
    """Make a file readable by its owner only."""
    return _response(await services.files.set_visibility(user_id, file_id, public=False))


@app_files.get("/files/{file_id}/data")
async def get_data(
    file_id: str,
    size: str | None = Query(None, description="Width of the thumbnail to get (100, 250 or 500), images only"),
    user_id: str | None = Depends(optional_user),
    services: Services = Depends(get_services),
) -> Response:
    """
    Get the content of a public file, or of one of your own files.
    Private files of other users give the same 404 as files that do not exist.
    """
    node = await services.files.get_public_or_owned(file_id, user_id)
    if node.type == "folder":
        raise ValidationError("type", "A folder doesn't have content")
    if not node.storage_ref:
        raise NotFound()
    thumbnail = None
    if size is not None:
        try:
            thumbnail = ThumbnailSize(int(size))
        except ValueError:
            raise ValidationError("size", "Invalid size parameter")

    if thumbnail is not None and node.type == "image":
        data = await services.content.get_derivative(node.storage_ref, thumbnail)
    else:
        data = await services.content.get(node.storage_ref)
    media_type = mimetypes.guess_type(node.name)[0] or "application/octet-stream"
    return Response(content=data, media_type=media_type)

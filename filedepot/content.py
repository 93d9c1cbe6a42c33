"""
Content store: the bytes of uploaded files and their thumbnails, on local disk.

Every original is one file named after a random uuid (its storage reference).
A thumbnail lives next to it as <reference>_<size>, so no separate index is needed.
Files are written to a temporary name first and renamed into place, which means a
reference never points to a half written file.
"""

import asyncio
import logging
import os
import re
import tempfile
import uuid
from pathlib import Path

from filedepot.errors import InternalError, NotFound
from filedepot.models import ThumbnailSize

logger = logging.getLogger("filedepot.content")

_REFERENCE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


def derivative_name(storage_ref: str, size: ThumbnailSize | int) -> str:
    return f"{storage_ref}_{int(size)}"


class ContentStore:
    def __init__(self, root: Path | str):
        self.root = Path(root)

    async def put(self, data: bytes) -> str:
        """Store the bytes under a new reference and return the reference"""
        storage_ref = str(uuid.uuid4())
        await self._write(storage_ref, data)
        return storage_ref

    async def get(self, storage_ref: str) -> bytes:
        return await self._read(self._path(storage_ref))

    async def put_derivative(self, storage_ref: str, size: ThumbnailSize | int, data: bytes) -> None:
        """Store (or overwrite) the thumbnail of the given size"""
        self._path(storage_ref)
        await self._write(derivative_name(storage_ref, size), data)

    async def get_derivative(self, storage_ref: str, size: ThumbnailSize | int) -> bytes:
        self._path(storage_ref)
        return await self._read(self.root / derivative_name(storage_ref, size))

    def _path(self, storage_ref: str) -> Path:
        # References are generated here, anything else (e.g. "../x") cannot exist
        if not _REFERENCE.match(storage_ref):
            raise NotFound()
        return self.root / storage_ref

    async def _write(self, name: str, data: bytes) -> None:
        try:
            await asyncio.to_thread(_write_atomic, self.root, name, data)
        except OSError as e:
            logger.exception(f"Could not write {name} to {self.root}")
            raise InternalError() from e

    async def _read(self, path: Path) -> bytes:
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as e:
            raise NotFound() from e
        except OSError as e:
            logger.exception(f"Could not read {path}")
            raise InternalError() from e


def _write_atomic(root: Path, name: str, data: bytes) -> None:
    root.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=root, prefix=f".{name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, root / name)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise

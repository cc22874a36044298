"""Object storage port and the local-directory adapter.

The document engine never touches binaries. Uploads go through
ObjectStoragePort; only the returned (object_id, url) pair is persisted in
StoredFile.

Example Usage:
    storage = LocalDirectoryStorage("/var/docflow/objects", "/objects")
    uploaded = storage.upload(io.BytesIO(b"..."), "invoice.pdf", "application/pdf")
    storage.delete(uploaded.object_id)
"""

import logging
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from werkzeug.utils import secure_filename

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the object store cannot complete an operation."""


@dataclass(frozen=True)
class UploadedObject:
    """Location of an uploaded binary.

    Attributes:
        object_id: Store-specific key, used for deletion.
        url: Address clients fetch the binary from.
        size: Number of bytes written.
    """

    object_id: str
    url: str
    size: int


class ObjectStoragePort(ABC):
    """Contract every object-store backend implements."""

    @abstractmethod
    def upload(self, buffer: BinaryIO, filename: str, mime_type: str) -> UploadedObject:
        """Store `buffer` and return where it landed.

        Raises:
            StorageError: the store rejected or failed the write.
        """

    @abstractmethod
    def delete(self, object_id: str) -> bool:
        """Remove an object. Returns False when it did not exist."""


class LocalDirectoryStorage(ObjectStoragePort):
    """Stores objects as files under one root directory.

    Object ids are "<uuid4 hex>-<sanitized filename>", so two uploads of the
    same name never overwrite each other.
    """

    def __init__(self, root_path: str | Path, base_url: str = "/objects"):
        self._root = Path(root_path)
        self._root.mkdir(parents=True, exist_ok=True)
        self._base_url = base_url.rstrip("/")

    def _path_for(self, object_id: str) -> Path:
        path = (self._root / object_id).resolve()
        if self._root.resolve() not in path.parents:
            raise StorageError(f"Object id escapes storage root: {object_id!r}")
        return path

    def upload(self, buffer: BinaryIO, filename: str, mime_type: str) -> UploadedObject:
        safe_name = secure_filename(filename or "") or "upload"
        object_id = f"{uuid.uuid4().hex}-{safe_name}"
        path = self._path_for(object_id)
        try:
            with open(path, "wb") as fh:
                data = buffer.read()
                fh.write(data)
        except OSError as exc:
            raise StorageError(f"Could not write object {object_id}: {exc}") from exc

        logger.debug("Stored object %s (%s, %d bytes)", object_id, mime_type, len(data))
        return UploadedObject(
            object_id=object_id,
            url=f"{self._base_url}/{object_id}",
            size=len(data),
        )

    def delete(self, object_id: str) -> bool:
        path = self._path_for(object_id)
        try:
            os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Could not delete object {object_id}: {exc}") from exc
        return True

    def exists(self, object_id: str) -> bool:
        return self._path_for(object_id).is_file()

"""
File registry: upload, lookup and deletion of stored files.

Glue between the object-storage port and the StoredFile / FileAssociation
tables. Binaries go to the object store first; metadata is written only once
the upload succeeded. On deletion the metadata (and every association) is
committed away before the binary is removed, so a failed object delete
leaves an orphan binary rather than a dangling row.
"""

import logging
import os

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from docflow.adapters.object_storage import ObjectStoragePort, StorageError
from docflow.core.exceptions import InsufficientRole, NotFoundError, ValidationError
from docflow.models import Role, db
from docflow.models.file import StoredFile
from docflow.services import file_association

logger = logging.getLogger(__name__)

MIME_FILE_TYPES = {
    "image/jpeg": "image",
    "image/png": "image",
    "image/gif": "image",
    "image/webp": "image",
    "application/pdf": "pdf",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "spreadsheet",
    "application/vnd.ms-excel": "spreadsheet",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "document",
    "application/msword": "document",
}
ALLOWED_MIME_TYPES = frozenset(MIME_FILE_TYPES)

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def _storage() -> ObjectStoragePort:
    return current_app.extensions["object_storage"]


def _max_upload_bytes() -> int:
    return int(current_app.config.get("MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES))


def file_type_for(mime_type: str) -> str:
    return MIME_FILE_TYPES.get((mime_type or "").lower(), "other")


def register_upload(buffer, filename: str, mime_type: str, description: str | None = None) -> StoredFile:
    """
    Push a binary to the object store and record its metadata.

    Raises:
        ValidationError: missing file name, disallowed MIME type, empty or
            oversized payload.
        StorageError: the object store failed.
    """
    mime_type = (mime_type or "").split(";")[0].strip().lower()
    name = os.path.basename((filename or "").strip())

    errors = {}
    if not name:
        errors["filename"] = "required"
    if mime_type not in ALLOWED_MIME_TYPES:
        errors["mime_type"] = f"'{mime_type or 'unknown'}' is not an allowed file type"
    if errors:
        raise ValidationError("Invalid upload", details=errors)

    uploaded = _storage().upload(buffer, name, mime_type)
    if uploaded.size == 0 or uploaded.size > _max_upload_bytes():
        _storage().delete(uploaded.object_id)
        raise ValidationError(
            "Invalid upload",
            details={"size": f"must be between 1 and {_max_upload_bytes()} bytes"},
        )

    stored = StoredFile(
        name=name,
        url=uploaded.url,
        object_id=uploaded.object_id,
        mime_type=mime_type,
        size=uploaded.size,
        file_type=file_type_for(mime_type),
        description=description,
    )
    db.session.add(stored)
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        _storage().delete(uploaded.object_id)
        raise

    logger.info("File uploaded: %s (%s, %d bytes)", stored.id, mime_type, stored.size)
    return stored


def get_file(file_id: str) -> StoredFile:
    stored = db.session.get(StoredFile, file_id)
    if stored is None:
        raise NotFoundError("File", file_id)
    return stored


def delete_file(file_id: str, principal) -> int:
    """
    Delete a file, every association pointing at it, and its binary.

    ADMIN and above only: a file may be attached to documents the caller
    cannot see.

    Returns:
        Number of associations removed.
    """
    if not principal.has_role(Role.ADMIN):
        raise InsufficientRole(principal.role.value, Role.ADMIN.value, "delete_file")
    stored = get_file(file_id)
    object_id = stored.object_id

    removed = file_association.detach_all_for_file(file_id)
    db.session.delete(stored)
    db.session.commit()

    try:
        _storage().delete(object_id)
    except StorageError:
        logger.exception("Object %s could not be removed; binary left orphaned", object_id)

    logger.info("File deleted: %s (%d associations removed)", file_id, removed)
    return removed

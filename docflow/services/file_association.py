"""
File Association Index

Generic many-to-many binding between stored files and document locations
(kind, document_id, field_name). Any document kind can carry any number of
files without a join table per kind.

Rules:
  - attach() always inserts; identical tuples produce distinct rows.
    Callers that want one file per field use replace().
  - Rows are never updated. Replacing is delete + create.
  - detach_all_for() must run in the same transaction as (or before) the
    owning document's deletion.

Functions here flush but do not commit unless `commit=True`; repositories
compose them with their own writes.
"""

import logging
from collections.abc import Iterator

from sqlalchemy import delete, select

from docflow.core.exceptions import NotFoundError, ValidationError
from docflow.models import DocumentKind, db
from docflow.models.document import DocumentRef
from docflow.models.file import FileAssociation, StoredFile

logger = logging.getLogger(__name__)


def _kind(kind) -> DocumentKind:
    try:
        return DocumentKind.coerce(kind)
    except ValueError:
        raise ValidationError(
            f"Unknown document kind '{kind}'",
            details={"document_kind": f"must be one of: {', '.join(k.value for k in DocumentKind)}"},
        ) from None


def attach(file_id: str, kind, document_id: str, field_name: str | None = None,
           *, commit: bool = False) -> int:
    """
    Bind a stored file to a document location.

    Returns:
        The new association id.

    Raises:
        NotFoundError: the file does not exist.
        ValidationError: unknown document kind.
    """
    kind = _kind(kind)
    if db.session.get(StoredFile, file_id) is None:
        raise NotFoundError("File", file_id)

    association = FileAssociation(
        file_id=file_id,
        document_kind=kind,
        document_id=str(document_id),
        field_name=(field_name or "").strip() or None,
    )
    db.session.add(association)
    db.session.flush()
    if commit:
        db.session.commit()

    logger.info(
        "File attached",
        extra={"document_kind": kind.value, "document_id": document_id, "file_id": file_id},
    )
    return association.id


def list_for(kind, document_id: str, field_name: str | None = None) -> Iterator[FileAssociation]:
    """Yield associations for a document (optionally one field) in creation order."""
    kind = _kind(kind)
    stmt = (
        select(FileAssociation)
        .where(
            FileAssociation.document_kind == kind,
            FileAssociation.document_id == str(document_id),
        )
        .order_by(FileAssociation.id.asc())
    )
    if field_name:
        stmt = stmt.where(FileAssociation.field_name == field_name)
    yield from db.session.execute(stmt).scalars()


def documents_for_file(file_id: str) -> list[DocumentRef]:
    """Every document location referencing `file_id` (distinct, creation order)."""
    rows = db.session.execute(
        select(FileAssociation.document_kind, FileAssociation.document_id)
        .where(FileAssociation.file_id == file_id)
        .order_by(FileAssociation.id.asc())
    ).all()
    seen = []
    for kind, document_id in rows:
        ref = DocumentRef(kind, document_id)
        if ref not in seen:
            seen.append(ref)
    return seen


def get_association(association_id: int) -> FileAssociation:
    association = db.session.get(FileAssociation, association_id)
    if association is None:
        raise NotFoundError("File association", association_id)
    return association


def detach(association_id: int, *, commit: bool = False) -> None:
    """Remove a single association. Raises NotFoundError if it does not exist."""
    association = get_association(association_id)
    db.session.delete(association)
    db.session.flush()
    if commit:
        db.session.commit()
    logger.info(
        "File detached",
        extra={
            "document_kind": association.document_kind.value,
            "document_id": association.document_id,
            "file_id": association.file_id,
        },
    )


def detach_all_for(kind, document_id: str) -> int:
    """Delete every association of a document. Returns the number removed."""
    kind = _kind(kind)
    result = db.session.execute(
        delete(FileAssociation)
        .where(
            FileAssociation.document_kind == kind,
            FileAssociation.document_id == str(document_id),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def detach_all_for_file(file_id: str) -> int:
    """Delete every association pointing at a file."""
    result = db.session.execute(
        delete(FileAssociation)
        .where(FileAssociation.file_id == file_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def replace(file_id: str, kind, document_id: str, field_name: str, *, commit: bool = False) -> int:
    """Make `file_id` the only file bound to (kind, document_id, field_name)."""
    if not field_name:
        raise ValidationError("field_name is required to replace an attachment",
                              details={"field_name": "required"})
    kind = _kind(kind)
    db.session.execute(
        delete(FileAssociation)
        .where(
            FileAssociation.document_kind == kind,
            FileAssociation.document_id == str(document_id),
            FileAssociation.field_name == field_name,
        )
        .execution_options(synchronize_session=False)
    )
    return attach(file_id, kind, document_id, field_name, commit=commit)

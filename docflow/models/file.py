"""
File metadata and polymorphic file associations.

Models:
    - StoredFile:       metadata for a binary held by the external object store.
    - FileAssociation:  binds one StoredFile to one (document_kind, document_id,
                        field_name) location.

Polymorphic reference pattern:
    document_kind + document_id together identify the owning document.
    document_kind is an enum column over the finite DocumentKind set, so an
    association can never point at an unknown model name.

Associations are never mutated in place: replacing a file is delete + create.
The integer primary key doubles as creation order.
"""

import uuid
from datetime import datetime, timezone

from docflow.models import DocumentKind, db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class StoredFile(db.Model):
    """Metadata for an uploaded file. The payload itself lives in the object store."""

    __tablename__ = "stored_files"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(255), nullable=False, comment="Original file name")
    url = db.Column(db.String(1024), nullable=False)
    object_id = db.Column(
        db.String(255), nullable=False, unique=True,
        comment="Object-store key used for deletion",
    )
    mime_type = db.Column(db.String(120), nullable=False)
    size = db.Column(db.Integer, nullable=False)
    file_type = db.Column(
        db.String(20), nullable=False, default="other", index=True,
        comment="image | pdf | spreadsheet | document | other",
    )
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    associations = db.relationship(
        "FileAssociation", back_populates="file",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "url": self.url,
            "object_id": self.object_id,
            "mime_type": self.mime_type,
            "size": self.size,
            "file_type": self.file_type,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<StoredFile {self.id[:8]} {self.name}>"


class FileAssociation(db.Model):
    """Many-to-many binding between a file and a document location."""

    __tablename__ = "file_associations"
    __table_args__ = (
        db.Index("ix_file_assoc_document", "document_kind", "document_id"),
        db.Index("ix_file_assoc_document_id", "document_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    file_id = db.Column(
        db.String(36),
        db.ForeignKey("stored_files.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document_kind = db.Column(
        db.Enum(DocumentKind, native_enum=False, length=30,
                values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    document_id = db.Column(db.String(36), nullable=False)
    field_name = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    file = db.relationship("StoredFile", back_populates="associations")

    def to_dict(self, include_file: bool = False) -> dict:
        data = {
            "id": self.id,
            "file_id": self.file_id,
            "document_kind": self.document_kind.value,
            "document_id": self.document_id,
            "field_name": self.field_name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_file and self.file is not None:
            data["file"] = self.file.to_dict()
        return data

    def __repr__(self):
        return (
            f"<FileAssociation #{self.id} {self.file_id[:8]} → "
            f"{self.document_kind.value}:{self.document_id[:8]}/{self.field_name or '-'}>"
        )

"""
Comment thread shared by every document kind.

Comments reference their document through (document_kind, document_id), the
same tagged-reference pattern as file associations. Deletion is soft: the row
is retained for audit and hidden from default views.
"""

import uuid
from datetime import datetime, timezone

from docflow.models import DocumentKind, db
from docflow.models.soft_delete import SoftDeleteMixin


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class DocumentComment(SoftDeleteMixin, db.Model):
    """A single comment on a workflow document."""

    __tablename__ = "document_comments"
    __table_args__ = (
        db.Index("ix_document_comments_document", "document_kind", "document_id"),
    )

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    document_kind = db.Column(
        db.Enum(DocumentKind, native_enum=False, length=30,
                values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    document_id = db.Column(db.String(36), nullable=False)
    author_id = db.Column(db.String(64), nullable=False, index=True)
    text = db.Column(db.Text, nullable=False)
    edited = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "document_kind": self.document_kind.value,
            "document_id": self.document_id,
            "author_id": self.author_id,
            "text": self.text,
            "edited": self.edited,
            "deleted": self.deleted,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<DocumentComment {self.id[:8]} on {self.document_kind.value}:{self.document_id[:8]}>"

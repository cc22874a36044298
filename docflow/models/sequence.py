"""
Per-kind reference-code counter.

One row per DocumentKind. `last_serial` is only ever advanced with a
conditional UPDATE (compare-and-swap) by services/code_allocator.py.
"""

from datetime import datetime, timezone

from docflow.models import db


class DocumentSequence(db.Model):
    __tablename__ = "document_sequences"

    kind = db.Column(db.String(30), primary_key=True)
    last_serial = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self):
        return f"<DocumentSequence {self.kind}={self.last_serial}>"

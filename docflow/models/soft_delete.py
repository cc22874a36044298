"""
Soft Delete Mixin — visible vs. retained rows.

Adds a `deleted` flag and `deleted_at` timestamp. Soft-deleted rows stay in
the table for audit and are filtered out of default views at read time
(`Model.deleted.is_(False)`).

Usage:
    class MyModel(SoftDeleteMixin, db.Model):
        ...

    obj.soft_delete()
    db.session.commit()
"""

from datetime import datetime, timezone

from docflow.models import db


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    deleted = db.Column(db.Boolean, nullable=False, default=False, index=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True, default=None)

    def soft_delete(self):
        """Mark this record as deleted."""
        self.deleted = True
        self.deleted_at = datetime.now(timezone.utc)

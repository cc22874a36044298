"""
Document Workflow Backend
SQLAlchemy database instance and shared model enums.

All models import ``db`` from here:
    from docflow.models import db
"""

from enum import Enum

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


class DocumentKind(str, Enum):
    """Discriminator for the four business documents sharing the workflow engine."""

    CONCEPT_NOTE = "concept_note"
    PURCHASE_REQUEST = "purchase_request"
    STAFF_STRATEGY = "staff_strategy"
    PAYMENT_REQUEST = "payment_request"

    @classmethod
    def coerce(cls, value):
        """Accept an enum member or its string value; raise ValueError otherwise."""
        if isinstance(value, cls):
            return value
        return cls(str(value))


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    REVIEWED = "reviewed"
    APPROVED = "approved"
    REJECTED = "rejected"


class Role(str, Enum):
    """Fixed role hierarchy. Higher rank inherits every lower gate."""

    STAFF = "STAFF"
    REVIEWER = "REVIEWER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER-ADMIN"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def at_least(self, other: "Role") -> bool:
        return self.rank >= other.rank


_ROLE_RANK = {
    Role.STAFF: 1,
    Role.REVIEWER: 2,
    Role.ADMIN: 3,
    Role.SUPER_ADMIN: 4,
}

"""
Document Workflow Backend
Workflow document models — one table per document kind.

Models:
    - ConceptNote       (CN-CASFOD001)   draft → pending → reviewed → approved | rejected
    - PurchaseRequest   (PR-CASFOD001)   draft → pending → approved | rejected
    - StaffStrategy     (SS-CASFOD-001)  draft → pending → approved | rejected
    - PaymentRequest    (PMR-CASFOD001)  draft → pending → approved | rejected

Every kind shares WorkflowDocumentMixin: identity, reference code, status,
ownership and gate-actor columns. Payload columns are kind-specific and are
opaque to the lifecycle engine.
"""

import uuid
from datetime import datetime, timezone
from typing import NamedTuple

from docflow.models import DocumentKind, DocumentStatus, db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class DocumentRef(NamedTuple):
    """Typed (kind, id) pair used wherever a document is referenced polymorphically."""

    kind: DocumentKind
    document_id: str


class WorkflowDocumentMixin:
    """Columns and behaviour shared by every workflow document kind.

    Class attributes each kind must define:
        KIND                 DocumentKind discriminator
        LABEL                human-readable name used in errors and logs
        CODE_PREFIX          e.g. "CN"
        CODE_TEMPLATE        str.format template taking prefix, org, serial
        HAS_REVIEW           True when the `reviewed` state is part of the graph
        REQUIRE_PREPARED_BY  ownership also checks prepared_by (always the creator)
        PAYLOAD_FIELDS       columns callers may set on create/update
        REQUIRED_FIELDS      payload columns that must be present on create
        SEARCH_FIELDS        text columns matched by list search
    """

    KIND: DocumentKind
    LABEL = "Document"
    CODE_PREFIX = "DOC"
    CODE_TEMPLATE = "{prefix}-{org}{serial:03d}"
    HAS_REVIEW = False
    REQUIRE_PREPARED_BY = False
    PAYLOAD_FIELDS: tuple = ()
    REQUIRED_FIELDS: tuple = ()
    SEARCH_FIELDS: tuple = ()

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    reference_code = db.Column(
        db.String(64), nullable=False, unique=True,
        comment="Draft placeholder until submit, then the final sequential code",
    )
    status = db.Column(
        db.String(20), nullable=False, default=DocumentStatus.DRAFT.value, index=True,
        comment="draft | pending | reviewed | approved | rejected",
    )
    created_by = db.Column(db.String(64), nullable=False, index=True)
    reviewed_by = db.Column(db.String(64), nullable=True, index=True)
    approved_by = db.Column(db.String(64), nullable=True, index=True)
    rejected_by = db.Column(db.String(64), nullable=True, index=True)
    copied_to = db.Column(
        db.JSON, nullable=False, default=list,
        comment="Principal ids the owner copied the document to",
    )

    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )

    @property
    def is_draft(self) -> bool:
        return self.status == DocumentStatus.DRAFT.value

    @classmethod
    def statuses(cls) -> tuple:
        """Statuses that exist in this kind's graph."""
        if cls.HAS_REVIEW:
            return tuple(s.value for s in DocumentStatus)
        return tuple(s.value for s in DocumentStatus if s is not DocumentStatus.REVIEWED)

    def payload_dict(self) -> dict:
        return {name: getattr(self, name) for name in self.PAYLOAD_FIELDS}

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "kind": self.KIND.value,
            "reference_code": self.reference_code,
            "status": self.status,
            "created_by": self.created_by,
            "reviewed_by": self.reviewed_by,
            "approved_by": self.approved_by,
            "rejected_by": self.rejected_by,
            "copied_to": list(self.copied_to or []),
            "submitted_at": _iso(self.submitted_at),
            "reviewed_at": _iso(self.reviewed_at),
            "approved_at": _iso(self.approved_at),
            "rejected_at": _iso(self.rejected_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if self.REQUIRE_PREPARED_BY:
            data["prepared_by"] = self.prepared_by
        data.update(self.payload_dict())
        return data

    def __repr__(self):
        return f"<{type(self).__name__} {self.reference_code} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# ConceptNote
# ═════════════════════════════════════════════════════════════════════════════

class ConceptNote(WorkflowDocumentMixin, db.Model):
    """
    Activity concept note. The only kind with a separate review step, and the
    only kind carrying a preparer distinct from the creating account.
    """

    __tablename__ = "concept_notes"

    KIND = DocumentKind.CONCEPT_NOTE
    LABEL = "Concept note"
    CODE_PREFIX = "CN"
    HAS_REVIEW = True
    REQUIRE_PREPARED_BY = True
    PAYLOAD_FIELDS = (
        "staff_name", "staff_role", "expense_charged_to",
        "account_code", "activity_title", "activity_location", "activity_period",
        "background_context", "objectives_purpose", "detailed_activity_description",
        "strategic_plan", "benefits_of_project", "activity_budget",
        "means_of_verification",
    )
    REQUIRED_FIELDS = ("staff_name", "activity_title")
    SEARCH_FIELDS = ("staff_name", "activity_title", "account_code")

    prepared_by = db.Column(db.String(64), nullable=True, index=True)
    staff_name = db.Column(db.String(200), nullable=False)
    staff_role = db.Column(db.String(120), default="")
    expense_charged_to = db.Column(db.String(200), default="")
    account_code = db.Column(db.String(60), default="")
    activity_title = db.Column(db.String(300), nullable=False)
    activity_location = db.Column(db.String(200), default="")
    activity_period = db.Column(db.JSON, default=dict, comment='{"from": ..., "to": ...}')
    background_context = db.Column(db.Text, default="")
    objectives_purpose = db.Column(db.Text, default="")
    detailed_activity_description = db.Column(db.Text, default="")
    strategic_plan = db.Column(db.Text, default="")
    benefits_of_project = db.Column(db.Text, default="")
    activity_budget = db.Column(db.Float, nullable=True)
    means_of_verification = db.Column(db.Text, default="")


# ═════════════════════════════════════════════════════════════════════════════
# PurchaseRequest
# ═════════════════════════════════════════════════════════════════════════════

class PurchaseRequest(WorkflowDocumentMixin, db.Model):
    """Procurement request with line-item groups."""

    __tablename__ = "purchase_requests"

    KIND = DocumentKind.PURCHASE_REQUEST
    LABEL = "Purchase request"
    CODE_PREFIX = "PR"
    PAYLOAD_FIELDS = (
        "department", "suggested_supplier", "requested_by", "address",
        "final_delivery_point", "city", "period_of_activity",
        "activity_description", "expense_charged_to", "account_code",
        "item_groups",
    )
    REQUIRED_FIELDS = ("department", "requested_by")
    SEARCH_FIELDS = ("department", "requested_by", "suggested_supplier", "city")

    department = db.Column(db.String(120), nullable=False)
    suggested_supplier = db.Column(db.String(200), default="")
    requested_by = db.Column(db.String(200), nullable=False)
    address = db.Column(db.String(300), default="")
    final_delivery_point = db.Column(db.String(200), default="")
    city = db.Column(db.String(120), default="")
    period_of_activity = db.Column(db.String(120), default="")
    activity_description = db.Column(db.Text, default="")
    expense_charged_to = db.Column(db.String(200), default="")
    account_code = db.Column(db.String(60), default="")
    item_groups = db.Column(
        db.JSON, default=list,
        comment="[{description, frequency, quantity, unit, unit_cost, total}]",
    )


# ═════════════════════════════════════════════════════════════════════════════
# StaffStrategy
# ═════════════════════════════════════════════════════════════════════════════

class StaffStrategy(WorkflowDocumentMixin, db.Model):
    """Individual staff strategy: accountability areas with objectives and KPIs."""

    __tablename__ = "staff_strategies"

    KIND = DocumentKind.STAFF_STRATEGY
    LABEL = "Staff strategy"
    CODE_PREFIX = "SS"
    CODE_TEMPLATE = "{prefix}-{org}-{serial:03d}"
    PAYLOAD_FIELDS = (
        "staff_name", "staff_id", "job_title", "department", "supervisor",
        "supervisor_id", "period", "accountability_areas",
    )
    REQUIRED_FIELDS = ("staff_name", "job_title", "period")
    SEARCH_FIELDS = ("staff_name", "job_title", "department", "supervisor")

    staff_name = db.Column(db.String(200), nullable=False)
    staff_id = db.Column(db.String(64), nullable=True)
    job_title = db.Column(db.String(200), nullable=False)
    department = db.Column(db.String(120), default="")
    supervisor = db.Column(db.String(200), default="")
    supervisor_id = db.Column(db.String(64), nullable=True)
    period = db.Column(db.String(60), nullable=False)
    accountability_areas = db.Column(
        db.JSON, default=list,
        comment="[{area_name, objectives: [{objective, timeline, expected_outcome, kpi, ...}]}]",
    )


# ═════════════════════════════════════════════════════════════════════════════
# PaymentRequest
# ═════════════════════════════════════════════════════════════════════════════

class PaymentRequest(WorkflowDocumentMixin, db.Model):
    """Request to pay an expense into a bank account."""

    __tablename__ = "payment_requests"

    KIND = DocumentKind.PAYMENT_REQUEST
    LABEL = "Payment request"
    CODE_PREFIX = "PMR"
    PAYLOAD_FIELDS = (
        "request_by", "amount_in_figure", "amount_in_words", "purpose_of_expense",
        "grant_code", "date_of_expense", "special_instruction", "account_number",
        "account_name", "bank_name",
    )
    REQUIRED_FIELDS = ("request_by", "amount_in_figure")
    SEARCH_FIELDS = ("request_by", "purpose_of_expense", "grant_code", "bank_name")

    request_by = db.Column(db.String(200), nullable=False)
    amount_in_figure = db.Column(db.Float, nullable=False)
    amount_in_words = db.Column(db.String(300), default="")
    purpose_of_expense = db.Column(db.Text, default="")
    grant_code = db.Column(db.String(60), default="")
    date_of_expense = db.Column(db.String(40), default="")
    special_instruction = db.Column(db.Text, default="")
    account_number = db.Column(db.String(40), default="")
    account_name = db.Column(db.String(200), default="")
    bank_name = db.Column(db.String(200), default="")


# ── Registry ─────────────────────────────────────────────────────────────────

MODEL_BY_KIND = {
    DocumentKind.CONCEPT_NOTE: ConceptNote,
    DocumentKind.PURCHASE_REQUEST: PurchaseRequest,
    DocumentKind.STAFF_STRATEGY: StaffStrategy,
    DocumentKind.PAYMENT_REQUEST: PaymentRequest,
}


def model_for(kind) -> type:
    """Return the model class for a DocumentKind (or its string value)."""
    return MODEL_BY_KIND[DocumentKind.coerce(kind)]

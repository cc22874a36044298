"""workflow_documents

Create the four workflow document tables, the per-kind code counter,
stored files with their polymorphic associations, and the comment thread.

Revision ID: 0001_workflow_documents
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "0001_workflow_documents"
down_revision = None
branch_labels = None
depends_on = None

_KIND = sa.Enum(
    "concept_note", "purchase_request", "staff_strategy", "payment_request",
    name="documentkind", native_enum=False, length=30,
)

_DOCUMENT_TABLES = ("concept_notes", "purchase_requests", "staff_strategies", "payment_requests")


def _workflow_columns():
    return [
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("reference_code", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("created_by", sa.String(length=64), nullable=False),
        sa.Column("reviewed_by", sa.String(length=64), nullable=True),
        sa.Column("approved_by", sa.String(length=64), nullable=True),
        sa.Column("rejected_by", sa.String(length=64), nullable=True),
        sa.Column("copied_to", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _workflow_constraints(table):
    return [
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("reference_code", name=f"uq_{table}_reference_code"),
    ]


def _workflow_indexes(table):
    for column in ("status", "created_by", "reviewed_by", "approved_by", "rejected_by"):
        op.create_index(f"ix_{table}_{column}", table, [column])


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "concept_notes" not in existing_tables:
        op.create_table(
            "concept_notes",
            *_workflow_columns(),
            sa.Column("prepared_by", sa.String(length=64), nullable=True),
            sa.Column("staff_name", sa.String(length=200), nullable=False),
            sa.Column("staff_role", sa.String(length=120), nullable=True),
            sa.Column("expense_charged_to", sa.String(length=200), nullable=True),
            sa.Column("account_code", sa.String(length=60), nullable=True),
            sa.Column("activity_title", sa.String(length=300), nullable=False),
            sa.Column("activity_location", sa.String(length=200), nullable=True),
            sa.Column("activity_period", sa.JSON(), nullable=True),
            sa.Column("background_context", sa.Text(), nullable=True),
            sa.Column("objectives_purpose", sa.Text(), nullable=True),
            sa.Column("detailed_activity_description", sa.Text(), nullable=True),
            sa.Column("strategic_plan", sa.Text(), nullable=True),
            sa.Column("benefits_of_project", sa.Text(), nullable=True),
            sa.Column("activity_budget", sa.Float(), nullable=True),
            sa.Column("means_of_verification", sa.Text(), nullable=True),
            *_workflow_constraints("concept_notes"),
        )
        _workflow_indexes("concept_notes")
        op.create_index("ix_concept_notes_prepared_by", "concept_notes", ["prepared_by"])

    if "purchase_requests" not in existing_tables:
        op.create_table(
            "purchase_requests",
            *_workflow_columns(),
            sa.Column("department", sa.String(length=120), nullable=False),
            sa.Column("suggested_supplier", sa.String(length=200), nullable=True),
            sa.Column("requested_by", sa.String(length=200), nullable=False),
            sa.Column("address", sa.String(length=300), nullable=True),
            sa.Column("final_delivery_point", sa.String(length=200), nullable=True),
            sa.Column("city", sa.String(length=120), nullable=True),
            sa.Column("period_of_activity", sa.String(length=120), nullable=True),
            sa.Column("activity_description", sa.Text(), nullable=True),
            sa.Column("expense_charged_to", sa.String(length=200), nullable=True),
            sa.Column("account_code", sa.String(length=60), nullable=True),
            sa.Column("item_groups", sa.JSON(), nullable=True),
            *_workflow_constraints("purchase_requests"),
        )
        _workflow_indexes("purchase_requests")

    if "staff_strategies" not in existing_tables:
        op.create_table(
            "staff_strategies",
            *_workflow_columns(),
            sa.Column("staff_name", sa.String(length=200), nullable=False),
            sa.Column("staff_id", sa.String(length=64), nullable=True),
            sa.Column("job_title", sa.String(length=200), nullable=False),
            sa.Column("department", sa.String(length=120), nullable=True),
            sa.Column("supervisor", sa.String(length=200), nullable=True),
            sa.Column("supervisor_id", sa.String(length=64), nullable=True),
            sa.Column("period", sa.String(length=60), nullable=False),
            sa.Column("accountability_areas", sa.JSON(), nullable=True),
            *_workflow_constraints("staff_strategies"),
        )
        _workflow_indexes("staff_strategies")

    if "payment_requests" not in existing_tables:
        op.create_table(
            "payment_requests",
            *_workflow_columns(),
            sa.Column("request_by", sa.String(length=200), nullable=False),
            sa.Column("amount_in_figure", sa.Float(), nullable=False),
            sa.Column("amount_in_words", sa.String(length=300), nullable=True),
            sa.Column("purpose_of_expense", sa.Text(), nullable=True),
            sa.Column("grant_code", sa.String(length=60), nullable=True),
            sa.Column("date_of_expense", sa.String(length=40), nullable=True),
            sa.Column("special_instruction", sa.Text(), nullable=True),
            sa.Column("account_number", sa.String(length=40), nullable=True),
            sa.Column("account_name", sa.String(length=200), nullable=True),
            sa.Column("bank_name", sa.String(length=200), nullable=True),
            *_workflow_constraints("payment_requests"),
        )
        _workflow_indexes("payment_requests")

    if "document_sequences" not in existing_tables:
        op.create_table(
            "document_sequences",
            sa.Column("kind", sa.String(length=30), nullable=False),
            sa.Column("last_serial", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("kind"),
        )

    if "stored_files" not in existing_tables:
        op.create_table(
            "stored_files",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("url", sa.String(length=1024), nullable=False),
            sa.Column("object_id", sa.String(length=255), nullable=False),
            sa.Column("mime_type", sa.String(length=120), nullable=False),
            sa.Column("size", sa.Integer(), nullable=False),
            sa.Column("file_type", sa.String(length=20), nullable=False, server_default="other"),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("object_id", name="uq_stored_files_object_id"),
        )
        op.create_index("ix_stored_files_file_type", "stored_files", ["file_type"])

    if "file_associations" not in existing_tables:
        op.create_table(
            "file_associations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("file_id", sa.String(length=36), nullable=False),
            sa.Column("document_kind", _KIND, nullable=False),
            sa.Column("document_id", sa.String(length=36), nullable=False),
            sa.Column("field_name", sa.String(length=100), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["file_id"], ["stored_files.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_file_associations_file_id", "file_associations", ["file_id"])
        op.create_index("ix_file_assoc_document", "file_associations", ["document_kind", "document_id"])
        op.create_index("ix_file_assoc_document_id", "file_associations", ["document_id"])

    if "document_comments" not in existing_tables:
        op.create_table(
            "document_comments",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("document_kind", _KIND, nullable=False),
            sa.Column("document_id", sa.String(length=36), nullable=False),
            sa.Column("author_id", sa.String(length=64), nullable=False),
            sa.Column("text", sa.Text(), nullable=False),
            sa.Column("edited", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_document_comments_document", "document_comments", ["document_kind", "document_id"])
        op.create_index("ix_document_comments_author_id", "document_comments", ["author_id"])
        op.create_index("ix_document_comments_deleted", "document_comments", ["deleted"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in ("document_comments", "file_associations", "stored_files", "document_sequences"):
        if table in existing_tables:
            op.drop_table(table)

    for table in _DOCUMENT_TABLES:
        if table in existing_tables:
            op.drop_table(table)

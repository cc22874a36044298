"""
Document Repository — one instance per document kind.

The single entry point for callers (blueprints, scripts, tests) that work
with workflow documents. It composes:
  - visibility.py          who may see which rows
  - document_lifecycle.py  every status change, including draft edits
  - file_association.py    attachments
  - DocumentComment        the comment thread

Every read goes through the visibility predicate; a document the principal
may not see is reported as missing (NotFoundError), never as forbidden.
Gated actions (review, approve, reject) load through action_predicate.

Usage:
    from docflow.services.document_repository import repository_for

    repo = repository_for("purchase_request")
    pr = repo.create({"department": "Logistics", "requested_by": "Ada"}, principal)
    pr = repo.submit(pr.id, principal)
"""

import logging
import re
from datetime import datetime, timezone

from sqlalchemy import and_, delete, func, or_, select

from docflow.core.exceptions import (
    CreatorMismatch,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from docflow.models import DocumentKind, DocumentStatus, Role, db
from docflow.models.comment import DocumentComment
from docflow.models.document import MODEL_BY_KIND
from docflow.models.file import FileAssociation
from docflow.services import file_association
from docflow.services.code_allocator import draft_placeholder_code
from docflow.services.document_lifecycle import (
    allowed_next_statuses,
    apply_transition,
    plan_transition,
    resolve_action,
)
from docflow.services.ownership import is_owner, verify_ownership
from docflow.services.visibility import action_predicate, visibility_predicate

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
MAX_COMMENT_LENGTH = 5000

# Payload columns holding structured JSON, with the Python type they must carry.
_JSON_FIELD_TYPES = {
    "activity_period": dict,
    "item_groups": list,
    "accountability_areas": list,
}
_NUMERIC_FIELDS = frozenset({"activity_budget", "amount_in_figure"})

_SORTS = {"created_at": "asc", "-created_at": "desc", "updated_at": "asc", "-updated_at": "desc"}


class DocumentRepository:
    """CRUD, lifecycle actions, attachments and comments for one document kind."""

    def __init__(self, model):
        self.model = model
        self.kind = model.KIND

    def __repr__(self):
        return f"<DocumentRepository {self.kind.value}>"

    # ── Payload validation ───────────────────────────────────────────────

    def clean_payload(self, payload: dict | None, *, partial: bool = False) -> dict:
        """
        Keep known payload columns and check their shape.

        Unknown keys are dropped: workflow columns (status, reference_code,
        created_by, gate actors) can never be set through a payload.

        Raises:
            ValidationError: with field-level details.
        """
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            raise ValidationError("Payload must be a JSON object")

        cleaned = {}
        errors = {}
        for name in self.model.PAYLOAD_FIELDS:
            if name not in payload:
                continue
            value = payload[name]
            if isinstance(value, str):
                value = value.strip()
            if name in _NUMERIC_FIELDS and value not in (None, ""):
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    try:
                        value = float(value)
                    except (TypeError, ValueError):
                        errors[name] = "must be a number"
                        continue
            expected = _JSON_FIELD_TYPES.get(name)
            if expected is not None and value is not None and not isinstance(value, expected):
                errors[name] = f"must be a {'list' if expected is list else 'object'}"
                continue
            cleaned[name] = value

        for name in self.model.REQUIRED_FIELDS:
            if partial and name not in payload:
                continue
            if cleaned.get(name) in (None, "") and name not in errors:
                errors[name] = "required"

        if errors:
            raise ValidationError(f"Invalid {self.model.LABEL.lower()} payload", details=errors)
        return cleaned

    # ── Reads ────────────────────────────────────────────────────────────

    def _visible(self, principal):
        return visibility_predicate(self.model, principal)

    def get(self, document_id: str, principal):
        """Return the document if it exists and `principal` may see it."""
        document = db.session.execute(
            select(self.model).where(self.model.id == str(document_id), self._visible(principal))
        ).scalar_one_or_none()
        if document is None:
            raise NotFoundError(self.model.LABEL, document_id)
        return document

    def get_for_action(self, document_id: str, principal, action: str | None = None):
        """Load a document to act on it; gate holders reach beyond their listing."""
        document = db.session.execute(
            select(self.model).where(
                self.model.id == str(document_id),
                action_predicate(self.model, principal, action),
            )
        ).scalar_one_or_none()
        if document is None:
            raise NotFoundError(self.model.LABEL, document_id)
        return document

    def list_visible(
        self,
        principal,
        *,
        status: str | None = None,
        search: str | None = None,
        sort: str = "-created_at",
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> dict:
        """
        Visible documents of this kind, filtered and paginated.

        Search splits on whitespace; every term must match at least one of the
        kind's SEARCH_FIELDS or the reference code (case-insensitive).

        Returns:
            {"items": [documents], "total": N, "page": P, "limit": L}
        """
        model = self.model
        if status is not None and status not in model.statuses():
            raise ValidationError(
                f"Unknown status '{status}'",
                details={"status": f"must be one of: {', '.join(model.statuses())}"},
            )
        if sort not in _SORTS:
            raise ValidationError(
                f"Unknown sort '{sort}'",
                details={"sort": f"must be one of: {', '.join(_SORTS)}"},
            )
        page = max(int(page or 1), 1)
        limit = min(max(int(limit or DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)

        stmt = select(model).where(self._visible(principal))
        if status:
            stmt = stmt.where(model.status == status)

        if search and search.strip():
            columns = [getattr(model, name) for name in model.SEARCH_FIELDS] + [model.reference_code]
            terms = [t for t in re.split(r"\s+", search.strip()[:200]) if t]
            stmt = stmt.where(
                and_(*(or_(*(col.ilike(f"%{term}%") for col in columns)) for term in terms))
            )

        total = db.session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()

        column = getattr(model, sort.lstrip("-"))
        order = column.desc() if _SORTS[sort] == "desc" else column.asc()
        stmt = stmt.order_by(order, model.id.asc()).offset((page - 1) * limit).limit(limit)

        return {
            "items": db.session.execute(stmt).scalars().all(),
            "total": total,
            "page": page,
            "limit": limit,
        }

    def stats(self, principal) -> dict:
        """Submitted and approved counts. SUPER-ADMIN counts everyone's, others their own."""
        model = self.model
        scope = []
        if principal.role is not Role.SUPER_ADMIN:
            scope.append(model.created_by == principal.id)

        total = db.session.execute(
            select(func.count(model.id)).where(model.status != DocumentStatus.DRAFT.value, *scope)
        ).scalar_one()
        approved = db.session.execute(
            select(func.count(model.id)).where(model.status == DocumentStatus.APPROVED.value, *scope)
        ).scalar_one()
        return {"total_requests": total, "total_approved": approved}

    # ── Creation and lifecycle ───────────────────────────────────────────

    def create(self, payload: dict, principal, *, submit: bool = False):
        """
        Create a draft owned by `principal`.

        With submit=True the draft is created and submitted in one transaction
        ("save and send"): either both land or neither does.
        """
        values = self.clean_payload(payload)
        if self.model.REQUIRE_PREPARED_BY:
            values["prepared_by"] = principal.id

        document = self.model(
            reference_code=draft_placeholder_code(self.kind),
            status=DocumentStatus.DRAFT.value,
            created_by=principal.id,
            **values,
        )
        db.session.add(document)

        if not submit:
            db.session.commit()
            logger.info(
                "%s created", self.model.LABEL,
                extra={"document_kind": self.kind.value, "document_id": document.id,
                       "principal_id": principal.id},
            )
            return document

        db.session.flush()
        try:
            plan = plan_transition(document, "submit", principal)
        except Exception:
            db.session.rollback()
            raise
        return apply_transition(plan)

    def update(self, document_id: str, payload: dict, principal):
        """Edit a draft's payload. Only the owner, only while in draft."""
        document = self.get(document_id, principal)
        changes = self.clean_payload(payload, partial=True)
        plan = plan_transition(document, "edit", principal, changes=changes)
        return apply_transition(plan)

    def _act(self, document_id: str, action: str, principal):
        if action == "submit":
            document = self.get(document_id, principal)
        else:
            document = self.get_for_action(document_id, principal, action)
        return apply_transition(plan_transition(document, action, principal))

    def submit(self, document_id: str, principal):
        return self._act(document_id, "submit", principal)

    def review(self, document_id: str, principal):
        return self._act(document_id, "review", principal)

    def approve(self, document_id: str, principal):
        return self._act(document_id, "approve", principal)

    def reject(self, document_id: str, principal):
        return self._act(document_id, "reject", principal)

    def transition_to(self, document_id: str, status: str, principal, *, comment: str | None = None):
        """
        Move to `status` by whichever table action leads there.

        An optional comment is recorded in the same transaction as the status
        change: both land or neither does.
        """
        document = self.get_for_action(document_id, principal)
        action = resolve_action(self.model, document.status, status)
        plan = plan_transition(document, action, principal)
        if comment:
            db.session.add(DocumentComment(
                document_kind=self.kind,
                document_id=document.id,
                author_id=principal.id,
                text=self._clean_comment(comment),
            ))
        return apply_transition(plan)

    def copy_to(self, document_id: str, recipient_ids, principal):
        """
        Copy a document to other principals (recorded in `copied_to`).

        Only the creator may copy. Recipients already present are kept once,
        in their original order.
        """
        if (
            not isinstance(recipient_ids, (list, tuple))
            or not recipient_ids
            or not all(isinstance(r, str) and r.strip() for r in recipient_ids)
        ):
            raise ValidationError(
                "Recipients are required",
                details={"recipients": "must be a non-empty list of principal ids"},
            )
        document = self.get(document_id, principal)
        verify_ownership(document, principal.id)

        merged = list(document.copied_to or [])
        for recipient in (r.strip() for r in recipient_ids):
            if recipient not in merged:
                merged.append(recipient)
        document.copied_to = merged
        db.session.commit()

        logger.info(
            "%s copied to %d recipient(s)", self.model.LABEL, len(merged),
            extra={"document_kind": self.kind.value, "document_id": document.id,
                   "principal_id": principal.id},
        )
        return document

    def delete(self, document_id: str, principal) -> None:
        """
        Hard-delete a document with its attachments' associations and comments.

        SUPER-ADMIN may delete anything visible; anyone else only their own
        draft.
        """
        document = self.get(document_id, principal)
        if principal.role is not Role.SUPER_ADMIN:
            if not document.is_draft:
                raise InvalidTransitionError(
                    document.status, None, allowed_next_statuses(self.model, document.status),
                )
            verify_ownership(document, principal.id, require_prepared_by=self.model.REQUIRE_PREPARED_BY)

        try:
            removed = file_association.detach_all_for(self.kind, document.id)
            db.session.execute(
                delete(DocumentComment)
                .where(
                    DocumentComment.document_kind == self.kind,
                    DocumentComment.document_id == document.id,
                )
                .execution_options(synchronize_session=False)
            )
            db.session.delete(document)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        logger.info(
            "%s deleted (%d file associations removed)", self.model.LABEL, removed,
            extra={"document_kind": self.kind.value, "document_id": document_id,
                   "principal_id": principal.id},
        )

    # ── Attachments ──────────────────────────────────────────────────────

    def _require_attach_rights(self, document, principal):
        if is_owner(document, principal.id) or principal.has_role(Role.ADMIN):
            return
        raise CreatorMismatch("Only the creator or an administrator may change attachments")

    def attach_file(self, document_id: str, file_id: str, field_name: str | None, principal,
                    *, replace: bool = False) -> FileAssociation:
        """Bind a stored file to this document. replace=True keeps one file per field."""
        document = self.get(document_id, principal)
        self._require_attach_rights(document, principal)
        if replace:
            association_id = file_association.replace(file_id, self.kind, document.id, field_name)
        else:
            association_id = file_association.attach(file_id, self.kind, document.id, field_name)
        db.session.commit()
        return file_association.get_association(association_id)

    def list_files(self, document_id: str, principal, field_name: str | None = None) -> list:
        document = self.get(document_id, principal)
        return list(file_association.list_for(self.kind, document.id, field_name))

    def detach_file(self, document_id: str, association_id: int, principal) -> None:
        document = self.get(document_id, principal)
        self._require_attach_rights(document, principal)
        association = file_association.get_association(association_id)
        if association.document_kind != self.kind or association.document_id != document.id:
            raise NotFoundError("File association", association_id)
        file_association.detach(association_id, commit=True)

    # ── Comments ─────────────────────────────────────────────────────────

    @staticmethod
    def _clean_comment(text) -> str:
        text = text.strip() if isinstance(text, str) else ""
        if not text:
            raise ValidationError("Comment text is required", details={"text": "required"})
        if len(text) > MAX_COMMENT_LENGTH:
            raise ValidationError(
                "Comment is too long", details={"text": f"max {MAX_COMMENT_LENGTH} characters"},
            )
        return text

    def _get_comment(self, document, comment_id: str) -> DocumentComment:
        comment = db.session.get(DocumentComment, comment_id)
        if (
            comment is None
            or comment.deleted
            or comment.document_kind != self.kind
            or comment.document_id != document.id
        ):
            raise NotFoundError("Comment", comment_id)
        return comment

    def add_comment(self, document_id: str, text: str, principal) -> DocumentComment:
        """Anyone who can see the document may comment on it."""
        document = self.get(document_id, principal)
        comment = DocumentComment(
            document_kind=self.kind,
            document_id=document.id,
            author_id=principal.id,
            text=self._clean_comment(text),
        )
        db.session.add(comment)
        db.session.commit()
        logger.info(
            "Comment added",
            extra={"document_kind": self.kind.value, "document_id": document.id,
                   "principal_id": principal.id},
        )
        return comment

    def edit_comment(self, document_id: str, comment_id: str, text: str, principal) -> DocumentComment:
        document = self.get(document_id, principal)
        comment = self._get_comment(document, comment_id)
        if comment.author_id != principal.id:
            raise CreatorMismatch("Only the author may edit a comment")
        comment.text = self._clean_comment(text)
        comment.edited = True
        comment.updated_at = datetime.now(timezone.utc)
        db.session.commit()
        return comment

    def delete_comment(self, document_id: str, comment_id: str, principal) -> None:
        """Soft delete: the row is kept for audit and hidden from default listings."""
        document = self.get(document_id, principal)
        comment = self._get_comment(document, comment_id)
        if comment.author_id != principal.id:
            raise CreatorMismatch("Only the author may delete a comment")
        comment.soft_delete()
        db.session.commit()
        logger.info(
            "Comment deleted",
            extra={"document_kind": self.kind.value, "document_id": document.id,
                   "principal_id": principal.id},
        )

    def list_comments(self, document_id: str, principal, *, include_deleted: bool = False) -> list:
        """
        Comments on a document, newest first.

        include_deleted returns retained (soft-deleted) rows too; it is honoured
        for ADMIN and above only.
        """
        document = self.get(document_id, principal)
        stmt = select(DocumentComment).where(
            DocumentComment.document_kind == self.kind,
            DocumentComment.document_id == document.id,
        )
        if not (include_deleted and principal.has_role(Role.ADMIN)):
            stmt = stmt.where(DocumentComment.deleted.is_(False))
        stmt = stmt.order_by(DocumentComment.created_at.desc(), DocumentComment.id.desc())
        return db.session.execute(stmt).scalars().all()


# ── Registry ─────────────────────────────────────────────────────────────────

repositories = {kind: DocumentRepository(model) for kind, model in MODEL_BY_KIND.items()}


def repository_for(kind) -> DocumentRepository:
    """Repository for a DocumentKind (or its string value)."""
    try:
        return repositories[DocumentKind.coerce(kind)]
    except ValueError:
        raise ValidationError(
            f"Unknown document kind '{kind}'",
            details={"document_kind": f"must be one of: {', '.join(k.value for k in DocumentKind)}"},
        ) from None

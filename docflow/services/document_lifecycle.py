"""
Document Lifecycle Service

Manages workflow document status transitions with:
  - Transition validation against the fixed table (DOCUMENT_TRANSITIONS)
  - Role gates (minimum role; higher roles inherit lower gates)
  - Ownership checks for author-initiated actions
  - Reference-code allocation on submit
  - Compare-and-swap persistence: the write only lands if status is still
    what the plan was validated against

5 actions:
  edit (draft → draft), submit, review, approve, reject

Usage:
    from docflow.services.document_lifecycle import transition_document

    doc = transition_document(
        kind="purchase_request",
        document_id="abc",
        action="approve",
        principal=Principal.of("u2", "ADMIN"),
    )

Validation order: table → role gate → ownership. A document in a terminal
state therefore answers InvalidTransitionError to every principal.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from docflow.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InsufficientRole,
    InvalidTransitionError,
    NotFoundError,
)
from docflow.models import DocumentStatus, Role, db
from docflow.models.document import model_for
from docflow.services.code_allocator import allocate_reference_code, is_placeholder
from docflow.services.ownership import verify_ownership

logger = logging.getLogger(__name__)

_DRAFT = DocumentStatus.DRAFT.value
_PENDING = DocumentStatus.PENDING.value
_REVIEWED = DocumentStatus.REVIEWED.value
_APPROVED = DocumentStatus.APPROVED.value
_REJECTED = DocumentStatus.REJECTED.value


# Document transition rules
DOCUMENT_TRANSITIONS = {
    "edit": {"from": [_DRAFT], "to": _DRAFT, "role": Role.STAFF, "owner": True},
    "submit": {"from": [_DRAFT], "to": _PENDING, "role": Role.STAFF, "owner": True},
    "review": {"from": [_PENDING], "to": _REVIEWED, "role": Role.REVIEWER, "owner": False},
    "approve": {"from": [_PENDING, _REVIEWED], "to": _APPROVED, "role": Role.ADMIN, "owner": False},
    "reject": {"from": [_PENDING, _REVIEWED], "to": _REJECTED, "role": Role.ADMIN, "owner": False},
}


def transitions_for(model) -> dict:
    """Transition table restricted to the statuses a kind actually has."""
    statuses = set(model.statuses())
    rules = {}
    for action, rule in DOCUMENT_TRANSITIONS.items():
        if rule["to"] not in statuses:
            continue
        rules[action] = {**rule, "from": [s for s in rule["from"] if s in statuses]}
    return rules


def allowed_next_statuses(model, status: str) -> set[str]:
    """Statuses reachable from `status` (self-loops excluded)."""
    return {
        rule["to"]
        for rule in transitions_for(model).values()
        if status in rule["from"] and rule["to"] != status
    }


def resolve_action(model, from_status: str, to_status: str) -> str:
    """Map a requested (from, to) status pair onto a table action."""
    for action, rule in transitions_for(model).items():
        if from_status in rule["from"] and rule["to"] == to_status:
            return action
    raise InvalidTransitionError(from_status, to_status, allowed_next_statuses(model, from_status))


@dataclass(frozen=True)
class TransitionPlan:
    """A validated transition, bound to the status it was validated against."""

    model: type
    document_id: str
    action: str
    from_status: str
    to_status: str
    principal_id: str
    current_code: str | None = None
    changes: dict = field(default_factory=dict)


def plan_transition(document, action: str, principal, *, changes: dict | None = None) -> TransitionPlan:
    """
    Validate `action` on `document` for `principal` without writing anything.

    Raises:
        InvalidTransitionError, InsufficientRole, CreatorMismatch,
        PreparerMissing, PreparerMismatch
    """
    model = type(document)
    rules = transitions_for(model)
    current = document.status

    rule = rules.get(action)
    if rule is None:
        known = DOCUMENT_TRANSITIONS.get(action)
        raise InvalidTransitionError(
            current, known["to"] if known else None, allowed_next_statuses(model, current),
        )

    if current not in rule["from"]:
        raise InvalidTransitionError(current, rule["to"], allowed_next_statuses(model, current))

    if not principal.has_role(rule["role"]):
        raise InsufficientRole(principal.role.value, rule["role"].value, action)

    if rule["owner"]:
        verify_ownership(document, principal.id, require_prepared_by=model.REQUIRE_PREPARED_BY)

    return TransitionPlan(
        model=model,
        document_id=document.id,
        action=action,
        from_status=current,
        to_status=rule["to"],
        principal_id=principal.id,
        current_code=document.reference_code,
        changes=dict(changes or {}),
    )


def _transition_values(plan: TransitionPlan) -> dict:
    now = datetime.now(timezone.utc)
    values = {"status": plan.to_status, "updated_at": now}

    if plan.action == "edit":
        values.update(plan.changes)
    elif plan.action == "submit":
        values["submitted_at"] = now
        if is_placeholder(plan.current_code):
            values["reference_code"] = allocate_reference_code(plan.model.KIND)
    elif plan.action == "review":
        values["reviewed_by"] = plan.principal_id
        values["reviewed_at"] = now
    elif plan.action == "approve":
        values["approved_by"] = plan.principal_id
        values["approved_at"] = now
    elif plan.action == "reject":
        values["rejected_by"] = plan.principal_id
        values["rejected_at"] = now

    return values


def apply_transition(plan: TransitionPlan):
    """
    Persist a validated plan as one atomic write and return the fresh document.

    Status, gate actor, timestamps and (on submit) the reference code are
    written by a single UPDATE guarded by `status = plan.from_status`. If a
    concurrent writer already moved the document, nothing is written.

    Raises:
        ConflictError: status changed since the plan was made, or the
            reference code collided on commit.
    """
    model = plan.model
    try:
        values = _transition_values(plan)
        result = db.session.execute(
            update(model)
            .where(model.id == plan.document_id, model.status == plan.from_status)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "Status compare-and-swap failed",
                extra={
                    "document_kind": model.KIND.value,
                    "document_id": plan.document_id,
                    "action": plan.action,
                    "principal_id": plan.principal_id,
                },
            )
            raise ConflictError(model.__name__, "status", plan.from_status)
        db.session.commit()
    except ConflictError:
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Reference code collision on commit: %s", exc.orig)
        raise ConflictError(model.__name__, "reference_code") from exc
    except SQLAlchemyError:
        db.session.rollback()
        raise

    document = db.session.get(model, plan.document_id)
    db.session.refresh(document)

    logger.info(
        "Document %s: %s → %s", plan.action, plan.from_status, plan.to_status,
        extra={
            "document_kind": model.KIND.value,
            "document_id": plan.document_id,
            "action": plan.action,
            "principal_id": plan.principal_id,
        },
    )
    return document


def transition_document(kind, document_id: str, action: str, principal, *, changes: dict | None = None):
    """
    Load, validate and apply a lifecycle action.

    Returns:
        The updated document instance.

    Raises:
        NotFoundError, InvalidTransitionError, AuthorizationError subclasses,
        ConflictError
    """
    model = model_for(kind)
    document = db.session.get(model, document_id)
    if document is None:
        raise NotFoundError(model.LABEL, document_id)

    plan = plan_transition(document, action, principal, changes=changes)
    return apply_transition(plan)


def available_actions(document, principal) -> list[str]:
    """Actions `principal` may trigger on `document` right now."""
    actions = []
    for action in transitions_for(type(document)):
        try:
            plan_transition(document, action, principal)
        except (InvalidTransitionError, AuthorizationError):
            continue
        actions.append(action)
    return actions

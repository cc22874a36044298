"""
Role-scoped visibility for workflow documents.

One predicate builder per role. Each returns a SQLAlchemy boolean clause
over a document model, so listing, single-document reads and comment
permissions all share the same rule.

    STAFF        own documents
    REVIEWER     own documents + items awaiting review + items they reviewed
    ADMIN        own documents + pending/reviewed items + items they decided
    SUPER-ADMIN  every non-draft document + own drafts

Nobody sees another principal's drafts.

Acting on a document uses a wider lookup (action_predicate): whoever holds
an action's gate can load any non-draft document in its reach; the
transition table then decides. A decided document answers
InvalidTransitionError to a second admin, not NotFoundError.
"""

from sqlalchemy import and_, false, or_

from docflow.models import DocumentStatus, Role

_DRAFT = DocumentStatus.DRAFT.value
_PENDING = DocumentStatus.PENDING.value
_REVIEWED = DocumentStatus.REVIEWED.value


def staff_predicate(model, principal):
    return model.created_by == principal.id


def reviewer_predicate(model, principal):
    # Kinds without a review step never wait on a reviewer.
    awaiting_review = model.status == _PENDING if model.HAS_REVIEW else false()
    return or_(
        model.created_by == principal.id,
        awaiting_review,
        and_(model.reviewed_by == principal.id, model.status != _DRAFT),
    )


def admin_predicate(model, principal):
    return or_(
        model.created_by == principal.id,
        model.status.in_((_PENDING, _REVIEWED)),
        and_(
            or_(model.approved_by == principal.id, model.rejected_by == principal.id),
            model.status != _DRAFT,
        ),
    )


def super_admin_predicate(model, principal):
    return or_(
        model.status != _DRAFT,
        model.created_by == principal.id,
    )


ROLE_PREDICATES = {
    Role.STAFF: staff_predicate,
    Role.REVIEWER: reviewer_predicate,
    Role.ADMIN: admin_predicate,
    Role.SUPER_ADMIN: super_admin_predicate,
}


def visibility_predicate(model, principal):
    """Boolean clause selecting the rows of `model` visible to `principal`."""
    builder = ROLE_PREDICATES.get(principal.role)
    if builder is None:
        return false()
    return builder(model, principal)


def action_predicate(model, principal, action=None):
    """
    Rows of `model` that `principal` may load in order to act on them.

    ADMIN and above reach every non-draft document for approve, reject and
    review; REVIEWER reaches every non-draft document of kinds with a review
    step for review. With action=None the widest gate the principal holds
    applies (used when the action is resolved from a requested status).
    """
    visible = visibility_predicate(model, principal)
    if principal.has_role(Role.ADMIN):
        gated = (None, "approve", "reject", "review")
    elif principal.has_role(Role.REVIEWER) and model.HAS_REVIEW:
        gated = (None, "review")
    else:
        gated = ()
    if action in gated:
        return or_(visible, model.status != _DRAFT)
    return visible

"""
Ownership verifier — "is this MY document?"

Orthogonal to role gating in document_lifecycle ("does my ROLE permit this
change?"). Author-initiated operations (draft edits, submit, delete) need
both; reviewer/approver transitions only need the role gate.

Pure and synchronous: reads the document's owner fields, nothing else.
"""

from docflow.core.exceptions import CreatorMismatch, PreparerMismatch, PreparerMissing


def verify_ownership(document, principal_id, *, require_prepared_by: bool = False) -> bool:
    """
    Verify that `principal_id` authored `document`.

    Args:
        document: Any workflow document (created_by, optionally prepared_by).
        principal_id: The acting principal's id.
        require_prepared_by: Also require document.prepared_by to match.

    Returns:
        True when every requested check passes.

    Raises:
        CreatorMismatch, PreparerMissing, PreparerMismatch
    """
    principal_id = str(principal_id)

    if not document.created_by or str(document.created_by) != principal_id:
        raise CreatorMismatch("Document creator mismatch")

    if require_prepared_by:
        prepared_by = getattr(document, "prepared_by", None)
        if not prepared_by:
            raise PreparerMissing("Document preparer required but not recorded")
        if str(prepared_by) != principal_id:
            raise PreparerMismatch("Document preparer mismatch")

    return True


def is_owner(document, principal_id) -> bool:
    """Non-raising creator check used by visibility and comment rules."""
    return bool(document.created_by) and str(document.created_by) == str(principal_id)

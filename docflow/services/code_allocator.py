"""
Reference Code Allocator

Generates human-readable codes for workflow documents:
  - Concept notes:      CN-{ORG}{seq}    (e.g. CN-CASFOD001)
  - Purchase requests:  PR-{ORG}{seq}    (e.g. PR-CASFOD014)
  - Staff strategies:   SS-{ORG}-{seq}   (e.g. SS-CASFOD-003)
  - Payment requests:   PMR-{ORG}{seq}   (e.g. PMR-CASFOD120)

Drafts carry a non-colliding placeholder ({PREFIX}-DRAFT-{millis}-{random})
so the unique reference_code column never rejects concurrent drafts. The
placeholder is replaced exactly once, when the document is submitted.

Serials come from one DocumentSequence row per kind, advanced with a
compare-and-swap UPDATE. A writer whose observed serial is stale updates zero
rows, re-reads and retries. Serials are unique and monotonic, with gaps where
a claimed serial was skipped or its transaction rolled back.

This module never commits: the counter update belongs to the caller's
transaction so that status, code and counter commit together.
"""

import logging
import secrets
import string
import time
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from docflow.core.exceptions import ConflictError
from docflow.models import DocumentKind, DocumentStatus, db
from docflow.models.document import model_for
from docflow.models.sequence import DocumentSequence

logger = logging.getLogger(__name__)

DEFAULT_ORG_PREFIX = "CASFOD"
DEFAULT_MAX_ATTEMPTS = 5
DRAFT_MARKER = "-DRAFT-"

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


# ── Placeholders ─────────────────────────────────────────────────────────────

def draft_placeholder_code(kind) -> str:
    """Temporary code for a draft: {PREFIX}-DRAFT-{epoch millis}-{9 random chars}."""
    model = model_for(kind)
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(9))
    return f"{model.CODE_PREFIX}{DRAFT_MARKER}{int(time.time() * 1000)}-{suffix}"


def is_placeholder(code: str | None) -> bool:
    return not code or DRAFT_MARKER in code


# ── Formatting ───────────────────────────────────────────────────────────────

def _org_prefix() -> str:
    return current_app.config.get("REFERENCE_CODE_ORG_PREFIX", DEFAULT_ORG_PREFIX)


def _max_attempts() -> int:
    return int(current_app.config.get("CODE_ALLOCATION_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS))


def format_reference_code(kind, serial: int) -> str:
    model = model_for(kind)
    return model.CODE_TEMPLATE.format(
        prefix=model.CODE_PREFIX, org=_org_prefix(), serial=serial,
    )


# ── Counter primitives ───────────────────────────────────────────────────────

def _seed_serial(kind: DocumentKind) -> int:
    """Initial counter value: the number of the kind's documents already out of draft."""
    model = model_for(kind)
    return (
        db.session.query(func.count(model.id))
        .filter(model.status != DocumentStatus.DRAFT.value)
        .scalar()
    ) or 0


def _read_last_serial(kind: DocumentKind) -> int:
    """Return the current counter value, creating the row on first use."""
    current = db.session.execute(
        select(DocumentSequence.last_serial).where(DocumentSequence.kind == kind.value)
    ).scalar_one_or_none()
    if current is not None:
        return current

    # Another writer may create the row first; theirs wins and we re-read it.
    _insert_sequence_if_absent(kind, _seed_serial(kind))
    return db.session.execute(
        select(DocumentSequence.last_serial).where(DocumentSequence.kind == kind.value)
    ).scalar_one()


def _insert_sequence_if_absent(kind: DocumentKind, seed: int) -> None:
    values = {
        "kind": kind.value,
        "last_serial": seed,
        "updated_at": datetime.now(timezone.utc),
    }
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(DocumentSequence).values(**values).on_conflict_do_nothing(
            index_elements=["kind"],
        )
    elif dialect == "sqlite":
        stmt = sqlite_insert(DocumentSequence).values(**values).on_conflict_do_nothing(
            index_elements=["kind"],
        )
    else:
        db.session.add(DocumentSequence(**values))
        db.session.flush()
        return
    db.session.execute(stmt)


def _claim_serial(kind: DocumentKind, observed: int) -> bool:
    """Advance the counter from `observed` to `observed + 1`; False if someone else moved it."""
    result = db.session.execute(
        update(DocumentSequence)
        .where(
            DocumentSequence.kind == kind.value,
            DocumentSequence.last_serial == observed,
        )
        .values(last_serial=observed + 1, updated_at=datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _code_taken(kind: DocumentKind, code: str) -> bool:
    model = model_for(kind)
    return db.session.execute(
        select(model.id).where(model.reference_code == code).limit(1)
    ).first() is not None


# ── Public API ───────────────────────────────────────────────────────────────

def allocate_reference_code(kind) -> str:
    """
    Claim the next serial for `kind` and return its formatted reference code.

    Must run inside the transaction that writes the submitted document.

    Raises:
        ConflictError: the counter kept moving for every attempt.
    """
    kind = DocumentKind.coerce(kind)
    attempts = _max_attempts()

    for attempt in range(1, attempts + 1):
        observed = _read_last_serial(kind)
        if not _claim_serial(kind, observed):
            logger.info(
                "Reference code race lost; retrying",
                extra={"document_kind": kind.value, "attempt": attempt},
            )
            continue

        code = format_reference_code(kind, observed + 1)
        if _code_taken(kind, code):
            # Legacy row already owns this serial; the claim stands as a gap.
            logger.warning(
                "Reference code %s already in use; skipping serial", code,
                extra={"document_kind": kind.value},
            )
            continue

        logger.debug("Allocated reference code %s", code, extra={"document_kind": kind.value})
        return code

    raise ConflictError(model_for(kind).__name__, "reference_code")

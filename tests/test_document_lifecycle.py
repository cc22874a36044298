"""
Tests: document lifecycle state machine.

Covers the transition table, role gates, ownership gates, reference-code
assignment on submit, the generic status endpoint mapping, and the
compare-and-swap behaviour under interleaved writers.
"""

import re

import pytest

from docflow.auth import Principal
from docflow.core.exceptions import (
    ConflictError,
    CreatorMismatch,
    InsufficientRole,
    InvalidTransitionError,
    NotFoundError,
    PreparerMismatch,
    ValidationError,
)
from docflow.models import db
from docflow.models.document import ConceptNote, PurchaseRequest
from docflow.models.sequence import DocumentSequence
from docflow.services import code_allocator
from docflow.services.code_allocator import is_placeholder
from docflow.services.document_lifecycle import (
    allowed_next_statuses,
    apply_transition,
    available_actions,
    plan_transition,
    resolve_action,
    transition_document,
    transitions_for,
)
from docflow.services.document_repository import repository_for

PR_CODE = re.compile(r"^PR-CASFOD\d{3}$")


@pytest.fixture()
def prs():
    return repository_for("purchase_request")


@pytest.fixture()
def cns():
    return repository_for("concept_note")


# ═════════════════════════════════════════════════════════════════════════════
# Transition table
# ═════════════════════════════════════════════════════════════════════════════


class TestTransitionTable:

    def test_review_only_exists_for_concept_notes(self):
        assert "review" in transitions_for(ConceptNote)
        assert "review" not in transitions_for(PurchaseRequest)

    def test_allowed_next_statuses(self):
        assert allowed_next_statuses(PurchaseRequest, "draft") == {"pending"}
        assert allowed_next_statuses(PurchaseRequest, "pending") == {"approved", "rejected"}
        assert allowed_next_statuses(ConceptNote, "pending") == {"reviewed", "approved", "rejected"}
        assert allowed_next_statuses(ConceptNote, "approved") == set()

    def test_resolve_action(self):
        assert resolve_action(PurchaseRequest, "draft", "pending") == "submit"
        assert resolve_action(ConceptNote, "reviewed", "approved") == "approve"
        assert resolve_action(PurchaseRequest, "pending", "rejected") == "reject"

    def test_resolve_out_of_table_pair(self):
        with pytest.raises(InvalidTransitionError) as exc:
            resolve_action(PurchaseRequest, "approved", "pending")
        assert exc.value.from_status == "approved"
        assert exc.value.to_status == "pending"
        assert exc.value.allowed == []

    def test_resolve_skipping_a_gate(self):
        with pytest.raises(InvalidTransitionError) as exc:
            resolve_action(PurchaseRequest, "draft", "approved")
        assert exc.value.allowed == ["pending"]


# ═════════════════════════════════════════════════════════════════════════════
# Creation and drafts
# ═════════════════════════════════════════════════════════════════════════════


class TestDrafts:

    def test_new_documents_are_drafts_with_distinct_placeholders(self, make_document, staff):
        docs = [make_document("purchase_request", staff) for _ in range(5)]
        assert all(d.status == "draft" for d in docs)
        assert all(is_placeholder(d.reference_code) for d in docs)
        assert len({d.reference_code for d in docs}) == 5

    def test_concept_note_preparer_defaults_to_creator(self, make_document, staff):
        note = make_document("concept_note", staff)
        assert note.prepared_by == staff.id

    def test_missing_required_fields(self, prs, staff):
        with pytest.raises(ValidationError) as exc:
            prs.create({"department": "Logistics"}, staff)
        assert exc.value.details == {"requested_by": "required"}

    def test_workflow_columns_cannot_be_set_through_payload(self, make_document, staff):
        doc = make_document(
            "purchase_request", staff, status="approved", approved_by="u2", reference_code="PR-X",
        )
        assert doc.status == "draft"
        assert doc.approved_by is None
        assert is_placeholder(doc.reference_code)

    def test_edit_draft(self, prs, make_document, staff):
        doc = make_document("purchase_request", staff)
        updated = prs.update(doc.id, {"city": "Abuja", "item_groups": [{"description": "Pens"}]}, staff)
        assert updated.city == "Abuja"
        assert updated.item_groups == [{"description": "Pens"}]
        assert updated.status == "draft"

    def test_edit_rejects_bad_shape(self, prs, make_document, staff):
        doc = make_document("purchase_request", staff)
        with pytest.raises(ValidationError) as exc:
            prs.update(doc.id, {"item_groups": "pens"}, staff)
        assert "item_groups" in exc.value.details

    def test_edit_by_non_owner_refused(self, make_document, staff, admin):
        doc = make_document("purchase_request", staff)
        with pytest.raises(CreatorMismatch):
            transition_document("purchase_request", doc.id, "edit", admin, changes={"city": "Kano"})
        db.session.refresh(doc)
        assert doc.city == ""

    def test_edit_after_submit_refused(self, prs, make_document, staff):
        doc = make_document("purchase_request", staff)
        prs.submit(doc.id, staff)
        with pytest.raises(InvalidTransitionError):
            prs.update(doc.id, {"city": "Kano"}, staff)


# ═════════════════════════════════════════════════════════════════════════════
# Submit and reference codes
# ═════════════════════════════════════════════════════════════════════════════


class TestSubmit:

    def test_submit_assigns_final_code(self, prs, make_document, staff):
        doc = make_document("purchase_request", staff)
        submitted = prs.submit(doc.id, staff)
        assert submitted.status == "pending"
        assert submitted.reference_code == "PR-CASFOD001"
        assert submitted.submitted_at is not None

    def test_code_formats_per_kind(self, make_document, staff):
        expected = {
            "concept_note": "CN-CASFOD001",
            "purchase_request": "PR-CASFOD001",
            "staff_strategy": "SS-CASFOD-001",
            "payment_request": "PMR-CASFOD001",
        }
        for kind, code in expected.items():
            doc = make_document(kind, staff)
            assert repository_for(kind).submit(doc.id, staff).reference_code == code

    def test_second_submit_fails_and_keeps_code(self, prs, make_document, staff):
        doc = make_document("purchase_request", staff)
        code = prs.submit(doc.id, staff).reference_code
        with pytest.raises(InvalidTransitionError):
            prs.submit(doc.id, staff)
        assert prs.get(doc.id, staff).reference_code == code

    def test_existing_final_code_is_not_reallocated(self, prs, make_document, staff):
        doc = make_document("purchase_request", staff)
        doc.reference_code = "PR-CASFOD042"
        db.session.commit()

        assert prs.submit(doc.id, staff).reference_code == "PR-CASFOD042"
        assert db.session.get(DocumentSequence, "purchase_request") is None

    def test_submit_by_non_owner_refused(self, make_document, staff, other_staff):
        doc = make_document("purchase_request", staff)
        with pytest.raises(CreatorMismatch):
            transition_document("purchase_request", doc.id, "submit", other_staff)
        db.session.refresh(doc)
        assert doc.status == "draft"
        assert is_placeholder(doc.reference_code)

    def test_admin_cannot_submit_someone_elses_draft(self, make_document, staff, admin):
        doc = make_document("purchase_request", staff)
        with pytest.raises(CreatorMismatch):
            transition_document("purchase_request", doc.id, "submit", admin)

    def test_concept_note_preparer_mismatch(self, cns, make_document, staff):
        # Legacy rows may carry a preparer other than the creator.
        note = make_document("concept_note", staff)
        note.prepared_by = "u7"
        db.session.commit()
        with pytest.raises(PreparerMismatch):
            cns.submit(note.id, staff)
        assert cns.get(note.id, staff).status == "draft"

    def test_client_cannot_name_another_preparer(self, cns, staff):
        note = cns.create({"staff_name": "Ada", "activity_title": "Field visit", "prepared_by": "u7"}, staff)
        assert note.prepared_by == staff.id
        assert cns.submit(note.id, staff).status == "pending"

    def test_n_submissions_yield_distinct_codes(self, prs, make_document, staff):
        drafts = [make_document("purchase_request", staff) for _ in range(12)]
        codes = [prs.submit(d.id, staff).reference_code for d in drafts]
        assert len(set(codes)) == 12
        assert all(PR_CODE.match(c) for c in codes)
        assert sorted(codes) == [f"PR-CASFOD{n:03d}" for n in range(1, 13)]

    def test_submissions_with_stale_counter_reads_stay_distinct(
        self, prs, make_document, staff, monkeypatch,
    ):
        drafts = [make_document("purchase_request", staff) for _ in range(4)]
        prs.submit(drafts[0].id, staff)

        real_read = code_allocator._read_last_serial
        calls = {"n": 0}

        def every_other_read_is_stale(kind):
            calls["n"] += 1
            value = real_read(kind)
            return value - 1 if calls["n"] % 2 else value

        monkeypatch.setattr(code_allocator, "_read_last_serial", every_other_read_is_stale)

        codes = {prs.submit(d.id, staff).reference_code for d in drafts[1:]}
        assert codes == {"PR-CASFOD002", "PR-CASFOD003", "PR-CASFOD004"}

    def test_save_and_send(self, prs, staff):
        doc = prs.create({"department": "Logistics", "requested_by": "Ada"}, staff, submit=True)
        assert doc.status == "pending"
        assert doc.reference_code == "PR-CASFOD001"

    def test_save_and_send_validation_failure_writes_nothing(self, prs, staff):
        with pytest.raises(ValidationError):
            prs.create({"department": "Logistics"}, staff, submit=True)
        assert prs.list_visible(staff)["total"] == 0


# ═════════════════════════════════════════════════════════════════════════════
# Gates
# ═════════════════════════════════════════════════════════════════════════════


class TestGates:

    def test_staff_cannot_approve_own_request(self, prs, make_document, staff):
        doc = make_document("purchase_request", staff)
        prs.submit(doc.id, staff)
        with pytest.raises(InsufficientRole):
            prs.approve(doc.id, staff)
        assert prs.get(doc.id, staff).status == "pending"

    def test_reviewer_cannot_approve(self, cns, make_document, staff, reviewer):
        note = make_document("concept_note", staff)
        cns.submit(note.id, staff)
        with pytest.raises(InsufficientRole):
            cns.approve(note.id, reviewer)

    def test_review_then_approve_concept_note(self, cns, make_document, staff, reviewer, admin):
        note = make_document("concept_note", staff)
        cns.submit(note.id, staff)

        reviewed = cns.review(note.id, reviewer)
        assert reviewed.status == "reviewed"
        assert reviewed.reviewed_by == reviewer.id
        assert reviewed.reviewed_at is not None

        approved = cns.approve(note.id, admin)
        assert approved.status == "approved"
        assert approved.approved_by == admin.id
        assert approved.reviewed_by == reviewer.id

    def test_admin_inherits_review_gate(self, cns, make_document, staff, admin):
        note = make_document("concept_note", staff)
        cns.submit(note.id, staff)
        assert cns.review(note.id, admin).reviewed_by == admin.id

    def test_review_not_available_for_purchase_requests(self, make_document, staff, admin):
        doc = make_document("purchase_request", staff)
        repository_for("purchase_request").submit(doc.id, staff)
        with pytest.raises(InvalidTransitionError):
            transition_document("purchase_request", doc.id, "review", admin)

    def test_terminal_state_checked_before_role(self, prs, make_document, staff, admin):
        doc = make_document("purchase_request", staff)
        prs.submit(doc.id, staff)
        prs.reject(doc.id, admin)
        with pytest.raises(InvalidTransitionError):
            transition_document("purchase_request", doc.id, "approve", staff)

    def test_rejected_is_terminal(self, prs, make_document, staff, admin):
        doc = make_document("purchase_request", staff)
        prs.submit(doc.id, staff)
        rejected = prs.reject(doc.id, admin)
        assert rejected.rejected_at is not None
        assert rejected.approved_by is None
        with pytest.raises(InvalidTransitionError):
            prs.approve(doc.id, admin)

    def test_available_actions(self, make_document, staff, admin, reviewer):
        note = make_document("concept_note", staff)
        assert available_actions(note, staff) == ["edit", "submit"]
        assert available_actions(note, admin) == []

        note = repository_for("concept_note").submit(note.id, staff)
        assert available_actions(note, staff) == []
        assert available_actions(note, reviewer) == ["review"]
        assert available_actions(note, admin) == ["review", "approve", "reject"]


# ═════════════════════════════════════════════════════════════════════════════
# Decided documents
# ═════════════════════════════════════════════════════════════════════════════


class TestDecidedDocuments:

    @pytest.fixture()
    def other_admin(self):
        return Principal.of("u3", "ADMIN")

    def test_second_admin_rejecting_approved_request(self, prs, make_document, staff, admin, other_admin):
        doc = make_document("purchase_request", staff, submit=True)
        prs.approve(doc.id, admin)
        with pytest.raises(InvalidTransitionError) as exc:
            prs.reject(doc.id, other_admin)
        assert exc.value.from_status == "approved"

    def test_second_admin_approving_rejected_request(self, prs, make_document, staff, admin, other_admin):
        doc = make_document("purchase_request", staff, submit=True)
        prs.reject(doc.id, admin)
        with pytest.raises(InvalidTransitionError):
            prs.approve(doc.id, other_admin)
        with pytest.raises(InvalidTransitionError):
            prs.transition_to(doc.id, "approved", other_admin)

    def test_rejecting_admin_keeps_sight_of_document(self, prs, make_document, staff, admin):
        doc = make_document("purchase_request", staff, submit=True)
        rejected = prs.reject(doc.id, admin)
        assert rejected.rejected_by == admin.id
        assert prs.get(doc.id, admin).status == "rejected"
        assert doc.id in [d.id for d in prs.list_visible(admin)["items"]]

    def test_decided_document_stays_out_of_other_admins_listing(
        self, prs, make_document, staff, admin, other_admin,
    ):
        doc = make_document("purchase_request", staff, submit=True)
        prs.approve(doc.id, admin)
        with pytest.raises(NotFoundError):
            prs.get(doc.id, other_admin)
        assert prs.list_visible(other_admin)["total"] == 0

    def test_reviewer_on_approved_note_gets_invalid_transition(self, cns, make_document, staff, reviewer, admin):
        note = make_document("concept_note", staff, submit=True)
        cns.approve(note.id, admin)
        with pytest.raises(InvalidTransitionError):
            cns.review(note.id, reviewer)

    def test_staff_still_cannot_reach_others_documents(self, prs, make_document, staff, other_staff):
        doc = make_document("purchase_request", staff, submit=True)
        with pytest.raises(NotFoundError):
            prs.approve(doc.id, other_staff)

    def test_admin_cannot_reach_others_drafts(self, prs, make_document, staff, admin):
        doc = make_document("purchase_request", staff)
        with pytest.raises(NotFoundError):
            prs.approve(doc.id, admin)


# ═════════════════════════════════════════════════════════════════════════════
# Status endpoint mapping
# ═════════════════════════════════════════════════════════════════════════════


class TestTransitionTo:

    def test_transition_to_maps_onto_actions(self, prs, make_document, staff, admin):
        doc = make_document("purchase_request", staff)
        assert prs.transition_to(doc.id, "pending", staff).status == "pending"
        assert prs.transition_to(doc.id, "approved", admin).approved_by == admin.id

    def test_approved_to_pending_is_invalid(self, prs, make_document, staff, admin):
        doc = make_document("purchase_request", staff)
        prs.submit(doc.id, staff)
        prs.approve(doc.id, admin)
        with pytest.raises(InvalidTransitionError) as exc:
            prs.transition_to(doc.id, "pending", admin)
        assert exc.value.allowed == []
        assert prs.get(doc.id, admin).status == "approved"

    def test_status_change_records_comment(self, prs, make_document, staff, admin):
        doc = make_document("purchase_request", staff, submit=True)
        rejected = prs.transition_to(doc.id, "rejected", admin, comment="Quote missing")
        assert rejected.status == "rejected"

        comments = prs.list_comments(doc.id, staff)
        assert [c.text for c in comments] == ["Quote missing"]
        assert comments[0].author_id == admin.id

    def test_comment_dropped_when_transition_is_invalid(self, prs, make_document, staff, admin):
        doc = make_document("purchase_request", staff, submit=True)
        prs.approve(doc.id, admin)
        with pytest.raises(InvalidTransitionError):
            prs.transition_to(doc.id, "rejected", admin, comment="Too late")
        assert prs.list_comments(doc.id, staff) == []

    def test_blank_comment_blocks_status_change(self, prs, make_document, staff, admin):
        doc = make_document("purchase_request", staff, submit=True)
        with pytest.raises(ValidationError):
            prs.transition_to(doc.id, "approved", admin, comment="   ")
        assert prs.get(doc.id, staff).status == "pending"

    def test_comment_rolled_back_with_lost_status_race(
        self, prs, make_document, staff, admin, monkeypatch,
    ):
        from sqlalchemy import update

        from docflow.services import document_repository

        doc = make_document("purchase_request", staff, submit=True)
        real_plan = document_repository.plan_transition

        def plan_then_lose_race(document, action, principal, **kwargs):
            plan = real_plan(document, action, principal, **kwargs)
            db.session.execute(
                update(PurchaseRequest)
                .where(PurchaseRequest.id == document.id)
                .values(status="approved")
                .execution_options(synchronize_session=False)
            )
            return plan

        monkeypatch.setattr(document_repository, "plan_transition", plan_then_lose_race)

        with pytest.raises(ConflictError):
            prs.transition_to(doc.id, "rejected", admin, comment="Declined")

        monkeypatch.undo()
        assert prs.list_comments(doc.id, staff) == []
        assert prs.get(doc.id, staff).status == "pending"


# ═════════════════════════════════════════════════════════════════════════════
# Purchase request walkthrough
# ═════════════════════════════════════════════════════════════════════════════


class TestPurchaseRequestScenario:

    def test_full_walkthrough(self, prs, make_document):

        u1 = Principal.of("u1", "STAFF")
        u2 = Principal.of("u2", "ADMIN")

        doc = make_document("purchase_request", u1)
        assert doc.status == "draft"

        pending = prs.submit(doc.id, u1)
        assert pending.status == "pending"
        assert PR_CODE.match(pending.reference_code)

        approved = prs.approve(doc.id, u2)
        assert approved.status == "approved"
        assert approved.approved_by == "u2"
        assert approved.approved_at is not None

        with pytest.raises(InvalidTransitionError):
            prs.reject(doc.id, u2)
        assert prs.get(doc.id, u2).status == "approved"


# ═════════════════════════════════════════════════════════════════════════════
# Interleaved writers
# ═════════════════════════════════════════════════════════════════════════════


class TestConcurrentWriters:

    def test_approve_and_reject_from_same_snapshot(self, prs, make_document, staff, admin):
        other_admin = Principal.of("u3", "ADMIN")
        doc = make_document("purchase_request", staff)
        doc = prs.submit(doc.id, staff)

        approve_plan = plan_transition(doc, "approve", admin)
        reject_plan = plan_transition(doc, "reject", other_admin)

        apply_transition(approve_plan)
        with pytest.raises(ConflictError) as exc:
            apply_transition(reject_plan)
        assert exc.value.field == "status"

        final = db.session.get(PurchaseRequest, doc.id)
        db.session.refresh(final)
        assert final.status == "approved"
        assert final.approved_by == admin.id
        assert final.rejected_at is None

    def test_loser_with_fresh_read_gets_invalid_transition(self, prs, make_document, staff, admin):
        doc = make_document("purchase_request", staff)
        prs.submit(doc.id, staff)
        prs.reject(doc.id, admin)
        with pytest.raises(InvalidTransitionError):
            prs.approve(doc.id, admin)

    def test_lost_submit_race_releases_claimed_serial(self, prs, make_document, staff):
        first = make_document("purchase_request", staff)
        second = make_document("purchase_request", staff)

        plan_a = plan_transition(first, "submit", staff)
        plan_b = plan_transition(first, "submit", staff)
        assert apply_transition(plan_a).reference_code == "PR-CASFOD001"

        with pytest.raises(ConflictError):
            apply_transition(plan_b)

        # The losing writer's counter increment rolled back with its status write.
        assert prs.submit(second.id, staff).reference_code == "PR-CASFOD002"
        assert prs.get(first.id, staff).reference_code == "PR-CASFOD001"

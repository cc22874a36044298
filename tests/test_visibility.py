"""
Tests: role-scoped visibility.

Nobody sees another principal's drafts; each role sees the queue it acts on.
"""

import pytest

from docflow.auth import Principal
from docflow.core.exceptions import NotFoundError
from docflow.services.document_repository import repository_for


@pytest.fixture()
def board(make_document, staff, other_staff, reviewer, admin):
    """Concept notes in every status, owned by `staff` unless noted."""
    cns = repository_for("concept_note")
    docs = {
        "draft": make_document("concept_note", staff),
        "other_draft": make_document("concept_note", other_staff),
        "pending": make_document("concept_note", staff, submit=True),
        "other_pending": make_document("concept_note", other_staff, submit=True),
    }
    reviewed = make_document("concept_note", other_staff, submit=True)
    docs["reviewed"] = cns.review(reviewed.id, reviewer)
    approved = make_document("concept_note", other_staff, submit=True)
    docs["approved"] = cns.approve(approved.id, admin)
    rejected = make_document("concept_note", other_staff, submit=True)
    docs["rejected"] = cns.reject(rejected.id, Principal.of("u5", "ADMIN"))
    return {name: doc.id for name, doc in docs.items()}


def _visible_names(board, principal):
    ids = {d.id for d in repository_for("concept_note").list_visible(principal, limit=100)["items"]}
    return {name for name, doc_id in board.items() if doc_id in ids}


def test_staff_sees_only_own(board, staff):
    assert _visible_names(board, staff) == {"draft", "pending"}


def test_other_staff_sees_only_own(board, other_staff):
    assert _visible_names(board, other_staff) == {
        "other_draft", "other_pending", "reviewed", "approved", "rejected",
    }


def test_reviewer_sees_review_queue_and_own_reviews(board, reviewer):
    assert _visible_names(board, reviewer) == {"pending", "other_pending", "reviewed"}


def test_admin_sees_decision_queue_and_own_approvals(board, admin):
    assert _visible_names(board, admin) == {"pending", "other_pending", "reviewed", "approved"}


def test_admin_sees_own_rejections(board):
    assert _visible_names(board, Principal.of("u5", "ADMIN")) == {
        "pending", "other_pending", "reviewed", "rejected",
    }


def test_super_admin_sees_everything_but_drafts(board, super_admin):
    assert _visible_names(board, super_admin) == {
        "pending", "other_pending", "reviewed", "approved", "rejected",
    }


def test_own_draft_visible_to_super_admin(make_document, super_admin):
    draft = make_document("concept_note", super_admin)
    result = repository_for("concept_note").list_visible(super_admin)
    assert [d.id for d in result["items"]] == [draft.id]


def test_invisible_document_reads_as_missing(board, staff):
    with pytest.raises(NotFoundError):
        repository_for("concept_note").get(board["other_draft"], staff)


def test_reviewer_does_not_see_pending_kinds_without_review(make_document, staff, reviewer):
    make_document("purchase_request", staff, submit=True)
    assert repository_for("purchase_request").list_visible(reviewer)["total"] == 0


class TestListFilters:

    def test_status_filter(self, board, super_admin):
        result = repository_for("concept_note").list_visible(super_admin, status="approved")
        assert [d.id for d in result["items"]] == [board["approved"]]

    def test_search_matches_all_terms(self, make_document, staff):
        make_document("purchase_request", staff, department="Logistics", city="Abuja")
        make_document("purchase_request", staff, department="Logistics", city="Kano")
        make_document("purchase_request", staff, department="Finance", city="Abuja")

        result = repository_for("purchase_request").list_visible(staff, search="logistics ABUJA")
        assert result["total"] == 1
        assert result["items"][0].city == "Abuja"

    def test_search_by_reference_code(self, make_document, staff):
        doc = make_document("purchase_request", staff, submit=True)
        make_document("purchase_request", staff, submit=True)
        result = repository_for("purchase_request").list_visible(staff, search=doc.reference_code)
        assert [d.id for d in result["items"]] == [doc.id]

    def test_pagination_and_sort(self, make_document, staff):
        ids = [make_document("payment_request", staff).id for _ in range(5)]
        repo = repository_for("payment_request")

        page = repo.list_visible(staff, sort="created_at", page=2, limit=2)
        assert page["total"] == 5
        assert page["page"] == 2
        assert [d.id for d in page["items"]] == ids[2:4]

        newest = repo.list_visible(staff, limit=1)
        assert newest["items"][0].id == ids[-1]

    def test_unknown_status_rejected(self, staff):
        from docflow.core.exceptions import ValidationError

        with pytest.raises(ValidationError):
            repository_for("purchase_request").list_visible(staff, status="reviewed")

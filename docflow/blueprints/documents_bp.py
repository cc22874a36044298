"""
Workflow Documents Blueprint.

One set of routes serves every document kind; the first path segment picks
the repository.

Kind slugs:
    concept-notes, purchase-requests, staff-strategies, payment-requests

Endpoints (all under /api/v1/<slug>):
    GET    /                       list visible (status, search, sort, page, limit)
    POST   /                       create draft; ?submit=true for save-and-send
    GET    /stats                  submitted / approved counts
    GET    /<id>                   read one
    PUT    /<id>                   edit draft payload
    DELETE /<id>                   delete (own draft, or SUPER-ADMIN)
    POST   /<id>/submit | review | approve | reject
    PATCH  /<id>/status            body {"status": "...", "comment": optional}
    PATCH  /<id>/copy              body {"recipients": [principal ids]}
    GET    /<id>/files             list attachments (?field_name=)
    POST   /<id>/files             body {"file_id", "field_name", "replace"}
    DELETE /<id>/files/<assoc_id>
    GET    /<id>/comments          (?include_deleted=true for ADMIN+)
    POST   /<id>/comments          body {"text"}
    PUT    /<id>/comments/<cid>    body {"text"}
    DELETE /<id>/comments/<cid>

Layer contract:
    - Blueprint: parse input, resolve principal, call repository, return JSON.
    - NO db.session calls here; all writes are owned by the repository.
    - NO inline role/ownership checks; services raise, handlers map.
"""

import logging

from flask import Blueprint, abort, jsonify, request

from docflow.auth import current_principal
from docflow.core.exceptions import ValidationError
from docflow.models import DocumentKind
from docflow.services.document_lifecycle import available_actions
from docflow.services.document_repository import repository_for
from docflow.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

documents_bp = Blueprint("documents", __name__, url_prefix="/api/v1")
register_error_handlers(documents_bp)

KIND_SLUGS = {
    "concept-notes": DocumentKind.CONCEPT_NOTE,
    "purchase-requests": DocumentKind.PURCHASE_REQUEST,
    "staff-strategies": DocumentKind.STAFF_STRATEGY,
    "payment-requests": DocumentKind.PAYMENT_REQUEST,
}

_ACTIONS = ("submit", "review", "approve", "reject")


# ── Helpers ────────────────────────────────────────────────────────────────────


def _repo(slug: str):
    kind = KIND_SLUGS.get(slug)
    if kind is None:
        abort(404)
    return repository_for(kind)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _flag(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").lower() in ("1", "true", "yes")


def _serialize(document, principal) -> dict:
    data = document.to_dict()
    data["available_actions"] = available_actions(document, principal)
    return data


# ── Collection ─────────────────────────────────────────────────────────────────


@documents_bp.route("/<slug>", methods=["GET"])
def list_documents(slug):
    repo = _repo(slug)
    principal = current_principal()
    result = repo.list_visible(
        principal,
        status=request.args.get("status") or None,
        search=request.args.get("search") or None,
        sort=request.args.get("sort", "-created_at"),
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 20, type=int),
    )
    result["items"] = [d.to_dict() for d in result["items"]]
    return jsonify(result), 200


@documents_bp.route("/<slug>", methods=["POST"])
def create_document(slug):
    repo = _repo(slug)
    principal = current_principal()
    body = _json_body()
    submit = _flag(request.args.get("submit")) or _flag(body.pop("submit", False))
    document = repo.create(body, principal, submit=submit)
    return jsonify(_serialize(document, principal)), 201


@documents_bp.route("/<slug>/stats", methods=["GET"])
def document_stats(slug):
    repo = _repo(slug)
    return jsonify(repo.stats(current_principal())), 200


# ── Single document ────────────────────────────────────────────────────────────


@documents_bp.route("/<slug>/<document_id>", methods=["GET"])
def get_document(slug, document_id):
    repo = _repo(slug)
    principal = current_principal()
    return jsonify(_serialize(repo.get(document_id, principal), principal)), 200


@documents_bp.route("/<slug>/<document_id>", methods=["PUT"])
def update_document(slug, document_id):
    repo = _repo(slug)
    principal = current_principal()
    document = repo.update(document_id, _json_body(), principal)
    return jsonify(_serialize(document, principal)), 200


@documents_bp.route("/<slug>/<document_id>", methods=["DELETE"])
def delete_document(slug, document_id):
    repo = _repo(slug)
    repo.delete(document_id, current_principal())
    return "", 204


@documents_bp.route("/<slug>/<document_id>/<action>", methods=["POST"])
def run_action(slug, document_id, action):
    if action not in _ACTIONS:
        abort(404)
    repo = _repo(slug)
    principal = current_principal()
    document = getattr(repo, action)(document_id, principal)
    return jsonify(_serialize(document, principal)), 200


@documents_bp.route("/<slug>/<document_id>/status", methods=["PATCH"])
def update_status(slug, document_id):
    repo = _repo(slug)
    principal = current_principal()
    data = _json_body()
    status = data.get("status")
    if not status or not isinstance(status, str):
        raise ValidationError("status is required", details={"status": "required"})
    document = repo.transition_to(
        document_id, status.strip().lower(), principal, comment=data.get("comment"),
    )
    return jsonify(_serialize(document, principal)), 200


@documents_bp.route("/<slug>/<document_id>/copy", methods=["PATCH"])
def copy_document(slug, document_id):
    repo = _repo(slug)
    principal = current_principal()
    document = repo.copy_to(document_id, _json_body().get("recipients"), principal)
    return jsonify(_serialize(document, principal)), 200


# ── Attachments ────────────────────────────────────────────────────────────────


@documents_bp.route("/<slug>/<document_id>/files", methods=["GET"])
def list_document_files(slug, document_id):
    repo = _repo(slug)
    associations = repo.list_files(
        document_id, current_principal(), field_name=request.args.get("field_name") or None,
    )
    return jsonify([a.to_dict(include_file=True) for a in associations]), 200


@documents_bp.route("/<slug>/<document_id>/files", methods=["POST"])
def attach_document_file(slug, document_id):
    repo = _repo(slug)
    body = _json_body()
    file_id = body.get("file_id")
    if not file_id:
        raise ValidationError("file_id is required", details={"file_id": "required"})
    association = repo.attach_file(
        document_id,
        str(file_id),
        body.get("field_name"),
        current_principal(),
        replace=_flag(body.get("replace")),
    )
    return jsonify(association.to_dict(include_file=True)), 201


@documents_bp.route("/<slug>/<document_id>/files/<int:association_id>", methods=["DELETE"])
def detach_document_file(slug, document_id, association_id):
    repo = _repo(slug)
    repo.detach_file(document_id, association_id, current_principal())
    return "", 204


# ── Comments ───────────────────────────────────────────────────────────────────


@documents_bp.route("/<slug>/<document_id>/comments", methods=["GET"])
def list_document_comments(slug, document_id):
    repo = _repo(slug)
    comments = repo.list_comments(
        document_id,
        current_principal(),
        include_deleted=_flag(request.args.get("include_deleted")),
    )
    return jsonify([c.to_dict() for c in comments]), 200


@documents_bp.route("/<slug>/<document_id>/comments", methods=["POST"])
def add_document_comment(slug, document_id):
    repo = _repo(slug)
    comment = repo.add_comment(document_id, _json_body().get("text"), current_principal())
    return jsonify(comment.to_dict()), 201


@documents_bp.route("/<slug>/<document_id>/comments/<comment_id>", methods=["PUT"])
def edit_document_comment(slug, document_id, comment_id):
    repo = _repo(slug)
    comment = repo.edit_comment(document_id, comment_id, _json_body().get("text"), current_principal())
    return jsonify(comment.to_dict()), 200


@documents_bp.route("/<slug>/<document_id>/comments/<comment_id>", methods=["DELETE"])
def delete_document_comment(slug, document_id, comment_id):
    repo = _repo(slug)
    repo.delete_comment(document_id, comment_id, current_principal())
    return "", 204

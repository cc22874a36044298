"""
Files Blueprint — upload, lookup, reverse lookup and deletion.

Endpoints:
    POST   /api/v1/files                   multipart "file" (+ optional "description")
    GET    /api/v1/files/<file_id>         file metadata
    GET    /api/v1/files/<file_id>/documents
                                           every document referencing the file
    DELETE /api/v1/files/<file_id>         delete file, associations and binary

Attaching a file to a document goes through the documents blueprint, which
checks the caller's rights on that document.
"""

import logging

from flask import Blueprint, jsonify, request

from docflow.adapters.object_storage import StorageError
from docflow.auth import current_principal
from docflow.core.exceptions import ValidationError
from docflow.services import file_association, file_service
from docflow.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

files_bp = Blueprint("files", __name__, url_prefix="/api/v1/files")
register_error_handlers(files_bp)


@files_bp.errorhandler(StorageError)
def handle_storage_error(e):
    logger.error("Object storage failure: %s", e)
    return api_error(E.INTERNAL, "File storage is unavailable", status=502)


@files_bp.route("", methods=["POST"])
def upload_file():
    current_principal()
    upload = request.files.get("file")
    if upload is None:
        raise ValidationError("No file part in request", details={"file": "required"})
    stored = file_service.register_upload(
        upload.stream,
        upload.filename,
        upload.mimetype,
        description=request.form.get("description") or None,
    )
    return jsonify(stored.to_dict()), 201


@files_bp.route("/<file_id>", methods=["GET"])
def get_file(file_id):
    current_principal()
    return jsonify(file_service.get_file(file_id).to_dict()), 200


@files_bp.route("/<file_id>/documents", methods=["GET"])
def file_documents(file_id):
    current_principal()
    file_service.get_file(file_id)
    refs = file_association.documents_for_file(file_id)
    return jsonify([{"kind": ref.kind.value, "document_id": ref.document_id} for ref in refs]), 200


@files_bp.route("/<file_id>", methods=["DELETE"])
def delete_file(file_id):
    removed = file_service.delete_file(file_id, current_principal())
    return jsonify({"deleted": file_id, "associations_removed": removed}), 200

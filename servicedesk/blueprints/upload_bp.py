"""
Upload Blueprint — complaint attachments on local disk.

Endpoints:
    POST /api/upload         — multipart field ``files`` (up to 10) → {"urls": [...]}
    GET  /uploads/<name>     — serve a stored file
"""

from flask import Blueprint, jsonify, request, send_from_directory

from servicedesk.middleware.permission_required import login_required
from servicedesk.services import upload_service

upload_bp = Blueprint("upload", __name__)


@upload_bp.route("/api/upload", methods=["POST"])
@login_required
def upload():
    urls = upload_service.save_files(request.files.getlist("files"))
    return jsonify({"urls": urls}), 201


@upload_bp.route("/uploads/<path:filename>", methods=["GET"])
@login_required
def uploaded_file(filename):
    return send_from_directory(upload_service.upload_folder(), filename)

"""Attachment uploads stored on local disk under UPLOAD_FOLDER."""
import logging
import os
import secrets
import time

from flask import current_app
from werkzeug.utils import secure_filename

from servicedesk.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "webp", "pdf", "doc", "docx"})
MAX_FILES_PER_REQUEST = 10
URL_PREFIX = "/uploads/"


def upload_folder() -> str:
    folder = current_app.config["UPLOAD_FOLDER"]
    os.makedirs(folder, exist_ok=True)
    return folder


def _extension(filename: str) -> str:
    safe = secure_filename(filename or "")
    if "." not in safe:
        return ""
    return safe.rsplit(".", 1)[1].lower()


def _unique_name(ext: str) -> str:
    return f"{int(time.time() * 1000)}-{secrets.token_hex(8)}.{ext}"


def save_files(files) -> list[str]:
    """Validate and store every file, returning their public URLs.

    Nothing is written unless the whole batch is valid.
    """
    files = [f for f in files if f and f.filename]
    if not files:
        raise ValidationError("No files uploaded", details={"files": "required"})
    if len(files) > MAX_FILES_PER_REQUEST:
        raise ValidationError(
            f"At most {MAX_FILES_PER_REQUEST} files per upload",
            details={"files": "too many"},
        )

    max_bytes = current_app.config.get("UPLOAD_MAX_FILE_BYTES", 10 * 1024 * 1024)
    staged = []
    for f in files:
        ext = _extension(f.filename)
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                f"File type not allowed: {f.filename}",
                details={"files": f"allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"},
            )
        content = f.read()
        if len(content) > max_bytes:
            raise ValidationError(
                f"File too large: {f.filename}",
                details={"files": f"max {max_bytes} bytes"},
            )
        staged.append((ext, content))

    folder = upload_folder()
    urls = []
    for ext, content in staged:
        name = _unique_name(ext)
        with open(os.path.join(folder, name), "wb") as fh:
            fh.write(content)
        urls.append(URL_PREFIX + name)
    logger.info("Stored %d uploaded file(s)", len(urls))
    return urls

"""Image uploads for rule content."""

from __future__ import annotations

import os
import uuid
from pathlib import Path

from flask import current_app
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from prisonrp.errors import NotFoundError, ValidationError
from prisonrp.extensions import db
from prisonrp.services.audit import log_activity

ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}
PUBLIC_PREFIX = '/uploads/images'


def allowed_file(filename: str) -> bool:
    """Check if file extension is allowed."""
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def upload_root() -> Path:
    """Return (and ensure) the image upload directory."""
    configured = current_app.config.get('UPLOAD_FOLDER')
    root = Path(configured) if configured else Path(current_app.instance_path) / 'uploads' / 'images'
    root.mkdir(parents=True, exist_ok=True)
    return root


def _ensure_within_root(path: Path) -> None:
    root = upload_root().resolve()
    if root not in path.resolve().parents:
        raise PermissionError('Attempted to write outside the upload directory')


def _determine_size(file: FileStorage) -> int:
    stream = file.stream
    current = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(current)
    return size


def public_url(filename: str) -> str:
    return f"{PUBLIC_PREFIX}/{filename}"


def image_payload(row: dict) -> dict:
    url = public_url(row['filename'])
    return {
        'id': row['id'],
        'url': url,
        # Resizing happens outside this service
        'thumbnailUrl': url,
        'originalName': row['original_name'],
        'size': row['file_size'],
        'mimeType': row['mime_type'],
        'uploadedBy': row.get('uploaded_by_username'),
        'createdAt': row['created_at'],
    }


def store_image(file: FileStorage | None, uploaded_by: int | None = None) -> dict:
    """Persist an uploaded image and return its rule-image metadata."""
    if not file or not file.filename:
        raise ValidationError('No image file provided')

    if not allowed_file(file.filename):
        raise ValidationError('Only image files are allowed (png, jpg, jpeg, gif, webp)')

    max_size = current_app.config.get('MAX_IMAGE_SIZE', 10 * 1024 * 1024)
    size = _determine_size(file)
    if size > max_size:
        raise ValidationError(f'Image exceeds maximum upload size of {max_size // (1024 * 1024)} MB')

    ext = file.filename.rsplit('.', 1)[1].lower()
    unique_name = f"{uuid.uuid4().hex}.{ext}"
    filepath = upload_root() / unique_name
    _ensure_within_root(filepath)

    file.stream.seek(0)
    file.save(str(filepath))

    original_name = secure_filename(file.filename) or unique_name
    result = db.run(
        """
        INSERT INTO uploaded_images (filename, original_name, file_path, file_size, mime_type, uploaded_by)
        VALUES (%s, %s, %s, %s, %s, %s)
        """,
        (unique_name, original_name, str(filepath), size, file.mimetype, uploaded_by),
    )
    log_activity(uploaded_by, 'upload', 'image', result.id, {'original_name': original_name, 'size': size})
    return image_payload(db.get("SELECT * FROM uploaded_images WHERE id = %s", (result.id,)))


def list_images(limit: int = 100) -> list[dict]:
    rows = db.all(
        """
        SELECT i.*, su.username AS uploaded_by_username
        FROM uploaded_images i
        LEFT JOIN staff_users su ON i.uploaded_by = su.id
        ORDER BY i.created_at DESC, i.id DESC
        LIMIT %s
        """,
        (limit,),
    )
    return [image_payload(row) for row in rows]


def delete_image(image_id: int, deleted_by: int | None = None) -> None:
    row = db.get("SELECT * FROM uploaded_images WHERE id = %s", (image_id,))
    if not row:
        raise NotFoundError('Image not found')

    target = upload_root() / row['filename']
    _ensure_within_root(target)
    if target.exists() and target.is_file():
        target.unlink()
    db.run("DELETE FROM uploaded_images WHERE id = %s", (image_id,))
    log_activity(deleted_by, 'delete', 'image', image_id, {'original_name': row['original_name']})


__all__ = ['allowed_file', 'store_image', 'list_images', 'delete_image', 'upload_root', 'public_url']

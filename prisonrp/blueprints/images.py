"""Image upload endpoints for the rule editor."""

from __future__ import annotations

from flask import Blueprint, jsonify, request, send_from_directory

from prisonrp.auth import editor_required, moderator_required
from prisonrp.blueprints.common import acting_user, int_arg
from prisonrp.extensions import limiter
from prisonrp.services.uploads import delete_image, list_images, store_image, upload_root

images_bp = Blueprint('images', __name__)


@images_bp.route('/api/images/upload', methods=['POST'])
@editor_required
@limiter.limit('30 per hour')
def upload():
    image = store_image(request.files.get('image'), uploaded_by=acting_user().id)
    return jsonify(image), 201


@images_bp.route('/api/images/list', methods=['GET'])
@editor_required
def list_uploaded():
    return jsonify(list_images(int_arg('limit', 100, minimum=1, maximum=500)))


@images_bp.route('/api/images/<int:image_id>', methods=['DELETE'])
@moderator_required
def remove(image_id):
    delete_image(image_id, deleted_by=acting_user().id)
    return jsonify({'message': 'Image deleted'})


@images_bp.route('/uploads/images/<path:filename>', methods=['GET'])
def serve(filename):
    return send_from_directory(upload_root(), filename, max_age=86400)

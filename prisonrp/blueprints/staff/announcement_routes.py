"""Staff announcement endpoints, including scheduled publishing."""

from __future__ import annotations

from flask import jsonify, request

from prisonrp.auth import admin_required, editor_required, moderator_required
from prisonrp.blueprints.common import acting_user, json_body
from prisonrp.models import serialize, serialize_all
from prisonrp.services.announcements import AnnouncementService
from prisonrp.services.workflow import announcement_workflow, ensure_no_client_status

from .blueprint import staff_bp

FIELD_ALIASES = {
    'announcementType': 'announcement_type',
    'scheduledFor': 'scheduled_for',
    'autoExpireHours': 'auto_expire_hours',
    'isActive': 'is_active',
}


def announcement_fields(data: dict) -> dict:
    """Normalize camelCase keys sent by the dashboard."""
    fields = {}
    for key, value in data.items():
        fields[FIELD_ALIASES.get(key, key)] = value
    return fields


@staff_bp.route('/announcements', methods=['GET'])
@editor_required
def list_announcements():
    rows = AnnouncementService.list_staff(acting_user(), status=request.args.get('status') or None)
    return jsonify(serialize_all(rows))


@staff_bp.route('/announcements/<int:announcement_id>', methods=['GET'])
@editor_required
def get_announcement(announcement_id):
    return jsonify(serialize(AnnouncementService.get(announcement_id)))


@staff_bp.route('/announcements', methods=['POST'])
@editor_required
def create_announcement():
    data = json_body()
    ensure_no_client_status(data)
    announcement = AnnouncementService.create(acting_user(), announcement_fields(data), mode=data.get('mode'))
    return jsonify(serialize(announcement)), 201


@staff_bp.route('/announcements/<int:announcement_id>', methods=['PUT'])
@editor_required
def update_announcement(announcement_id):
    data = json_body()
    ensure_no_client_status(data)
    announcement = AnnouncementService.update(
        acting_user(), announcement_id, announcement_fields(data), mode=data.get('mode'),
    )
    return jsonify(serialize(announcement))


@staff_bp.route('/announcements/<int:announcement_id>', methods=['DELETE'])
@moderator_required
def delete_announcement(announcement_id):
    AnnouncementService.delete(acting_user(), announcement_id)
    return jsonify({'message': 'Announcement deleted'})


@staff_bp.route('/announcements/<int:announcement_id>/approve', methods=['PUT'])
@moderator_required
def approve_announcement(announcement_id):
    data = json_body()
    announcement = announcement_workflow.approve(announcement_id, acting_user(), data.get('reviewNotes'))
    return jsonify(serialize(announcement))


@staff_bp.route('/announcements/<int:announcement_id>/reject', methods=['PUT'])
@moderator_required
def reject_announcement(announcement_id):
    data = json_body()
    announcement = announcement_workflow.reject(announcement_id, acting_user(), data.get('reviewNotes'))
    return jsonify(serialize(announcement))


@staff_bp.route('/scheduled-announcements', methods=['GET'])
@moderator_required
def list_scheduled_announcements():
    return jsonify(serialize_all(AnnouncementService.list_scheduled()))


@staff_bp.route('/scheduled-announcements/<int:announcement_id>/publish-now', methods=['POST'])
@moderator_required
def publish_announcement_now(announcement_id):
    announcement = AnnouncementService.publish_now(acting_user(), announcement_id)
    return jsonify(serialize(announcement))


@staff_bp.route('/process-scheduled-announcements', methods=['POST'])
@admin_required
def process_scheduled_announcements():
    published = AnnouncementService.publish_due()
    return jsonify({
        'message': f'Published {len(published)} scheduled announcement(s)',
        'published': serialize_all(published),
    })

"""Dashboard, audit, category and staff-user endpoints."""

from __future__ import annotations

from flask import jsonify, request

from prisonrp.auth import admin_required, editor_required, moderator_required
from prisonrp.blueprints.common import acting_user, first_of, int_arg, json_body
from prisonrp.extensions import db
from prisonrp.models import serialize, serialize_all
from prisonrp.services.audit import get_activity_logs, get_activity_summary, recent_rule_changes
from prisonrp.services.categories import CategoryService
from prisonrp.services.rules import as_int
from prisonrp.services.staff import StaffService

from .blueprint import staff_bp


@staff_bp.route('/dashboard', methods=['GET'])
@editor_required
def dashboard():
    user = acting_user()
    counts = db.get(
        """
        SELECT
            (SELECT COUNT(*) FROM rules WHERE is_active = %s AND status = 'approved') AS total_rules,
            (SELECT COUNT(*) FROM rules WHERE is_active = %s AND status = 'pending_approval') AS pending_rules,
            (SELECT COUNT(*) FROM rule_revisions rv JOIN rules r ON rv.rule_id = r.id
             WHERE r.is_active = %s AND rv.status = 'pending_approval') AS pending_revisions,
            (SELECT COUNT(*) FROM announcements WHERE status = 'pending_approval') AS pending_announcements,
            (SELECT COUNT(*) FROM categories WHERE is_active = %s) AS total_categories,
            (SELECT COUNT(*) FROM announcements WHERE status = 'approved' AND is_active = %s) AS active_announcements
        """,
        (True, True, True, True, True),
    )
    return jsonify({
        'user': user.to_dict(),
        'stats': {
            'totalRules': counts['total_rules'],
            'totalCategories': counts['total_categories'],
            'activeAnnouncements': counts['active_announcements'],
            'pendingApprovals': counts['pending_rules'] + counts['pending_revisions'] + counts['pending_announcements'],
        },
        'recentChanges': serialize_all(recent_rule_changes(10)),
        'activity': get_activity_summary(user.id, days=7),
    })


@staff_bp.route('/activity-logs', methods=['GET'])
@moderator_required
def activity_logs():
    staff_user_id = request.args.get('staff_user_id')
    logs = get_activity_logs(
        staff_user_id=as_int(staff_user_id, 'staff_user_id') if staff_user_id else None,
        action_type=request.args.get('action_type') or None,
        resource_type=request.args.get('resource_type') or None,
        start_date=request.args.get('start_date') or None,
        end_date=request.args.get('end_date') or None,
        limit=int_arg('limit', 50, minimum=1, maximum=500),
        offset=int_arg('offset', 0),
    )
    return jsonify(serialize_all(logs))


@staff_bp.route('/activity-summary', methods=['GET'])
@moderator_required
def activity_summary():
    staff_user_id = request.args.get('staff_user_id')
    return jsonify(get_activity_summary(
        as_int(staff_user_id, 'staff_user_id') if staff_user_id else None,
        days=int_arg('days', 30, minimum=1, maximum=365),
    ))


# Categories

@staff_bp.route('/categories/list', methods=['GET'])
@editor_required
def category_choices():
    """Category picker for the rule editor."""
    return jsonify(serialize_all(CategoryService.list_all()))


@staff_bp.route('/categories', methods=['GET'])
@admin_required
def list_categories():
    return jsonify(serialize_all(CategoryService.list_all()))


@staff_bp.route('/categories', methods=['POST'])
@admin_required
def create_category():
    data = json_body()
    category = CategoryService.create(
        first_of(data, 'letter_code', 'letterCode'),
        data.get('name'),
        description=data.get('description'),
        color=data.get('color'),
        is_active=first_of(data, 'is_active', 'isActive', default=True),
        actor_id=acting_user().id,
    )
    return jsonify(serialize(category)), 201


@staff_bp.route('/categories/<int:category_id>', methods=['PUT'])
@admin_required
def update_category(category_id):
    data = json_body()
    changes = dict(data)
    if 'letterCode' in changes:
        changes['letter_code'] = changes.pop('letterCode')
    if 'isActive' in changes:
        changes['is_active'] = changes.pop('isActive')
    category = CategoryService.update(category_id, changes, actor_id=acting_user().id)
    return jsonify(serialize(category))


@staff_bp.route('/categories/<int:category_id>', methods=['DELETE'])
@admin_required
def delete_category(category_id):
    CategoryService.delete(category_id, actor_id=acting_user().id)
    return jsonify({'message': 'Category deleted'})


@staff_bp.route('/categories/reorder', methods=['POST'])
@admin_required
def reorder_categories():
    data = json_body()
    categories = CategoryService.reorder(
        first_of(data, 'categoryOrder', 'category_order'), actor_id=acting_user().id,
    )
    return jsonify(serialize_all(categories))


# Staff users

@staff_bp.route('/users', methods=['GET'])
@admin_required
def list_users():
    return jsonify(serialize_all(StaffService.list_users(acting_user())))


@staff_bp.route('/users', methods=['POST'])
@admin_required
def create_user():
    data = json_body()
    user = StaffService.create_user(
        acting_user(),
        data.get('username'),
        first_of(data, 'permission_level', 'permissionLevel'),
        steam_id=first_of(data, 'steam_id', 'steamId'),
        discord_id=first_of(data, 'discord_id', 'discordId'),
    )
    return jsonify(serialize(user)), 201


@staff_bp.route('/users/<int:user_id>', methods=['PUT'])
@admin_required
def update_user(user_id):
    data = json_body()
    user = StaffService.update_user(
        acting_user(),
        user_id,
        permission_level=first_of(data, 'permission_level', 'permissionLevel'),
        is_active=first_of(data, 'is_active', 'isActive'),
    )
    return jsonify(serialize(user))


@staff_bp.route('/users/<int:user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    StaffService.deactivate_user(acting_user(), user_id)
    return jsonify({'message': 'User deactivated'})

"""Staff analytics reports."""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from prisonrp.auth import admin_required, moderator_required
from prisonrp.blueprints.common import int_arg
from prisonrp.models import serialize_all
from prisonrp.services import analytics

analytics_bp = Blueprint('analytics', __name__, url_prefix='/api/analytics')


def days_arg() -> int:
    return int_arg('days', 30, minimum=1, maximum=analytics.MAX_DAYS)


def id_arg(*names: str) -> int | None:
    for name in names:
        if request.args.get(name):
            return int_arg(name, 0, minimum=1)
    return None


@analytics_bp.route('/content-stats', methods=['GET'])
@moderator_required
def content_stats():
    return jsonify(analytics.content_stats(days_arg()))


@analytics_bp.route('/search-trends', methods=['GET'])
@moderator_required
def search_trends():
    report = analytics.search_trends(days_arg(), int_arg('limit', 20, minimum=1, maximum=100))
    report['popularQueries'] = serialize_all(report['popularQueries'])
    report['noResultQueries'] = serialize_all(report['noResultQueries'])
    return jsonify(report)


@analytics_bp.route('/staff-activity', methods=['GET'])
@admin_required
def staff_activity():
    report = analytics.staff_activity(
        days_arg(),
        staff_user_id=id_arg('staffUserId', 'staff_user_id'),
        detailed=request.args.get('detailed', '').lower() == 'true',
    )
    report['activitySummary'] = serialize_all(report['activitySummary'])
    return jsonify(report)


@analytics_bp.route('/rule-views', methods=['GET'])
@moderator_required
def rule_views():
    report = analytics.rule_views(
        days_arg(),
        int_arg('limit', 20, minimum=1, maximum=100),
        category_id=id_arg('categoryId', 'category_id'),
    )
    report['rules'] = serialize_all(report['rules'])
    return jsonify(report)


@analytics_bp.route('/system-health', methods=['GET'])
@admin_required
def system_health():
    report = analytics.system_health(days_arg())
    report['errorStats'] = serialize_all(report['errorStats'])
    return jsonify(report)

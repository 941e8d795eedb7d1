"""Public JSON endpoints used by the rules website."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from prisonrp.blueprints.common import first_of, int_arg, json_body
from prisonrp.errors import NotFoundError
from prisonrp.extensions import db, limiter
from prisonrp.models import ContentStatus, serialize, serialize_all
from prisonrp.services.announcements import AnnouncementService
from prisonrp.services.audit import recent_rule_changes
from prisonrp.services.categories import CategoryService
from prisonrp.services.cross_references import get_cross_references
from prisonrp.services.db import StorageError, now_timestamp
from prisonrp.services.rules import RuleService
from prisonrp.services.search import MIN_QUERY_LENGTH, record_search, search_rules, search_suggestions

public_bp = Blueprint('public', __name__)


def serialize_rule_tree(rule: dict) -> dict:
    data = serialize(rule)
    if 'sub_rules' in rule:
        data['sub_rules'] = serialize_all(rule['sub_rules'])
    return data


@public_bp.route('/health', methods=['GET'])
@limiter.exempt
def health():
    db.get("SELECT 1 AS ok")
    return jsonify({
        'status': 'healthy',
        'database': db.backend_name,
        'timestamp': now_timestamp(),
    })


@public_bp.route('/api/categories', methods=['GET'])
def list_categories():
    return jsonify(serialize_all(CategoryService.list_public()))


@public_bp.route('/api/rules', methods=['GET'])
def list_rules():
    category = request.args.get('category') or None
    rules = RuleService.get_rule_tree(category)
    return jsonify([serialize_rule_tree(rule) for rule in rules])


@public_bp.route('/api/rules/code/<code>', methods=['GET'])
def rule_by_code(code):
    return jsonify(serialize_rule_tree(RuleService.get_rule_by_code(code)))


@public_bp.route('/api/rules/<int:rule_id>/cross-references', methods=['GET'])
def rule_cross_references(rule_id):
    rule = RuleService.get_rule(rule_id)
    if rule['status'] != ContentStatus.APPROVED.value:
        raise NotFoundError('Rule not found')
    return jsonify(get_cross_references(rule_id, public_only=True))


@public_bp.route('/api/announcements', methods=['GET'])
def list_announcements():
    return jsonify(serialize_all(AnnouncementService.list_public()))


@public_bp.route('/api/search', methods=['GET'])
@limiter.limit("60 per minute")
def search():
    query = request.args.get('q', '')
    limit = int_arg('limit', 10, minimum=1, maximum=50)
    results = search_rules(query, limit)
    if len(query.strip()) >= MIN_QUERY_LENGTH:
        try:
            record_search(query, len(results))
        except StorageError as e:
            current_app.logger.warning(f"Could not record search history: {e}")
    return jsonify(results)


@public_bp.route('/api/search/suggestions', methods=['GET'])
def suggestions():
    limit = int_arg('limit', 20, minimum=1, maximum=20)
    return jsonify(search_suggestions(request.args.get('q'), limit))


@public_bp.route('/api/search/history', methods=['POST'])
@limiter.limit("60 per minute")
def log_search():
    # Clients that answered a search from their own cache report it here
    data = json_body()
    record_search(data.get('query'), first_of(data, 'results_count', 'resultsCount', default=0))
    return jsonify({'message': 'Search logged successfully'})


@public_bp.route('/api/changes', methods=['GET'])
def recent_changes():
    limit = int_arg('limit', 20, minimum=1, maximum=100)
    return jsonify(serialize_all(recent_rule_changes(limit, public_only=True)))

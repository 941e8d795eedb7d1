"""Staff rule editing, moderation and cross-reference endpoints."""

from __future__ import annotations

from flask import jsonify, request

from prisonrp.auth import editor_required, moderator_required
from prisonrp.blueprints.common import acting_user, first_of, json_body
from prisonrp.models import serialize, serialize_all
from prisonrp.services.audit import rule_history
from prisonrp.services.cross_references import (
    add_cross_reference,
    get_cross_references,
    remove_cross_reference,
)
from prisonrp.services.rules import RuleService, as_int
from prisonrp.services.workflow import ensure_no_client_status, pending_approvals, rule_workflow

from .blueprint import cross_reference_bp, staff_bp


@staff_bp.route('/rules', methods=['GET'])
@editor_required
def list_rules():
    category_id = request.args.get('category_id') or request.args.get('categoryId')
    rules = RuleService.staff_rule_list(
        acting_user(),
        status=request.args.get('status') or None,
        category_id=as_int(category_id, 'category_id') if category_id else None,
    )
    return jsonify(serialize_all(rules))


@staff_bp.route('/rules/<int:rule_id>', methods=['GET'])
@editor_required
def get_rule(rule_id):
    rule = serialize(RuleService.get_rule(rule_id))
    rule['revision'] = serialize(RuleService.get_revision(rule_id))
    rule['history'] = serialize_all(rule_history(rule_id))
    rule['cross_references'] = get_cross_references(rule_id)
    return jsonify(rule)


@staff_bp.route('/rules/<int:rule_id>/draft', methods=['GET'])
@editor_required
def get_rule_draft(rule_id):
    return jsonify(serialize(RuleService.get_draft(rule_id)))


@staff_bp.route('/rules', methods=['POST'])
@editor_required
def create_rule():
    data = json_body()
    ensure_no_client_status(data)
    rule = RuleService.create_rule(
        acting_user(),
        category_id=first_of(data, 'categoryId', 'category_id'),
        title=data.get('title'),
        content=data.get('content'),
        parent_rule_id=first_of(data, 'parentRuleId', 'parent_rule_id'),
        images=data.get('images'),
        mode=data.get('mode'),
    )
    return jsonify(serialize(rule)), 201


@staff_bp.route('/rules/<int:rule_id>', methods=['PUT'])
@editor_required
def update_rule(rule_id):
    data = json_body()
    ensure_no_client_status(data)
    changes = {}
    for key, aliases in (
        ('title', ('title',)),
        ('content', ('content',)),
        ('images', ('images',)),
        ('categoryId', ('categoryId', 'category_id')),
        ('parentRuleId', ('parentRuleId', 'parent_rule_id')),
    ):
        for alias in aliases:
            if alias in data:
                changes[key] = data[alias]
                break
    rule = serialize(RuleService.update_rule(acting_user(), rule_id, changes, mode=data.get('mode')))
    rule['revision'] = serialize(RuleService.get_revision(rule_id))
    return jsonify(rule)


@staff_bp.route('/rules/<int:rule_id>', methods=['DELETE'])
@moderator_required
def delete_rule(rule_id):
    mode = RuleService.delete_rule(acting_user(), rule_id)
    message = 'Rule deleted' if mode == 'hard' else 'Rule deactivated'
    return jsonify({'message': message, 'mode': mode})


@staff_bp.route('/rules/<int:rule_id>/approve', methods=['PUT'])
@moderator_required
def approve_rule(rule_id):
    data = json_body()
    rule = rule_workflow.approve(rule_id, acting_user(), first_of(data, 'reviewNotes', 'review_notes'))
    return jsonify(serialize(rule))


@staff_bp.route('/rules/<int:rule_id>/reject', methods=['PUT'])
@moderator_required
def reject_rule(rule_id):
    data = json_body()
    rule = rule_workflow.reject(rule_id, acting_user(), first_of(data, 'reviewNotes', 'review_notes'))
    return jsonify(serialize(rule))


@staff_bp.route('/pending-approvals', methods=['GET'])
@moderator_required
def list_pending_approvals():
    pending = pending_approvals()
    return jsonify({
        'rules': serialize_all(pending['rules']),
        'rule_revisions': serialize_all(pending['rule_revisions']),
        'announcements': serialize_all(pending['announcements']),
    })


@cross_reference_bp.route('/<int:rule_id>/cross-references', methods=['POST'])
@editor_required
def create_cross_reference(rule_id):
    data = json_body()
    reference = add_cross_reference(
        rule_id,
        first_of(data, 'target_rule_id', 'targetRuleId'),
        reference_type=first_of(data, 'reference_type', 'referenceType'),
        context=first_of(data, 'reference_context', 'referenceContext'),
        bidirectional=first_of(data, 'is_bidirectional', 'isBidirectional', default=True),
        created_by=acting_user().id,
    )
    return jsonify(serialize(reference)), 201


@cross_reference_bp.route('/<int:rule_id>/cross-references/<int:reference_id>', methods=['DELETE'])
@editor_required
def delete_cross_reference(rule_id, reference_id):
    remove_cross_reference(rule_id, reference_id, removed_by=acting_user().id)
    return jsonify({'message': 'Cross-reference removed'})

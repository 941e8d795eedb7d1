"""Typed links between rules.

An edge is stored once as ``source -> target``. It is listed on the source
rule as ``forward`` and, when ``is_bidirectional`` is set, on the target rule
as ``reverse``.
"""
from __future__ import annotations

from typing import Any

from prisonrp.errors import ConflictError, NotFoundError, ValidationError
from prisonrp.extensions import db
from prisonrp.models import ReferenceType
from prisonrp.services.audit import log_activity
from prisonrp.services.db import ErrorKind, StorageError
from prisonrp.services.validation import parse_bool


def parse_reference_type(value: ReferenceType | str | None) -> ReferenceType:
    if value is None or value == '':
        return ReferenceType.RELATED
    if isinstance(value, ReferenceType):
        return value
    try:
        return ReferenceType(str(value).lower())
    except ValueError:
        allowed = ', '.join(t.value for t in ReferenceType)
        raise ValidationError(f'reference_type must be one of: {allowed}') from None


def _require_rule(rule_id: int) -> dict:
    rule = db.get("SELECT id FROM rules WHERE id = %s AND is_active = %s", (rule_id, True))
    if not rule:
        raise NotFoundError(f'Rule {rule_id} not found')
    return rule


def add_cross_reference(
    source_rule_id: int,
    target_rule_id: int,
    reference_type: ReferenceType | str | None = None,
    context: str | None = None,
    bidirectional: bool = True,
    created_by: int | None = None,
) -> dict:
    try:
        source_rule_id = int(source_rule_id)
        target_rule_id = int(target_rule_id)
    except (TypeError, ValueError):
        raise ValidationError('Rule ids must be integers') from None
    if source_rule_id == target_rule_id:
        raise ValidationError('A rule cannot reference itself')

    ref_type = parse_reference_type(reference_type)
    is_bidirectional = parse_bool(bidirectional, 'is_bidirectional', default=True)
    _require_rule(source_rule_id)
    _require_rule(target_rule_id)

    existing = db.get(
        """
        SELECT id FROM rule_cross_references
        WHERE source_rule_id = %s AND target_rule_id = %s AND reference_type = %s
        """,
        (source_rule_id, target_rule_id, ref_type.value),
    )
    if existing:
        raise ConflictError('This cross-reference already exists')

    try:
        result = db.run(
            """
            INSERT INTO rule_cross_references
                (source_rule_id, target_rule_id, reference_type, reference_context,
                 is_bidirectional, created_by)
            VALUES (%s, %s, %s, %s, %s, %s)
            """,
            (source_rule_id, target_rule_id, ref_type.value,
             (context or '').strip() or None, is_bidirectional, created_by),
        )
    except StorageError as exc:
        if exc.kind is ErrorKind.UNIQUE_VIOLATION:
            raise ConflictError('This cross-reference already exists') from exc
        raise

    log_activity(created_by, 'create', 'cross_reference', result.id, {
        'source_rule_id': source_rule_id,
        'target_rule_id': target_rule_id,
        'reference_type': ref_type.value,
    })
    return db.get("SELECT * FROM rule_cross_references WHERE id = %s", (result.id,))


def _entry(row: dict, direction: str) -> dict[str, Any]:
    return {
        'id': row['id'],
        'reference_type': row['reference_type'],
        'reference_context': row['reference_context'],
        'is_bidirectional': bool(row['is_bidirectional']),
        'created_at': row['created_at'],
        'direction': direction,
        'related_rule': {
            'id': row['related_id'],
            'title': row['related_title'],
            'full_code': row['related_full_code'],
            'category_name': row['related_category_name'],
            'status': row['related_status'],
        },
    }


def get_cross_references(rule_id: int, public_only: bool = False) -> dict[str, list[dict]]:
    """Edges touching ``rule_id`` grouped by reference type.

    ``public_only`` hides links whose other end is not an approved, active rule.
    """
    visibility = "AND r.is_active = %s"
    params_extra: list[Any] = [True]
    if public_only:
        visibility += " AND r.status = 'approved'"

    forward = db.all(
        f"""
        SELECT x.*, r.id AS related_id, r.title AS related_title, r.full_code AS related_full_code,
               r.status AS related_status, c.name AS related_category_name
        FROM rule_cross_references x
        JOIN rules r ON x.target_rule_id = r.id
        JOIN categories c ON r.category_id = c.id
        WHERE x.source_rule_id = %s {visibility}
        ORDER BY x.created_at, x.id
        """,
        [rule_id, *params_extra],
    )
    reverse = db.all(
        f"""
        SELECT x.*, r.id AS related_id, r.title AS related_title, r.full_code AS related_full_code,
               r.status AS related_status, c.name AS related_category_name
        FROM rule_cross_references x
        JOIN rules r ON x.source_rule_id = r.id
        JOIN categories c ON r.category_id = c.id
        WHERE x.target_rule_id = %s AND x.is_bidirectional = %s {visibility}
        ORDER BY x.created_at, x.id
        """,
        [rule_id, True, *params_extra],
    )

    grouped: dict[str, list[dict]] = {}
    for row in forward:
        grouped.setdefault(row['reference_type'], []).append(_entry(row, 'forward'))
    for row in reverse:
        grouped.setdefault(row['reference_type'], []).append(_entry(row, 'reverse'))
    return grouped


def remove_cross_reference(rule_id: int, reference_id: int, removed_by: int | None = None) -> None:
    """Hard-delete an edge; it must touch ``rule_id`` at either end."""
    edge = db.get(
        """
        SELECT * FROM rule_cross_references
        WHERE id = %s AND (source_rule_id = %s OR target_rule_id = %s)
        """,
        (reference_id, rule_id, rule_id),
    )
    if not edge:
        raise NotFoundError('Cross-reference not found')
    db.run("DELETE FROM rule_cross_references WHERE id = %s", (reference_id,))
    log_activity(removed_by, 'delete', 'cross_reference', reference_id, {
        'source_rule_id': edge['source_rule_id'],
        'target_rule_id': edge['target_rule_id'],
        'reference_type': edge['reference_type'],
    })


__all__ = [
    'parse_reference_type',
    'add_cross_reference',
    'get_cross_references',
    'remove_cross_reference',
]

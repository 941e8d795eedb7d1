"""Append-only audit trail: staff activity logs and rule change history."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any

from flask import current_app, has_request_context, request

from prisonrp.extensions import db
from prisonrp.services.db import format_timestamp


def log_activity(
    actor_id: int | None,
    action_type: str,
    resource_type: str,
    resource_id: int | None = None,
    details: dict[str, Any] | None = None,
    success: bool = True,
    error_message: str | None = None,
) -> None:
    """
    Record a staff action in ``staff_activity_logs``.

    Args:
        actor_id: Staff user who performed the action
        action_type: e.g. "create", "update", "approve", "reject", "delete"
        resource_type: e.g. "rule", "announcement", "category", "user"
        resource_id: Id of the affected row
        details: Extra JSON-serializable context
        success: Whether the action succeeded
        error_message: Failure reason when ``success`` is false
    """
    try:
        ip_address = None
        user_agent = None
        if has_request_context():
            ip_address = request.remote_addr
            user_agent = request.headers.get('User-Agent')

        db.run(
            """
            INSERT INTO staff_activity_logs
                (staff_user_id, action_type, resource_type, resource_id, details,
                 ip_address, user_agent, success, error_message)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                actor_id,
                action_type,
                resource_type,
                resource_id,
                json.dumps(details or {}, default=str),
                ip_address,
                user_agent,
                success,
                error_message,
            ),
        )
    except Exception as e:
        # Don't fail the request if audit logging fails
        current_app.logger.error(f"Failed to log staff activity: {e}")


def record_rule_change(
    executor,
    rule_id: int,
    change_type: str,
    actor_id: int | None,
    old_content: str | None = None,
    new_content: str | None = None,
    description: str | None = None,
) -> None:
    """Append a row to ``rule_changes`` using the caller's executor (adapter or open transaction)."""
    executor.run(
        """
        INSERT INTO rule_changes
            (rule_id, change_type, old_content, new_content, change_description, staff_user_id)
        VALUES (%s, %s, %s, %s, %s, %s)
        """,
        (rule_id, change_type, old_content, new_content, description, actor_id),
    )


def get_activity_logs(
    staff_user_id: int | None = None,
    action_type: str | None = None,
    resource_type: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[dict]:
    clauses = []
    params: list[Any] = []
    if staff_user_id is not None:
        clauses.append("l.staff_user_id = %s")
        params.append(staff_user_id)
    if action_type:
        clauses.append("l.action_type = %s")
        params.append(action_type)
    if resource_type:
        clauses.append("l.resource_type = %s")
        params.append(resource_type)
    if start_date:
        clauses.append("l.created_at >= %s")
        params.append(start_date)
    if end_date:
        clauses.append("l.created_at <= %s")
        params.append(end_date)

    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    params.extend([max(1, min(int(limit), 500)), max(0, int(offset))])
    rows = db.all(
        f"""
        SELECT l.*, su.username, su.permission_level
        FROM staff_activity_logs l
        LEFT JOIN staff_users su ON l.staff_user_id = su.id
        {where}
        ORDER BY l.created_at DESC, l.id DESC
        LIMIT %s OFFSET %s
        """,
        params,
    )
    for row in rows:
        try:
            row['details'] = json.loads(row['details']) if row.get('details') else {}
        except ValueError:
            row['details'] = {}
    return rows


def get_activity_summary(staff_user_id: int | None = None, days: int = 30) -> dict:
    """Counts of actions per type and per resource over the last ``days`` days."""
    since = format_timestamp(datetime.now(timezone.utc) - timedelta(days=days))
    clauses = ["created_at >= %s"]
    params: list[Any] = [since]
    if staff_user_id is not None:
        clauses.append("staff_user_id = %s")
        params.append(staff_user_id)
    where = ' AND '.join(clauses)

    by_action = db.all(
        f"""
        SELECT action_type, COUNT(*) AS count
        FROM staff_activity_logs WHERE {where}
        GROUP BY action_type ORDER BY count DESC
        """,
        params,
    )
    by_resource = db.all(
        f"""
        SELECT resource_type, COUNT(*) AS count
        FROM staff_activity_logs WHERE {where}
        GROUP BY resource_type ORDER BY count DESC
        """,
        params,
    )
    total = sum(row['count'] for row in by_action)
    return {
        'days': days,
        'total': total,
        'byAction': {row['action_type']: row['count'] for row in by_action},
        'byResource': {row['resource_type']: row['count'] for row in by_resource},
    }


def recent_rule_changes(limit: int = 10, public_only: bool = False) -> list[dict]:
    """Newest rule changes; ``public_only`` keeps changes to published rules and hides old content."""
    where = ""
    params: list[Any] = []
    if public_only:
        # Proposed and rejected edits carry text that was never published
        where = ("WHERE r.status = 'approved' AND r.is_active = %s"
                 " AND rc.change_type NOT IN ('draft_edit', 'rejected')")
        params.append(True)
    params.append(limit)
    rows = db.all(
        f"""
        SELECT rc.*, r.title AS rule_title, r.full_code, c.name AS category_name,
               c.letter_code, su.username AS staff_username
        FROM rule_changes rc
        LEFT JOIN rules r ON rc.rule_id = r.id
        LEFT JOIN categories c ON r.category_id = c.id
        LEFT JOIN staff_users su ON rc.staff_user_id = su.id
        {where}
        ORDER BY rc.created_at DESC, rc.id DESC
        LIMIT %s
        """,
        params,
    )
    if public_only:
        for row in rows:
            row.pop('old_content', None)
            row.pop('staff_user_id', None)
    return rows


def rule_history(rule_id: int) -> list[dict]:
    return db.all(
        """
        SELECT rc.*, su.username AS staff_username
        FROM rule_changes rc
        LEFT JOIN staff_users su ON rc.staff_user_id = su.id
        WHERE rc.rule_id = %s
        ORDER BY rc.created_at DESC, rc.id DESC
        """,
        (rule_id,),
    )


__all__ = [
    "log_activity",
    "record_rule_change",
    "get_activity_logs",
    "get_activity_summary",
    "recent_rule_changes",
    "rule_history",
]

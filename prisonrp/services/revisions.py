"""Proposed edits of published rules.

A published rule keeps serving its approved text while an edit waits for
review. The edit lives in ``rule_revisions`` (one row per rule) and is
copied onto the rule when a moderator approves it.
"""
from __future__ import annotations

from prisonrp.extensions import db
from prisonrp.models import ContentStatus

OPEN_STATUSES = (ContentStatus.DRAFT.value, ContentStatus.PENDING_APPROVAL.value)


def load_revision(rule_id: int, executor=None) -> dict | None:
    executor = executor or db
    return executor.get(
        """
        SELECT rv.*, su.username AS submitted_by_username
        FROM rule_revisions rv
        LEFT JOIN staff_users su ON rv.submitted_by = su.id
        WHERE rv.rule_id = %s
        """,
        (rule_id,),
    )


def pending_revisions() -> list[dict]:
    """Revisions of live rules waiting for a moderator, oldest first."""
    return db.all(
        """
        SELECT rv.*, r.full_code, r.title AS live_title, r.content AS live_content,
               c.name AS category_name, c.letter_code,
               su.username AS submitted_by_username
        FROM rule_revisions rv
        JOIN rules r ON rv.rule_id = r.id
        JOIN categories c ON r.category_id = c.id
        LEFT JOIN staff_users su ON rv.submitted_by = su.id
        WHERE rv.status = 'pending_approval' AND r.is_active = %s
        ORDER BY rv.submitted_at ASC, rv.id ASC
        """,
        (True,),
    )


__all__ = ['OPEN_STATUSES', 'load_revision', 'pending_revisions']

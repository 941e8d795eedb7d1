"""Moderation workflow shared by rules and announcements.

Statuses: ``draft``, ``pending_approval``, ``approved``, ``rejected``.

* Creating or re-editing an item starts a new submission cycle; the status
  comes from :func:`prisonrp.services.permissions.starting_status` and any
  previous review metadata is cleared.
* ``approve`` (moderator+) is allowed from ``pending_approval`` and, as a
  plain re-approval, from ``approved``.
* ``reject`` (moderator+) is allowed from ``pending_approval`` only and
  requires non-blank notes.
* Edits of published rules wait in ``rule_revisions``; see :class:`RuleWorkflow`.
"""
from __future__ import annotations

from typing import Any

from flask import current_app

from prisonrp.errors import AuthorizationError, InvalidTransitionError, NotFoundError, ValidationError
from prisonrp.extensions import db
from prisonrp.models import ContentStatus, PermissionLevel, StaffUser, SubmissionMode, searchable_text
from prisonrp.services.audit import log_activity, record_rule_change
from prisonrp.services.db import now_timestamp
from prisonrp.services.discord import DiscordNotifier
from prisonrp.services.permissions import has_at_least, parse_mode, starting_status
from prisonrp.services.revisions import load_revision, pending_revisions

APPROVABLE_FROM = (ContentStatus.PENDING_APPROVAL.value, ContentStatus.APPROVED.value)


def ensure_no_client_status(data: dict) -> None:
    """Status is always computed server-side; callers send ``mode`` instead."""
    if 'status' in data:
        raise ValidationError("status cannot be set directly; send mode 'draft' or 'submit'")


def submission_fields(actor: StaffUser, mode: SubmissionMode | str | None) -> dict[str, Any]:
    """Columns written whenever an item is created or edited."""
    status = starting_status(actor.permission_level, mode)
    return {
        'status': status.value,
        'submitted_by': actor.id,
        'submitted_at': None if status is ContentStatus.DRAFT else now_timestamp(),
        'reviewed_by': None,
        'review_notes': None,
        'reviewed_at': None,
    }


class ContentWorkflow:
    table = ''
    label = ''
    resource_type = ''
    only_active = False

    def load(self, item_id: int, executor=None) -> dict:
        executor = executor or db
        sql = f"SELECT * FROM {self.table} WHERE id = %s"
        params: list[Any] = [item_id]
        if self.only_active:
            sql += " AND is_active = %s"
            params.append(True)
        item = executor.get(sql, params)
        if not item:
            raise NotFoundError(f'{self.label} not found')
        return item

    @staticmethod
    def require_reviewer(reviewer: StaffUser) -> None:
        if not has_at_least(reviewer.permission_level, PermissionLevel.MODERATOR):
            raise AuthorizationError('Only moderators and above can review content')

    def approve(self, item_id: int, reviewer: StaffUser, notes: str | None = None) -> dict:
        self.require_reviewer(reviewer)
        item = self.load(item_id)
        if item['status'] not in APPROVABLE_FROM:
            raise InvalidTransitionError(
                f"Cannot approve a {self.label.lower()} in status '{item['status']}'"
            )

        now = now_timestamp()
        notes = (notes or '').strip() or None
        with db.transaction() as tx:
            tx.run(
                f"""
                UPDATE {self.table}
                SET status = 'approved', reviewed_by = %s, review_notes = %s,
                    reviewed_at = %s, updated_at = %s
                WHERE id = %s
                """,
                (reviewer.id, notes, now, now, item_id),
            )
            self.after_approve(tx, item, reviewer, notes, now)

        log_activity(reviewer.id, 'approve', self.resource_type, item_id,
                     {'previous_status': item['status'], 'notes': notes})
        self.notify_approved(item_id, reviewer)
        return self.load(item_id)

    def reject(self, item_id: int, reviewer: StaffUser, notes: str | None) -> dict:
        notes = (notes or '').strip()
        if not notes:
            raise ValidationError('Review notes are required when rejecting')
        self.require_reviewer(reviewer)
        item = self.load(item_id)
        if item['status'] != ContentStatus.PENDING_APPROVAL.value:
            raise InvalidTransitionError(
                f"Only pending {self.label.lower()}s can be rejected (current status '{item['status']}')"
            )

        now = now_timestamp()
        with db.transaction() as tx:
            tx.run(
                f"""
                UPDATE {self.table}
                SET status = 'rejected', reviewed_by = %s, review_notes = %s,
                    reviewed_at = %s, updated_at = %s
                WHERE id = %s
                """,
                (reviewer.id, notes, now, now, item_id),
            )
            self.after_reject(tx, item, reviewer, notes)

        log_activity(reviewer.id, 'reject', self.resource_type, item_id, {'notes': notes})
        return self.load(item_id)

    def after_approve(self, tx, item: dict, reviewer: StaffUser, notes: str | None, now: str) -> None:
        pass

    def after_reject(self, tx, item: dict, reviewer: StaffUser, notes: str) -> None:
        pass

    def notify_approved(self, item_id: int, reviewer: StaffUser) -> None:
        pass


class RuleWorkflow(ContentWorkflow):
    """Rules additionally carry revisions: an approved rule with a pending
    revision is approved by promoting the revision onto the live row and
    rejected by marking the revision, leaving the published text alone."""

    table = 'rules'
    label = 'Rule'
    resource_type = 'rule'
    only_active = True

    def after_approve(self, tx, item, reviewer, notes, now):
        revision = load_revision(item['id'], tx)
        if revision is None or revision['status'] != ContentStatus.PENDING_APPROVAL.value:
            record_rule_change(
                tx, item['id'], 'approved', reviewer.id,
                new_content=item['content'],
                description=notes or f"Rule {item['full_code']} approved",
            )
            return

        tx.run(
            """
            UPDATE rules
            SET title = %s, content = %s, images = %s, searchable_content = %s,
                submitted_by = %s, submitted_at = %s
            WHERE id = %s
            """,
            (
                revision['title'], revision['content'], revision['images'],
                searchable_text(item['full_code'], revision['title'], revision['content']),
                revision['submitted_by'], revision['submitted_at'], item['id'],
            ),
        )
        tx.run("DELETE FROM rule_revisions WHERE id = %s", (revision['id'],))
        record_rule_change(
            tx, item['id'], 'approved', reviewer.id,
            old_content=item['content'],
            new_content=revision['content'],
            description=notes or f"Edit of rule {item['full_code']} approved",
        )

    def reject(self, item_id, reviewer, notes):
        revision = load_revision(item_id)
        if revision is None or revision['status'] != ContentStatus.PENDING_APPROVAL.value:
            return super().reject(item_id, reviewer, notes)

        notes = (notes or '').strip()
        if not notes:
            raise ValidationError('Review notes are required when rejecting')
        self.require_reviewer(reviewer)
        item = self.load(item_id)

        now = now_timestamp()
        with db.transaction() as tx:
            tx.run(
                """
                UPDATE rule_revisions
                SET status = 'rejected', reviewed_by = %s, review_notes = %s,
                    reviewed_at = %s, updated_at = %s
                WHERE id = %s
                """,
                (reviewer.id, notes, now, now, revision['id']),
            )
            record_rule_change(
                tx, item_id, 'rejected', reviewer.id,
                old_content=item['content'],
                new_content=revision['content'],
                description=notes,
            )

        log_activity(reviewer.id, 'reject', self.resource_type, item_id,
                     {'notes': notes, 'revision_id': revision['id']})
        return self.load(item_id)

    def after_reject(self, tx, item, reviewer, notes):
        record_rule_change(
            tx, item['id'], 'rejected', reviewer.id,
            old_content=item['content'],
            description=notes,
        )

    def notify_approved(self, item_id, reviewer):
        try:
            DiscordNotifier.notify_rule(item_id, 'approved', sent_by=reviewer.id)
        except Exception as e:
            current_app.logger.error(f"Discord notification for rule {item_id} failed: {e}")


class AnnouncementWorkflow(ContentWorkflow):
    table = 'announcements'
    label = 'Announcement'
    resource_type = 'announcement'

    def after_approve(self, tx, item, reviewer, notes, now):
        # Scheduled announcements are published by publish_due_announcements
        published_at = item.get('published_at')
        if item['announcement_type'] == 'immediate' and not published_at:
            published_at = now
        tx.run(
            "UPDATE announcements SET is_active = %s, published_at = %s WHERE id = %s",
            (True, published_at, item['id']),
        )


rule_workflow = RuleWorkflow()
announcement_workflow = AnnouncementWorkflow()


def pending_approvals() -> dict[str, list[dict]]:
    """Everything waiting for a moderator, oldest submission first."""
    rules = db.all(
        """
        SELECT r.*, c.name AS category_name, c.letter_code,
               su.username AS submitted_by_username
        FROM rules r
        JOIN categories c ON r.category_id = c.id
        LEFT JOIN staff_users su ON r.submitted_by = su.id
        WHERE r.status = 'pending_approval' AND r.is_active = %s
        ORDER BY r.submitted_at ASC, r.id ASC
        """,
        (True,),
    )
    announcements = db.all(
        """
        SELECT a.*, su.username AS submitted_by_username
        FROM announcements a
        LEFT JOIN staff_users su ON a.submitted_by = su.id
        WHERE a.status = 'pending_approval'
        ORDER BY a.submitted_at ASC, a.id ASC
        """
    )
    return {'rules': rules, 'rule_revisions': pending_revisions(), 'announcements': announcements}


__all__ = [
    'ensure_no_client_status',
    'submission_fields',
    'parse_mode',
    'ContentWorkflow',
    'RuleWorkflow',
    'AnnouncementWorkflow',
    'rule_workflow',
    'announcement_workflow',
    'pending_approvals',
]

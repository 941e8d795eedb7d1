"""Announcements: CRUD, scheduling and public visibility."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from flask import current_app

from prisonrp.errors import AuthorizationError, NotFoundError, ValidationError
from prisonrp.extensions import db
from prisonrp.models import AnnouncementType, ContentStatus, PermissionLevel, StaffUser
from prisonrp.services.audit import log_activity
from prisonrp.services.db import format_timestamp, now_timestamp, parse_timestamp
from prisonrp.services.discord import DiscordNotifier
from prisonrp.services.permissions import has_at_least
from prisonrp.services.validation import parse_bool
from prisonrp.services.workflow import submission_fields


def _parse_priority(value: Any) -> int:
    try:
        priority = int(value if value is not None else 1)
    except (TypeError, ValueError):
        raise ValidationError('priority must be an integer between 1 and 5') from None
    if not 1 <= priority <= 5:
        raise ValidationError('priority must be between 1 and 5')
    return priority


def _parse_type(value: Any) -> AnnouncementType:
    try:
        return AnnouncementType(value or AnnouncementType.IMMEDIATE.value)
    except ValueError:
        raise ValidationError("announcement_type must be 'immediate' or 'scheduled'") from None


def _parse_expiry(value: Any) -> int | None:
    if value in (None, ''):
        return None
    try:
        hours = int(value)
    except (TypeError, ValueError):
        raise ValidationError('auto_expire_hours must be a positive integer') from None
    if hours <= 0:
        raise ValidationError('auto_expire_hours must be a positive integer')
    return hours


def _parse_schedule(
    actor: StaffUser,
    announcement_type: AnnouncementType,
    scheduled_for: Any,
    now: datetime,
) -> str | None:
    if announcement_type is AnnouncementType.IMMEDIATE:
        return None
    if not has_at_least(actor.permission_level, PermissionLevel.MODERATOR):
        raise AuthorizationError('Only moderators and above can schedule announcements')
    if not scheduled_for:
        raise ValidationError('scheduled_for is required for scheduled announcements')
    try:
        when = parse_timestamp(str(scheduled_for).replace('Z', '+00:00'))
    except ValueError:
        raise ValidationError('scheduled_for must be an ISO 8601 timestamp') from None
    if when <= now:
        raise ValidationError('scheduled_for must be in the future')
    return format_timestamp(when)


def visible_at(announcement: dict, now: datetime) -> bool:
    """Whether an announcement shows on the public site at ``now``."""
    if announcement['status'] != ContentStatus.APPROVED.value or not announcement['is_active']:
        return False
    start = parse_timestamp(announcement.get('published_at'))
    if announcement['announcement_type'] == AnnouncementType.SCHEDULED.value:
        start = parse_timestamp(announcement.get('scheduled_for'))
        if start is None or start > now:
            return False
    hours = announcement.get('auto_expire_hours')
    if hours:
        start = start or parse_timestamp(announcement.get('created_at'))
        if start is not None and start + timedelta(hours=hours) <= now:
            return False
    return True


class AnnouncementService:
    """Service for announcement management."""

    @staticmethod
    def get(announcement_id: int) -> dict:
        announcement = db.get(
            """
            SELECT a.*, su.username AS submitted_by_username, rv.username AS reviewed_by_username
            FROM announcements a
            LEFT JOIN staff_users su ON a.submitted_by = su.id
            LEFT JOIN staff_users rv ON a.reviewed_by = rv.id
            WHERE a.id = %s
            """,
            (announcement_id,),
        )
        if not announcement:
            raise NotFoundError('Announcement not found')
        return announcement

    @staticmethod
    def create(actor: StaffUser, data: dict, mode: str | None = None) -> dict:
        title = (data.get('title') or '').strip()
        content = (data.get('content') or '').strip()
        if not title or not content:
            raise ValidationError('Title and content are required')

        now = datetime.now(timezone.utc)
        priority = _parse_priority(data.get('priority'))
        announcement_type = _parse_type(data.get('announcement_type'))
        scheduled_for = _parse_schedule(actor, announcement_type, data.get('scheduled_for'), now)
        auto_expire_hours = _parse_expiry(data.get('auto_expire_hours'))
        is_active = parse_bool(data.get('is_active'), 'is_active', default=True)
        fields = submission_fields(actor, mode)

        published_at = None
        if fields['status'] == ContentStatus.APPROVED.value and announcement_type is AnnouncementType.IMMEDIATE:
            published_at = format_timestamp(now)

        result = db.run(
            """
            INSERT INTO announcements
                (title, content, priority, is_active, status, announcement_type, scheduled_for,
                 auto_expire_hours, submitted_by, submitted_at, published_at, created_at, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                title, content, priority, is_active, fields['status'],
                announcement_type.value, scheduled_for, auto_expire_hours,
                fields['submitted_by'], fields['submitted_at'], published_at,
                format_timestamp(now), format_timestamp(now),
            ),
        )
        log_activity(actor.id, 'create', 'announcement', result.id,
                     {'title': title, 'status': fields['status'], 'type': announcement_type.value})
        if published_at:
            AnnouncementService._notify(result.id, actor)
        return AnnouncementService.get(result.id)

    @staticmethod
    def update(actor: StaffUser, announcement_id: int, data: dict, mode: str | None = None) -> dict:
        """Edit an announcement; like rules, an edit is a new submission cycle."""
        current = AnnouncementService.get(announcement_id)
        is_moderator = has_at_least(actor.permission_level, PermissionLevel.MODERATOR)
        if not is_moderator and current['submitted_by'] != actor.id:
            raise AuthorizationError('Editors can only edit their own announcements')

        title = (data.get('title', current['title']) or '').strip()
        content = (data.get('content', current['content']) or '').strip()
        if not title or not content:
            raise ValidationError('Title and content are required')

        now = datetime.now(timezone.utc)
        priority = _parse_priority(data.get('priority', current['priority']))
        announcement_type = _parse_type(data.get('announcement_type', current['announcement_type']))
        scheduled_for = current['scheduled_for']
        if 'scheduled_for' in data or 'announcement_type' in data:
            scheduled_for = _parse_schedule(actor, announcement_type, data.get('scheduled_for', scheduled_for), now)
        elif announcement_type is AnnouncementType.IMMEDIATE:
            scheduled_for = None
        auto_expire_hours = _parse_expiry(data.get('auto_expire_hours', current['auto_expire_hours']))
        is_active = parse_bool(data.get('is_active'), 'is_active', default=bool(current['is_active']))
        fields = submission_fields(actor, mode)

        published_at = current.get('published_at')
        if fields['status'] != ContentStatus.APPROVED.value:
            published_at = None
        elif announcement_type is AnnouncementType.IMMEDIATE and not published_at:
            published_at = format_timestamp(now)

        db.run(
            """
            UPDATE announcements
            SET title = %s, content = %s, priority = %s, is_active = %s, announcement_type = %s,
                scheduled_for = %s, auto_expire_hours = %s, status = %s, submitted_by = %s,
                submitted_at = %s, reviewed_by = NULL, review_notes = NULL, reviewed_at = NULL,
                published_at = %s, updated_at = %s
            WHERE id = %s
            """,
            (
                title, content, priority, is_active, announcement_type.value, scheduled_for,
                auto_expire_hours, fields['status'], fields['submitted_by'], fields['submitted_at'],
                published_at, format_timestamp(now), announcement_id,
            ),
        )
        log_activity(actor.id, 'update', 'announcement', announcement_id,
                     {'title': title, 'status': fields['status']})
        return AnnouncementService.get(announcement_id)

    @staticmethod
    def delete(actor: StaffUser, announcement_id: int) -> None:
        announcement = AnnouncementService.get(announcement_id)
        db.run("DELETE FROM announcements WHERE id = %s", (announcement_id,))
        log_activity(actor.id, 'delete', 'announcement', announcement_id, {'title': announcement['title']})

    @staticmethod
    def list_public(now: datetime | None = None) -> list[dict]:
        """Approved, active, started and unexpired announcements; highest priority first."""
        now = now or datetime.now(timezone.utc)
        rows = db.all(
            """
            SELECT id, title, content, priority, announcement_type, scheduled_for,
                   auto_expire_hours, published_at, created_at, updated_at, status, is_active
            FROM announcements
            WHERE status = 'approved' AND is_active = %s
            ORDER BY priority DESC, created_at DESC, id DESC
            """,
            (True,),
        )
        return [row for row in rows if visible_at(row, now)]

    @staticmethod
    def list_staff(actor: StaffUser, status: str | None = None) -> list[dict]:
        clauses = []
        params: list[Any] = []
        if not has_at_least(actor.permission_level, PermissionLevel.MODERATOR):
            clauses.append("(a.status = 'approved' OR a.submitted_by = %s)")
            params.append(actor.id)
        if status:
            if status not in {s.value for s in ContentStatus}:
                raise ValidationError(f'Unknown status: {status}')
            clauses.append("a.status = %s")
            params.append(status)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return db.all(
            f"""
            SELECT a.*, su.username AS submitted_by_username
            FROM announcements a
            LEFT JOIN staff_users su ON a.submitted_by = su.id
            {where}
            ORDER BY a.created_at DESC, a.id DESC
            """,
            params,
        )

    @staticmethod
    def list_scheduled() -> list[dict]:
        """Scheduled announcements that have not been published yet."""
        return db.all(
            """
            SELECT a.*, su.username AS submitted_by_username
            FROM announcements a
            LEFT JOIN staff_users su ON a.submitted_by = su.id
            WHERE a.announcement_type = 'scheduled' AND a.published_at IS NULL
            ORDER BY a.scheduled_for ASC
            """
        )

    @staticmethod
    def publish_due(now: datetime | None = None) -> list[dict]:
        """Stamp ``published_at`` on approved scheduled announcements whose time has come."""
        now = now or datetime.now(timezone.utc)
        candidates = db.all(
            """
            SELECT * FROM announcements
            WHERE announcement_type = 'scheduled' AND status = 'approved'
              AND is_active = %s AND published_at IS NULL
            ORDER BY scheduled_for ASC
            """,
            (True,),
        )
        published = []
        for announcement in candidates:
            when = parse_timestamp(announcement['scheduled_for'])
            if when is None or when > now:
                continue
            db.run(
                "UPDATE announcements SET published_at = %s WHERE id = %s AND published_at IS NULL",
                (format_timestamp(now), announcement['id']),
            )
            published.append({
                'id': announcement['id'],
                'title': announcement['title'],
                'scheduled_for': announcement['scheduled_for'],
            })
            AnnouncementService._notify(announcement['id'], None)
        if published:
            current_app.logger.info(f"Published {len(published)} scheduled announcement(s)")
        return published

    @staticmethod
    def publish_now(actor: StaffUser, announcement_id: int) -> dict:
        """Publish a scheduled announcement immediately."""
        announcement = AnnouncementService.get(announcement_id)
        if announcement['announcement_type'] != AnnouncementType.SCHEDULED.value or announcement['published_at']:
            raise NotFoundError('Scheduled announcement not found or already published')
        if announcement['status'] != ContentStatus.APPROVED.value:
            raise ValidationError('Only approved announcements can be published')
        now = now_timestamp()
        db.run(
            "UPDATE announcements SET scheduled_for = %s, published_at = %s, updated_at = %s WHERE id = %s",
            (now, now, now, announcement_id),
        )
        log_activity(actor.id, 'publish', 'announcement', announcement_id, {'title': announcement['title']})
        AnnouncementService._notify(announcement_id, actor)
        return AnnouncementService.get(announcement_id)

    @staticmethod
    def _notify(announcement_id: int, actor: StaffUser | None) -> None:
        try:
            DiscordNotifier.notify_announcement(announcement_id, sent_by=actor.id if actor else None)
        except Exception as e:
            current_app.logger.error(f"Discord notification for announcement {announcement_id} failed: {e}")


__all__ = ['AnnouncementService', 'visible_at']

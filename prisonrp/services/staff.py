"""Staff account management and login completion."""
from __future__ import annotations

import re
from typing import Any

from prisonrp.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from prisonrp.extensions import db
from prisonrp.models import PermissionLevel, StaffUser
from prisonrp.services.audit import log_activity
from prisonrp.services.db import ErrorKind, StorageError, now_timestamp
from prisonrp.services.permissions import assignable_levels, can_manage
from prisonrp.services.validation import parse_bool

STEAM_ID_PATTERN = re.compile(r'^\d{17}$')
DISCORD_ID_PATTERN = re.compile(r'^\d{15,20}$')


def _parse_level(value: Any) -> PermissionLevel:
    try:
        return PermissionLevel.parse(value)
    except ValueError:
        allowed = ', '.join(level.value for level in PermissionLevel)
        raise ValidationError(f'permission_level must be one of: {allowed}') from None


def _require_assignable(actor: StaffUser, level: PermissionLevel) -> None:
    allowed = assignable_levels(actor.permission_level)
    if level not in allowed:
        names = ', '.join(item.value for item in allowed) or 'none'
        raise AuthorizationError(f'You cannot assign {level.value} permission level. Valid levels: {names}')


class StaffService:
    """Service for staff accounts."""

    @staticmethod
    def get_user(user_id: int) -> dict:
        user = db.get("SELECT * FROM staff_users WHERE id = %s", (user_id,))
        if not user:
            raise NotFoundError('User not found')
        return user

    @staticmethod
    def load_user(user_id: Any) -> StaffUser | None:
        """Session loader: active accounts only."""
        try:
            user_id = int(user_id)
        except (TypeError, ValueError):
            return None
        row = db.get("SELECT * FROM staff_users WHERE id = %s AND is_active = %s", (user_id, True))
        return StaffUser.from_row(row) if row else None

    @staticmethod
    def list_users(actor: StaffUser) -> list[dict]:
        """The actor's own account plus every account they can manage."""
        rows = db.all(
            """
            SELECT su.*,
                   (SELECT COUNT(*) FROM staff_activity_logs l WHERE l.staff_user_id = su.id) AS total_actions
            FROM staff_users su
            ORDER BY su.created_at DESC, su.id DESC
            """
        )
        return [
            row for row in rows
            if row['id'] == actor.id or can_manage(actor.permission_level, row['permission_level'])
        ]

    @staticmethod
    def create_user(
        actor: StaffUser,
        username: str | None,
        permission_level: Any,
        steam_id: str | None = None,
        discord_id: str | None = None,
    ) -> dict:
        username = (username or '').strip()
        steam_id = (steam_id or '').strip() or None
        discord_id = (discord_id or '').strip() or None
        if not username:
            raise ValidationError('username is required')
        if not steam_id and not discord_id:
            raise ValidationError('A steam_id or discord_id is required')
        if steam_id and not STEAM_ID_PATTERN.match(steam_id):
            raise ValidationError('steam_id must be a 17-digit SteamID64')
        if discord_id and not DISCORD_ID_PATTERN.match(discord_id):
            raise ValidationError('discord_id must be a numeric Discord snowflake')

        level = _parse_level(permission_level)
        _require_assignable(actor, level)

        existing = db.get(
            "SELECT id FROM staff_users WHERE steam_id = %s OR discord_id = %s",
            (steam_id, discord_id),
        )
        if existing:
            raise ConflictError('User already exists')

        try:
            result = db.run(
                """
                INSERT INTO staff_users (steam_id, discord_id, username, permission_level, is_active)
                VALUES (%s, %s, %s, %s, %s)
                """,
                (steam_id, discord_id, username, level.value, True),
            )
        except StorageError as exc:
            if exc.kind is ErrorKind.UNIQUE_VIOLATION:
                raise ConflictError('User already exists') from exc
            raise

        log_activity(actor.id, 'create', 'user', result.id, {
            'username': username,
            'steam_id': steam_id,
            'discord_id': discord_id,
            'permission_level': level.value,
        })
        return StaffService.get_user(result.id)

    @staticmethod
    def update_user(actor: StaffUser, user_id: int, permission_level: Any = None,
                    is_active: bool | None = None) -> dict:
        target = StaffService.get_user(user_id)
        if not can_manage(actor.permission_level, target['permission_level']):
            raise AuthorizationError('You cannot manage users with this permission level')

        level = PermissionLevel.parse(target['permission_level'])
        if permission_level is not None:
            level = _parse_level(permission_level)
            if level.value != target['permission_level']:
                _require_assignable(actor, level)

        active = parse_bool(is_active, 'is_active', default=bool(target['is_active']))
        if target['id'] == actor.id and not active:
            raise ValidationError('Cannot deactivate your own account')

        db.run(
            "UPDATE staff_users SET permission_level = %s, is_active = %s WHERE id = %s",
            (level.value, active, user_id),
        )
        log_activity(actor.id, 'update', 'user', user_id, {
            'old_permission_level': target['permission_level'],
            'new_permission_level': level.value,
            'old_is_active': bool(target['is_active']),
            'new_is_active': active,
        })
        return StaffService.get_user(user_id)

    @staticmethod
    def deactivate_user(actor: StaffUser, user_id: int) -> None:
        """Deactivate rather than delete so the audit trail keeps its actor."""
        if int(user_id) == actor.id:
            raise ValidationError('Cannot deactivate your own account')
        target = StaffService.get_user(user_id)
        if not can_manage(actor.permission_level, target['permission_level']):
            raise AuthorizationError('You cannot manage users with this permission level')
        db.run("UPDATE staff_users SET is_active = %s WHERE id = %s", (False, user_id))
        log_activity(actor.id, 'delete', 'user', user_id, {
            'username': target['username'],
            'permission_level': target['permission_level'],
        })

    @staticmethod
    def complete_login(
        steam_id: str | None = None,
        discord_id: str | None = None,
        username: str | None = None,
    ) -> StaffUser:
        """Called by the OAuth callback once the provider has verified the identity."""
        if steam_id:
            row = db.get("SELECT * FROM staff_users WHERE steam_id = %s", (steam_id,))
        elif discord_id:
            row = db.get("SELECT * FROM staff_users WHERE discord_id = %s", (discord_id,))
        else:
            raise ValidationError('An identity is required to log in')

        if not row or not row['is_active']:
            log_activity(None, 'login', 'auth', None,
                         {'steam_id': steam_id, 'discord_id': discord_id},
                         success=False, error_message='Not an active staff member')
            raise AuthorizationError('You are not registered as active staff')

        name = (username or '').strip() or row['username']
        db.run(
            "UPDATE staff_users SET last_login = %s, username = %s WHERE id = %s",
            (now_timestamp(), name, row['id']),
        )
        log_activity(row['id'], 'login', 'auth', row['id'])
        return StaffUser.from_row(StaffService.get_user(row['id']))


__all__ = ['StaffService', 'STEAM_ID_PATTERN']

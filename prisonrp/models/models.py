from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any

from flask_login import UserMixin


class PermissionLevel(Enum):
    EDITOR = "editor"
    MODERATOR = "moderator"
    ADMIN = "admin"
    OWNER = "owner"

    @property
    def rank(self) -> int:
        return _PERMISSION_ORDER.index(self)

    @classmethod
    def parse(cls, value: "PermissionLevel | str") -> "PermissionLevel":
        if isinstance(value, cls):
            return value
        return cls(str(value).lower())


_PERMISSION_ORDER = [
    PermissionLevel.EDITOR,
    PermissionLevel.MODERATOR,
    PermissionLevel.ADMIN,
    PermissionLevel.OWNER,
]


class ContentStatus(Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"


class SubmissionMode(Enum):
    DRAFT = "draft"
    SUBMIT = "submit"


class AnnouncementType(Enum):
    IMMEDIATE = "immediate"
    SCHEDULED = "scheduled"


class ReferenceType(Enum):
    RELATED = "related"
    CLARIFIES = "clarifies"
    SUPERSEDES = "supersedes"
    SUPERSEDED_BY = "superseded_by"
    CONFLICTS_WITH = "conflicts_with"


class StaffUser(UserMixin):
    """Authenticated staff member, loaded from a ``staff_users`` row."""

    def __init__(
        self,
        id: int,
        username: str,
        permission_level: PermissionLevel | str,
        steam_id: str | None = None,
        discord_id: str | None = None,
        active: bool = True,
        last_login: Any = None,
    ) -> None:
        self.id = id
        self.username = username
        self.permission_level = PermissionLevel.parse(permission_level)
        self.steam_id = steam_id
        self.discord_id = discord_id
        self.active = bool(active)
        self.last_login = last_login

    @classmethod
    def from_row(cls, row: dict) -> "StaffUser":
        return cls(
            id=row['id'],
            username=row['username'],
            permission_level=row['permission_level'],
            steam_id=row.get('steam_id'),
            discord_id=row.get('discord_id'),
            active=row.get('is_active', True),
            last_login=row.get('last_login'),
        )

    @property
    def is_active(self) -> bool:
        return self.active

    def get_id(self) -> str:
        return str(self.id)

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'username': self.username,
            'steamId': self.steam_id,
            'discordId': self.discord_id,
            'permissionLevel': self.permission_level.value,
        }

    def __repr__(self) -> str:
        return f"<StaffUser {self.id} {self.username} ({self.permission_level.value})>"


BOOLEAN_FIELDS = {
    'is_active',
    'is_bidirectional',
    'success',
    'rules_enabled',
    'announcements_enabled',
}


def searchable_text(full_code: str, title: str | None, content: str) -> str:
    """Lower-cased text the search bar matches against."""
    return ' '.join(part for part in (full_code, title or '', content) if part).lower()


def load_images(value: Any) -> list[dict]:
    """Decode a stored images column; anything malformed reads as no images."""
    if not value:
        return []
    if isinstance(value, list):
        return value
    try:
        images = json.loads(value)
    except (TypeError, ValueError):
        return []
    return images if isinstance(images, list) else []


def serialize(row: dict | None) -> dict | None:
    """Normalize a database row for JSON: ISO timestamps, real booleans, decoded images."""
    if row is None:
        return None
    data = {}
    for key, value in row.items():
        if isinstance(value, datetime):
            value = value.isoformat()
        elif key in BOOLEAN_FIELDS and value is not None:
            value = bool(value)
        elif key == 'images':
            value = load_images(value)
        data[key] = value
    return data


def serialize_all(rows: list[dict]) -> list[dict]:
    return [serialize(row) for row in rows]

"""Permission hierarchy for staff accounts.

Levels form a total order ``editor < moderator < admin < owner``. These
helpers are the only place that decides which status a submission starts
in and who may manage whom; routes and services consult them rather than
comparing level strings themselves.
"""

from __future__ import annotations

from prisonrp.errors import ValidationError
from prisonrp.models import ContentStatus, PermissionLevel, SubmissionMode

ALL_LEVELS = [
    PermissionLevel.EDITOR,
    PermissionLevel.MODERATOR,
    PermissionLevel.ADMIN,
    PermissionLevel.OWNER,
]


def has_at_least(actor: PermissionLevel | str, required: PermissionLevel | str) -> bool:
    return PermissionLevel.parse(actor).rank >= PermissionLevel.parse(required).rank


def can_manage(actor: PermissionLevel | str, target: PermissionLevel | str) -> bool:
    """Whether ``actor`` may edit or deactivate an account at ``target`` level."""
    actor = PermissionLevel.parse(actor)
    target = PermissionLevel.parse(target)
    if actor is PermissionLevel.OWNER:
        return True
    # Only owners manage admins and owners
    if actor is PermissionLevel.ADMIN and target in (PermissionLevel.ADMIN, PermissionLevel.OWNER):
        return False
    return actor.rank >= target.rank


def assignable_levels(actor: PermissionLevel | str) -> list[PermissionLevel]:
    """Levels ``actor`` may grant when creating or editing staff accounts."""
    actor = PermissionLevel.parse(actor)
    if actor is PermissionLevel.OWNER:
        return list(ALL_LEVELS)
    if actor is PermissionLevel.ADMIN:
        return [PermissionLevel.EDITOR, PermissionLevel.MODERATOR]
    return []


def parse_mode(value: SubmissionMode | str | None) -> SubmissionMode:
    if value is None or value == '':
        return SubmissionMode.SUBMIT
    if isinstance(value, SubmissionMode):
        return value
    try:
        return SubmissionMode(str(value).lower())
    except ValueError:
        raise ValidationError("mode must be 'draft' or 'submit'")


def starting_status(actor: PermissionLevel | str, mode: SubmissionMode | str | None) -> ContentStatus:
    """Status a new or re-edited item enters for this submitter and mode."""
    if parse_mode(mode) is SubmissionMode.DRAFT:
        return ContentStatus.DRAFT
    if PermissionLevel.parse(actor) is PermissionLevel.EDITOR:
        return ContentStatus.PENDING_APPROVAL
    return ContentStatus.APPROVED


__all__ = [
    'ALL_LEVELS',
    'has_at_least',
    'can_manage',
    'assignable_levels',
    'parse_mode',
    'starting_status',
]

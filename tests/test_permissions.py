import pytest

from prisonrp.errors import ValidationError
from prisonrp.models import ContentStatus, PermissionLevel, SubmissionMode
from prisonrp.services.permissions import (
    assignable_levels,
    can_manage,
    has_at_least,
    parse_mode,
    starting_status,
)


def test_levels_are_totally_ordered():
    order = ['editor', 'moderator', 'admin', 'owner']
    ranks = [PermissionLevel.parse(level).rank for level in order]
    assert ranks == sorted(ranks)
    assert has_at_least('admin', 'moderator')
    assert not has_at_least('editor', 'moderator')


def test_unknown_level_is_rejected():
    with pytest.raises(ValueError):
        PermissionLevel.parse('superuser')


@pytest.mark.parametrize('actor, mode, expected', [
    ('editor', 'draft', ContentStatus.DRAFT),
    ('editor', 'submit', ContentStatus.PENDING_APPROVAL),
    ('moderator', 'submit', ContentStatus.APPROVED),
    ('admin', None, ContentStatus.APPROVED),
    ('owner', 'draft', ContentStatus.DRAFT),
])
def test_starting_status(actor, mode, expected):
    assert starting_status(actor, mode) is expected


def test_parse_mode():
    assert parse_mode(None) is SubmissionMode.SUBMIT
    assert parse_mode('DRAFT') is SubmissionMode.DRAFT
    with pytest.raises(ValidationError):
        parse_mode('approved')


class TestManagement:
    def test_owner_manages_everyone(self):
        for level in ('editor', 'moderator', 'admin', 'owner'):
            assert can_manage('owner', level)

    def test_admin_cannot_manage_admins_or_owners(self):
        assert can_manage('admin', 'moderator')
        assert can_manage('admin', 'editor')
        assert not can_manage('admin', 'admin')
        assert not can_manage('admin', 'owner')

    def test_editor_cannot_manage_moderators(self):
        assert not can_manage('editor', 'moderator')

    def test_assignable_levels(self):
        assert assignable_levels('owner') == [
            PermissionLevel.EDITOR, PermissionLevel.MODERATOR, PermissionLevel.ADMIN, PermissionLevel.OWNER,
        ]
        assert assignable_levels('admin') == [PermissionLevel.EDITOR, PermissionLevel.MODERATOR]
        assert assignable_levels('moderator') == []

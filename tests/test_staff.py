import pytest

from prisonrp.errors import AuthorizationError, ConflictError, ValidationError
from prisonrp.extensions import db
from prisonrp.services.staff import StaffService


class TestCreateUser:
    def test_admin_creates_moderator(self, ctx, staff):
        user = StaffService.create_user(staff['admin'], 'New Mod', 'moderator', steam_id='76561198000000200')
        assert user['permission_level'] == 'moderator'
        assert user['is_active']

    @pytest.mark.parametrize('steam_id', ['123', '7656119800000020A', '765611980000002000'])
    def test_malformed_steam_id(self, ctx, staff, steam_id):
        with pytest.raises(ValidationError):
            StaffService.create_user(staff['admin'], 'Bad', 'editor', steam_id=steam_id)

    def test_identity_is_required(self, ctx, staff):
        with pytest.raises(ValidationError):
            StaffService.create_user(staff['admin'], 'Nobody', 'editor')

    def test_discord_only_account(self, ctx, staff):
        user = StaffService.create_user(staff['owner'], 'Discordian', 'editor', discord_id='123456789012345678')
        assert user['steam_id'] is None

    def test_admin_cannot_grant_admin(self, ctx, staff):
        with pytest.raises(AuthorizationError):
            StaffService.create_user(staff['admin'], 'Peer', 'admin', steam_id='76561198000000201')

    def test_owner_can_grant_admin(self, ctx, staff):
        user = StaffService.create_user(staff['owner'], 'Peer', 'admin', steam_id='76561198000000201')
        assert user['permission_level'] == 'admin'

    def test_duplicate_identity_conflicts(self, ctx, staff):
        with pytest.raises(ConflictError):
            StaffService.create_user(staff['owner'], 'Copy', 'editor', steam_id=staff['editor'].steam_id)


class TestManageUsers:
    def test_admin_cannot_edit_another_admin(self, ctx, staff):
        other = StaffService.create_user(staff['owner'], 'Admin Two', 'admin', steam_id='76561198000000202')
        with pytest.raises(AuthorizationError):
            StaffService.update_user(staff['admin'], other['id'], permission_level='editor')
        with pytest.raises(AuthorizationError):
            StaffService.deactivate_user(staff['admin'], other['id'])

    def test_admin_demotes_moderator(self, ctx, staff):
        updated = StaffService.update_user(staff['admin'], staff['moderator'].id, permission_level='editor')
        assert updated['permission_level'] == 'editor'

    @pytest.mark.parametrize('level', ['editor', 'moderator', 'admin', 'owner'])
    def test_self_deactivation_always_fails(self, ctx, staff, level):
        actor = staff[level]
        with pytest.raises(ValidationError):
            StaffService.deactivate_user(actor, actor.id)
        assert db.get("SELECT is_active FROM staff_users WHERE id = %s", (actor.id,))['is_active']

    def test_owner_cannot_switch_themselves_off(self, ctx, staff):
        with pytest.raises(ValidationError):
            StaffService.update_user(staff['owner'], staff['owner'].id, is_active=False)

    def test_active_flag_must_be_a_boolean(self, ctx, staff):
        with pytest.raises(ValidationError):
            StaffService.update_user(staff['admin'], staff['editor'].id, is_active='false')
        with pytest.raises(ValidationError):
            StaffService.update_user(staff['admin'], staff['editor'].id, is_active=0)
        assert StaffService.get_user(staff['editor'].id)['is_active']

    def test_deactivated_users_cannot_sign_in(self, ctx, staff):
        StaffService.deactivate_user(staff['admin'], staff['editor'].id)
        assert StaffService.load_user(staff['editor'].id) is None
        with pytest.raises(AuthorizationError):
            StaffService.complete_login(steam_id=staff['editor'].steam_id)

    def test_list_shows_self_and_manageable_accounts(self, ctx, staff):
        names = {row['username'] for row in StaffService.list_users(staff['admin'])}
        assert names == {'Ada Admin', 'Mona Moderator', 'Eddie Editor'}


def test_complete_login_stamps_last_login(ctx, staff):
    user = StaffService.complete_login(steam_id=staff['moderator'].steam_id, username='Mona M.')
    assert user.username == 'Mona M.'
    row = db.get("SELECT last_login FROM staff_users WHERE id = %s", (user.id,))
    assert row['last_login'] is not None


def test_unknown_identity_cannot_sign_in(ctx):
    with pytest.raises(AuthorizationError):
        StaffService.complete_login(steam_id='76561198999999999')

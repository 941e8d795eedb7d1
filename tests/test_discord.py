import pytest
import requests

from prisonrp.errors import NotFoundError, ValidationError
from prisonrp.extensions import db
from prisonrp.services.discord import DiscordNotifier, DiscordSettingsService, is_valid_webhook_url
from prisonrp.services.rules import RuleService
from prisonrp.services.workflow import rule_workflow

RULES_HOOK = 'https://discord.com/api/webhooks/123456/abc-DEF_token'
ANNOUNCEMENTS_HOOK = 'https://discordapp.com/api/webhooks/654321/other-token'


class FakeResponse:
    def __init__(self, status_code=204, text=''):
        self.status_code = status_code
        self.text = text


@pytest.fixture()
def posts(monkeypatch):
    """Capture webhook posts; set ``posts.response`` or ``posts.error`` to change the outcome."""
    class Recorder(list):
        response = FakeResponse()
        error = None

    recorder = Recorder()

    def fake_post(url, json=None, timeout=None):
        recorder.append((url, json))
        if recorder.error:
            raise recorder.error
        return recorder.response

    monkeypatch.setattr('prisonrp.services.discord.requests.post', fake_post)
    return recorder


@pytest.fixture()
def enabled(ctx, staff):
    return DiscordSettingsService.update_settings({
        'rulesWebhookUrl': RULES_HOOK,
        'announcementsWebhookUrl': ANNOUNCEMENTS_HOOK,
        'rulesEnabled': True,
        'announcementsEnabled': True,
    }, updated_by=staff['admin'].id)


def test_webhook_url_validation():
    assert is_valid_webhook_url(RULES_HOOK)
    assert is_valid_webhook_url(ANNOUNCEMENTS_HOOK)
    assert not is_valid_webhook_url('http://discord.com/api/webhooks/1/x')
    assert not is_valid_webhook_url('https://evil.example/api/webhooks/1/x')


class TestSettings:
    def test_defaults_before_configuration(self, ctx):
        settings = DiscordSettingsService.get_settings()
        assert settings['rulesEnabled'] is False
        assert settings['embedColor'] == '#677bae'

    def test_invalid_url_is_rejected(self, ctx):
        with pytest.raises(ValidationError):
            DiscordSettingsService.update_settings({'rulesWebhookUrl': 'https://example.com/hook'})

    def test_invalid_color_is_rejected(self, ctx):
        with pytest.raises(ValidationError):
            DiscordSettingsService.update_settings({'embedColor': 'blue'})

    def test_enabled_flags_must_be_booleans(self, ctx):
        with pytest.raises(ValidationError, match='rulesEnabled'):
            DiscordSettingsService.update_settings({'rulesWebhookUrl': RULES_HOOK, 'rulesEnabled': 'false'})
        assert DiscordSettingsService.get_settings()['rulesEnabled'] is False

    def test_update_is_an_upsert(self, enabled):
        assert enabled['rulesWebhookUrl'] == RULES_HOOK
        DiscordSettingsService.update_settings({'rulesWebhookUrl': RULES_HOOK, 'embedColor': '#ff0000'})
        settings = DiscordSettingsService.get_settings()
        assert settings['embedColor'] == '#ff0000'
        assert settings['announcementsWebhookUrl'] == ''
        assert db.get("SELECT COUNT(*) AS count FROM discord_settings")['count'] == 1


class TestNotifications:
    def test_approved_rule_is_posted(self, enabled, posts, staff, category):
        rule = RuleService.create_rule(staff['editor'], category['id'], 'No RDM', 'Do not.')
        assert posts == []
        rule_workflow.approve(rule['id'], staff['moderator'])

        url, payload = posts[0]
        assert url == RULES_HOOK
        embed = payload['embeds'][0]
        assert embed['title'] == 'Rule approved: A.1 No RDM'
        assert embed['url'].endswith('/rules/A')
        assert embed['footer']['text'] == 'General Server Rules'

    def test_disabled_webhook_sends_nothing(self, ctx, staff, category, posts):
        DiscordSettingsService.update_settings({'rulesWebhookUrl': RULES_HOOK, 'rulesEnabled': False})
        rule = RuleService.create_rule(staff['editor'], category['id'], 'Quiet', 'x')
        rule_workflow.approve(rule['id'], staff['moderator'])
        assert posts == []

    def test_failures_are_recorded_not_raised(self, enabled, posts, staff, category):
        posts.error = requests.ConnectionError('connection refused')
        rule = RuleService.create_rule(staff['editor'], category['id'], 'No RDM', 'Do not.')
        approved = rule_workflow.approve(rule['id'], staff['moderator'])
        assert approved['status'] == 'approved'

        message = DiscordSettingsService.recent_messages()[0]
        assert not message['success']
        assert 'connection refused' in message['error_message']

    def test_http_errors_are_recorded(self, enabled, posts, staff, category):
        posts.response = FakeResponse(status_code=404, text='Unknown Webhook')
        rule = RuleService.create_rule(staff['admin'], category['id'], 'Live', 'x')
        assert DiscordNotifier.send_rule(rule['id'], sent_by=staff['admin'].id) is False
        message = DiscordSettingsService.recent_messages()[0]
        assert message['status_code'] == 404
        assert message['sent_by_username'] == 'Ada Admin'

    def test_manual_send_ignores_the_enabled_flag(self, ctx, staff, category, posts):
        DiscordSettingsService.update_settings({'rulesWebhookUrl': RULES_HOOK, 'rulesEnabled': False})
        rule = RuleService.create_rule(staff['admin'], category['id'], 'Live', 'x')
        assert DiscordNotifier.send_rule(rule['id']) is True
        assert len(posts) == 1

    def test_manual_send_needs_a_webhook(self, ctx, staff, category):
        rule = RuleService.create_rule(staff['admin'], category['id'], 'Live', 'x')
        with pytest.raises(ValidationError):
            DiscordNotifier.send_rule(rule['id'])
        with pytest.raises(NotFoundError):
            DiscordNotifier.send_rule(999)

    def test_unapproved_rules_are_never_posted(self, enabled, posts, staff, category):
        rule = RuleService.create_rule(staff['editor'], category['id'], 'Pending', 'x')
        assert DiscordNotifier.send_rule(rule['id']) is False
        assert posts == []

    def test_webhook_test_message(self, enabled, posts):
        assert DiscordNotifier.send_test('announcements') is True
        assert posts[0][0] == ANNOUNCEMENTS_HOOK
        with pytest.raises(ValidationError):
            DiscordNotifier.send_test('everything')


class TestDiscordApi:
    def test_settings_are_admin_only(self, client, login, staff):
        login(staff['moderator'])
        assert client.get('/api/discord/settings').status_code == 403
        login(staff['admin'])
        response = client.put('/api/discord/settings', json={'rulesWebhookUrl': RULES_HOOK, 'rulesEnabled': True})
        assert response.get_json()['rulesEnabled'] is True

    def test_failed_send_is_a_502(self, client, login, staff, category, posts, app):
        posts.response = FakeResponse(status_code=500, text='oops')
        login(staff['admin'])
        client.put('/api/discord/settings', json={'rulesWebhookUrl': RULES_HOOK})
        with app.app_context():
            rule = RuleService.create_rule(staff['admin'], category['id'], 'Live', 'x')
        response = client.post(f"/api/discord/rules/{rule['id']}/send")
        assert response.status_code == 502
        assert response.get_json()['success'] is False
        assert client.get('/api/discord/messages').get_json()[0]['success'] is False

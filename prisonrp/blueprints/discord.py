"""Discord webhook settings and manual sends."""

from __future__ import annotations

from flask import Blueprint, jsonify

from prisonrp.auth import admin_required, moderator_required
from prisonrp.blueprints.common import acting_user, first_of, int_arg, json_body
from prisonrp.models import serialize_all
from prisonrp.services.audit import log_activity
from prisonrp.services.discord import DiscordNotifier, DiscordSettingsService

discord_bp = Blueprint('discord', __name__, url_prefix='/api/discord')


def delivery_response(sent: bool, what: str):
    if sent:
        return jsonify({'success': True, 'message': f'{what} sent to Discord'})
    return jsonify({'success': False, 'error': f'Failed to send {what.lower()} to Discord'}), 502


@discord_bp.route('/settings', methods=['GET'])
@admin_required
def get_settings():
    return jsonify(DiscordSettingsService.get_settings())


@discord_bp.route('/settings', methods=['PUT'])
@admin_required
def update_settings():
    user = acting_user()
    settings = DiscordSettingsService.update_settings(json_body(), updated_by=user.id)
    log_activity(user.id, 'update', 'discord_settings', 1, {
        'rulesEnabled': settings['rulesEnabled'],
        'announcementsEnabled': settings['announcementsEnabled'],
    })
    return jsonify(settings)


@discord_bp.route('/webhook/test', methods=['POST'])
@admin_required
def test_webhook():
    data = json_body()
    webhook_type = first_of(data, 'type', 'webhookType', default='rules')
    return delivery_response(DiscordNotifier.send_test(webhook_type, sent_by=acting_user().id), 'Test message')


@discord_bp.route('/messages', methods=['GET'])
@admin_required
def messages():
    return jsonify(serialize_all(DiscordSettingsService.recent_messages(int_arg('limit', 50, minimum=1, maximum=200))))


@discord_bp.route('/rules/<int:rule_id>/send', methods=['POST'])
@moderator_required
def send_rule(rule_id):
    return delivery_response(DiscordNotifier.send_rule(rule_id, sent_by=acting_user().id), 'Rule')


@discord_bp.route('/announcements/<int:announcement_id>/send', methods=['POST'])
@moderator_required
def send_announcement(announcement_id):
    return delivery_response(
        DiscordNotifier.send_announcement(announcement_id, sent_by=acting_user().id), 'Announcement',
    )

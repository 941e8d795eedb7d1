"""Discord webhook notifications for approved rules and announcements."""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

import requests
from flask import current_app

from prisonrp.errors import NotFoundError, ValidationError
from prisonrp.extensions import db
from prisonrp.services.db import now_timestamp
from prisonrp.services.validation import parse_bool

WEBHOOK_URL_PATTERN = re.compile(r'^https://(?:discord|discordapp)\.com/api/webhooks/\d+/[\w-]+$')
DEFAULT_EMBED_COLOR = '#677bae'
MAX_EMBED_DESCRIPTION = 4000


def is_valid_webhook_url(url: str) -> bool:
    return bool(WEBHOOK_URL_PATTERN.match(url or ''))


def _color_value(color: str | None) -> int:
    try:
        return int((color or DEFAULT_EMBED_COLOR).lstrip('#'), 16)
    except ValueError:
        return int(DEFAULT_EMBED_COLOR.lstrip('#'), 16)


class DiscordSettingsService:
    """Single-row webhook configuration (``discord_settings.id = 1``)."""

    @staticmethod
    def get_settings() -> dict:
        row = db.get("SELECT * FROM discord_settings WHERE id = 1")
        if not row:
            return {
                'rulesWebhookUrl': '',
                'announcementsWebhookUrl': '',
                'rulesEnabled': False,
                'announcementsEnabled': False,
                'embedColor': DEFAULT_EMBED_COLOR,
            }
        return {
            'rulesWebhookUrl': row['rules_webhook_url'] or '',
            'announcementsWebhookUrl': row['announcements_webhook_url'] or '',
            'rulesEnabled': bool(row['rules_enabled']),
            'announcementsEnabled': bool(row['announcements_enabled']),
            'embedColor': row['embed_color'] or DEFAULT_EMBED_COLOR,
        }

    @staticmethod
    def update_settings(data: dict, updated_by: int | None = None) -> dict:
        rules_url = (data.get('rulesWebhookUrl') or '').strip() or None
        announcements_url = (data.get('announcementsWebhookUrl') or '').strip() or None

        if rules_url and not is_valid_webhook_url(rules_url):
            raise ValidationError('Invalid rules webhook URL')
        if announcements_url and not is_valid_webhook_url(announcements_url):
            raise ValidationError('Invalid announcements webhook URL')

        embed_color = data.get('embedColor') or DEFAULT_EMBED_COLOR
        if not re.match(r'^#[0-9a-fA-F]{6}$', embed_color):
            raise ValidationError('embedColor must be a hex color like #677bae')

        values = (
            rules_url,
            announcements_url,
            parse_bool(data.get('rulesEnabled'), 'rulesEnabled'),
            parse_bool(data.get('announcementsEnabled'), 'announcementsEnabled'),
            embed_color,
            updated_by,
            now_timestamp(),
        )
        with db.transaction() as tx:
            exists = tx.get("SELECT id FROM discord_settings WHERE id = 1")
            if exists:
                tx.run(
                    """
                    UPDATE discord_settings
                    SET rules_webhook_url = %s, announcements_webhook_url = %s,
                        rules_enabled = %s, announcements_enabled = %s,
                        embed_color = %s, updated_by = %s, updated_at = %s
                    WHERE id = 1
                    """,
                    values,
                )
            else:
                tx.run(
                    """
                    INSERT INTO discord_settings
                        (id, rules_webhook_url, announcements_webhook_url, rules_enabled,
                         announcements_enabled, embed_color, updated_by, updated_at)
                    VALUES (1, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    values,
                )
        return DiscordSettingsService.get_settings()

    @staticmethod
    def recent_messages(limit: int = 50) -> list[dict]:
        return db.all(
            """
            SELECT m.*, su.username AS sent_by_username
            FROM discord_messages m
            LEFT JOIN staff_users su ON m.sent_by = su.id
            ORDER BY m.created_at DESC, m.id DESC
            LIMIT %s
            """,
            (limit,),
        )


class DiscordNotifier:
    """Posts embeds to the configured webhooks. Delivery failures never propagate."""

    @staticmethod
    def _deliver(
        message_type: str,
        action_type: str,
        content_id: int | None,
        webhook_url: str,
        payload: dict[str, Any],
        sent_by: int | None = None,
    ) -> bool:
        status_code = None
        error_message = None
        try:
            response = requests.post(
                webhook_url,
                json=payload,
                timeout=current_app.config.get('DISCORD_TIMEOUT', 10),
            )
            status_code = response.status_code
            if not 200 <= response.status_code < 300:
                error_message = f"HTTP {response.status_code}: {response.text[:200]}"
        except requests.RequestException as e:
            error_message = str(e)[:1000]

        success = error_message is None
        if not success:
            current_app.logger.warning(f"Discord {message_type} delivery failed: {error_message}")

        try:
            db.run(
                """
                INSERT INTO discord_messages
                    (message_type, action_type, content_id, webhook_url, success,
                     status_code, error_message, sent_by)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (message_type, action_type, content_id, webhook_url, success,
                 status_code, error_message, sent_by),
            )
        except Exception as e:
            current_app.logger.error(f"Failed to record Discord message: {e}")
        return success

    @staticmethod
    def _rule_payload(rule: dict, action: str, color: str) -> dict:
        link = f"{current_app.config.get('FRONTEND_URL', '').rstrip('/')}/rules/{rule['letter_code']}"
        description = rule['content'] or ''
        if len(description) > MAX_EMBED_DESCRIPTION:
            description = description[:MAX_EMBED_DESCRIPTION - 3] + '...'
        verb = {'created': 'New rule', 'updated': 'Rule updated', 'approved': 'Rule approved'}.get(action, 'Rule')
        return {
            'embeds': [{
                'title': f"{verb}: {rule['full_code']} {rule['title'] or ''}".strip(),
                'description': description,
                'url': link,
                'color': _color_value(color),
                'footer': {'text': rule['category_name']},
                'timestamp': datetime.now(timezone.utc).isoformat(),
            }]
        }

    @staticmethod
    def notify_rule(rule_id: int, action: str = 'approved', sent_by: int | None = None,
                    force: bool = False) -> bool:
        """Send an approved, active rule to the rules webhook when enabled (or when forced)."""
        settings = DiscordSettingsService.get_settings()
        webhook_url = settings['rulesWebhookUrl']
        if not webhook_url or not (settings['rulesEnabled'] or force):
            return False

        rule = db.get(
            """
            SELECT r.*, c.letter_code, c.name AS category_name
            FROM rules r JOIN categories c ON r.category_id = c.id
            WHERE r.id = %s AND r.status = 'approved' AND r.is_active = %s
            """,
            (rule_id, True),
        )
        if not rule:
            return False

        payload = DiscordNotifier._rule_payload(rule, action, settings['embedColor'])
        return DiscordNotifier._deliver('rule', action, rule_id, webhook_url, payload, sent_by)

    @staticmethod
    def notify_announcement(announcement_id: int, sent_by: int | None = None, force: bool = False) -> bool:
        settings = DiscordSettingsService.get_settings()
        webhook_url = settings['announcementsWebhookUrl']
        if not webhook_url or not (settings['announcementsEnabled'] or force):
            return False

        announcement = db.get(
            "SELECT * FROM announcements WHERE id = %s AND status = 'approved'",
            (announcement_id,),
        )
        if not announcement:
            return False

        payload = {
            'embeds': [{
                'title': announcement['title'],
                'description': (announcement['content'] or '')[:MAX_EMBED_DESCRIPTION],
                'color': _color_value(settings['embedColor']),
                'timestamp': datetime.now(timezone.utc).isoformat(),
            }]
        }
        return DiscordNotifier._deliver('announcement', 'published', announcement_id,
                                        webhook_url, payload, sent_by)

    @staticmethod
    def send_rule(rule_id: int, sent_by: int | None = None) -> bool:
        """Manual send from the dashboard; ignores the enabled flag but not approval."""
        if not db.get("SELECT id FROM rules WHERE id = %s", (rule_id,)):
            raise NotFoundError('Rule not found')
        if not DiscordSettingsService.get_settings()['rulesWebhookUrl']:
            raise ValidationError('Rules webhook is not configured')
        return DiscordNotifier.notify_rule(rule_id, 'approved', sent_by=sent_by, force=True)

    @staticmethod
    def send_announcement(announcement_id: int, sent_by: int | None = None) -> bool:
        if not db.get("SELECT id FROM announcements WHERE id = %s", (announcement_id,)):
            raise NotFoundError('Announcement not found')
        if not DiscordSettingsService.get_settings()['announcementsWebhookUrl']:
            raise ValidationError('Announcements webhook is not configured')
        return DiscordNotifier.notify_announcement(announcement_id, sent_by=sent_by, force=True)

    @staticmethod
    def send_test(webhook_type: str, sent_by: int | None = None) -> bool:
        if webhook_type not in ('rules', 'announcements'):
            raise ValidationError("webhookType must be 'rules' or 'announcements'")
        settings = DiscordSettingsService.get_settings()
        webhook_url = settings[f'{webhook_type}WebhookUrl']
        if not webhook_url:
            raise ValidationError(f'{webhook_type.capitalize()} webhook is not configured')
        payload = {
            'embeds': [{
                'title': 'Webhook test',
                'description': f'The {webhook_type} webhook is configured correctly.',
                'color': _color_value(settings['embedColor']),
            }]
        }
        return DiscordNotifier._deliver(webhook_type.rstrip('s'), 'test', None, webhook_url, payload, sent_by)


__all__ = ['DiscordSettingsService', 'DiscordNotifier', 'is_valid_webhook_url']

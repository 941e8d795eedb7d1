"""Rule graph: hierarchical numbering and rule CRUD.

Codes look like ``B.3`` (main rule 3 in category B) or ``B.3.2`` (second
sub-rule of B.3). Numbers are allocated as ``MAX + 1`` over every row ever
created under the same parent, soft-deleted rows included, so a code is
never handed out twice and siblings are never renumbered.
"""
from __future__ import annotations

import json
from typing import Any

from flask import current_app

from prisonrp.errors import AuthorizationError, NotFoundError, ValidationError
from prisonrp.extensions import db
from prisonrp.models import ContentStatus, PermissionLevel, StaffUser, load_images, searchable_text
from prisonrp.services.audit import log_activity, record_rule_change
from prisonrp.services.db import now_timestamp
from prisonrp.services.discord import DiscordNotifier
from prisonrp.services.permissions import has_at_least
from prisonrp.services.revisions import OPEN_STATUSES, load_revision
from prisonrp.services.workflow import submission_fields

MAX_TITLE_LENGTH = 255

RULE_SELECT = """
    SELECT r.*, c.letter_code, c.name AS category_name,
           p.full_code AS parent_full_code,
           su.username AS submitted_by_username,
           rv.username AS reviewed_by_username
    FROM rules r
    JOIN categories c ON r.category_id = c.id
    LEFT JOIN rules p ON r.parent_rule_id = p.id
    LEFT JOIN staff_users su ON r.submitted_by = su.id
    LEFT JOIN staff_users rv ON r.reviewed_by = rv.id
"""


def format_full_code(letter_code: str, rule_number: int, sub_number: int | None = None) -> str:
    if sub_number is None:
        return f"{letter_code}.{rule_number}"
    return f"{letter_code}.{rule_number}.{sub_number}"


def next_rule_number(executor, category_id: int) -> int:
    row = executor.get(
        """
        SELECT COALESCE(MAX(rule_number), 0) + 1 AS next_number
        FROM rules WHERE category_id = %s AND parent_rule_id IS NULL
        """,
        (category_id,),
    )
    return int(row['next_number'])


def next_sub_number(executor, parent_rule_id: int) -> int:
    row = executor.get(
        "SELECT COALESCE(MAX(sub_number), 0) + 1 AS next_number FROM rules WHERE parent_rule_id = %s",
        (parent_rule_id,),
    )
    return int(row['next_number'])


def normalize_images(images: Any) -> list[dict]:
    """Validate the client image list; keeps only the fields the site renders."""
    if images is None:
        return []
    if not isinstance(images, list):
        raise ValidationError('images must be a list')
    normalized = []
    for image in images:
        if not isinstance(image, dict) or not image.get('url'):
            raise ValidationError('Each image needs at least a url')
        normalized.append({
            'id': image.get('id'),
            'url': image['url'],
            'thumbnailUrl': image.get('thumbnailUrl') or image['url'],
            'originalName': image.get('originalName'),
        })
    return normalized


def as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{name} must be an integer') from None


def _load_category(executor, category_id: Any) -> dict:
    category_id = as_int(category_id, 'categoryId')
    category = executor.get("SELECT * FROM categories WHERE id = %s", (category_id,))
    if not category:
        raise NotFoundError('Category not found')
    return category


def _load_rule(executor, rule_id: int) -> dict:
    rule = executor.get("SELECT * FROM rules WHERE id = %s AND is_active = %s", (rule_id, True))
    if not rule:
        raise NotFoundError('Rule not found')
    return rule


def _validate_text(title: str | None, content: str | None, is_sub_rule: bool) -> tuple[str | None, str]:
    title = (title or '').strip() or None
    content = (content or '').strip()
    if not content:
        raise ValidationError('Rule content is required')
    if not title and not is_sub_rule:
        raise ValidationError('Main rules require a title')
    if title and len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f'Title must be at most {MAX_TITLE_LENGTH} characters')
    return title, content


class RuleService:
    """Rule creation, editing, deletion and read models."""

    @staticmethod
    def get_rule(rule_id: int, include_inactive: bool = False) -> dict:
        sql = RULE_SELECT + " WHERE r.id = %s"
        params: list[Any] = [rule_id]
        if not include_inactive:
            sql += " AND r.is_active = %s"
            params.append(True)
        rule = db.get(sql, params)
        if not rule:
            raise NotFoundError('Rule not found')
        return rule

    @staticmethod
    def create_rule(
        actor: StaffUser,
        category_id: Any,
        title: str | None,
        content: str | None,
        parent_rule_id: Any = None,
        images: Any = None,
        mode: str | None = None,
    ) -> dict:
        """Create a main rule (no parent) or a sub-rule and allocate its code."""
        title, content = _validate_text(title, content, parent_rule_id is not None)
        image_list = normalize_images(images)
        fields = submission_fields(actor, mode)

        with db.transaction() as tx:
            category = _load_category(tx, category_id)
            if parent_rule_id is not None:
                parent = tx.get(
                    "SELECT * FROM rules WHERE id = %s", (as_int(parent_rule_id, 'parentRuleId'),)
                )
                if not parent or not parent['is_active']:
                    raise NotFoundError('Parent rule not found')
                if parent['parent_rule_id'] is not None:
                    raise ValidationError('Sub-rules can only be added to main rules')
                if parent['category_id'] != category['id']:
                    raise ValidationError('A sub-rule must be in the same category as its parent')
                rule_number = parent['rule_number']
                sub_number = next_sub_number(tx, parent['id'])
                parent_id = parent['id']
            else:
                rule_number = next_rule_number(tx, category['id'])
                sub_number = None
                parent_id = None

            full_code = format_full_code(category['letter_code'], rule_number, sub_number)
            now = now_timestamp()
            result = tx.run(
                """
                INSERT INTO rules
                    (category_id, parent_rule_id, rule_number, sub_number, full_code, title,
                     content, images, status, submitted_by, submitted_at, searchable_content,
                     is_active, created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    category['id'], parent_id, rule_number, sub_number, full_code, title,
                    content, json.dumps(image_list), fields['status'], fields['submitted_by'],
                    fields['submitted_at'], searchable_text(full_code, title, content),
                    True, now, now,
                ),
            )
            record_rule_change(
                tx, result.id, 'created', actor.id,
                new_content=content,
                description=f"Created rule {full_code}",
            )

        log_activity(actor.id, 'create', 'rule', result.id,
                     {'full_code': full_code, 'status': fields['status']})
        if fields['status'] == ContentStatus.APPROVED.value:
            RuleService._notify(result.id, 'created', actor)
        return RuleService.get_rule(result.id)

    @staticmethod
    def get_revision(rule_id: int) -> dict | None:
        RuleService.get_rule(rule_id)
        return load_revision(rule_id)

    @staticmethod
    def get_draft(rule_id: int) -> dict:
        """The rule as its open revision would publish it, or the live rule when there is none."""
        rule = RuleService.get_rule(rule_id)
        revision = load_revision(rule_id)
        rule['is_draft_edit'] = revision is not None
        if revision is not None:
            rule['title'] = revision['title']
            rule['content'] = revision['content']
            rule['images'] = revision['images']
            rule['draft_status'] = revision['status']
            rule['draft_created_at'] = revision['updated_at']
            rule['draft_author'] = revision['submitted_by_username']
            rule['draft_review_notes'] = revision['review_notes']
        return rule

    @staticmethod
    def update_rule(actor: StaffUser, rule_id: int, data: dict, mode: str | None = None) -> dict:
        """Edit a rule.

        Unpublished rules are edited in place and the edit starts a new
        submission cycle; editors may only touch the ones they submitted.
        Edits of a published rule that would not be approved straight away
        (any editor edit, or a moderator saving a draft) are stored as the
        rule's revision and the public text stays unchanged until review.
        """
        fields = submission_fields(actor, mode)
        is_moderator = has_at_least(actor.permission_level, PermissionLevel.MODERATOR)

        with db.transaction() as tx:
            rule = _load_rule(tx, rule_id)
            published = rule['status'] == ContentStatus.APPROVED.value

            if not is_moderator and not published and rule['submitted_by'] != actor.id:
                raise AuthorizationError('Editors can only edit unpublished rules they submitted')

            if 'parentRuleId' in data:
                parent_id = data['parentRuleId']
                if parent_id is not None:
                    parent_id = as_int(parent_id, 'parentRuleId')
                if parent_id != rule['parent_rule_id']:
                    raise ValidationError('A rule cannot be moved to a different parent')

            new_category = data.get('categoryId')
            moves = new_category is not None and as_int(new_category, 'categoryId') != rule['category_id']

            if published and fields['status'] != ContentStatus.APPROVED.value:
                if moves:
                    if not is_moderator:
                        raise AuthorizationError('Only moderators can move a published rule')
                    raise ValidationError('Moving a published rule cannot be saved as a draft')
                RuleService._save_revision(tx, actor, rule, data, fields, is_moderator)
                revision_saved = True
            else:
                RuleService._update_live(tx, actor, rule, data, fields, new_category if moves else None)
                revision_saved = False

        rule = RuleService.get_rule(rule_id)
        details = {'full_code': rule['full_code'], 'status': fields['status']}
        if revision_saved:
            details['revision'] = True
        log_activity(actor.id, 'update', 'rule', rule_id, details)
        if not revision_saved and fields['status'] == ContentStatus.APPROVED.value:
            RuleService._notify(rule_id, 'updated', actor)
        return rule

    @staticmethod
    def _save_revision(tx, actor: StaffUser, rule: dict, data: dict, fields: dict, is_moderator: bool) -> None:
        revision = load_revision(rule['id'], tx)
        if revision is not None and revision['status'] in OPEN_STATUSES:
            if not is_moderator and revision['submitted_by'] != actor.id:
                raise AuthorizationError('Another staff member already has an open edit of this rule')
        base = revision or rule

        title, content = _validate_text(
            data.get('title', base['title']),
            data.get('content', base['content']),
            rule['parent_rule_id'] is not None,
        )
        images = normalize_images(data['images']) if 'images' in data else load_images(base['images'])

        now = now_timestamp()
        if revision is None:
            tx.run(
                """
                INSERT INTO rule_revisions
                    (rule_id, title, content, images, status, submitted_by, submitted_at,
                     created_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (rule['id'], title, content, json.dumps(images), fields['status'],
                 fields['submitted_by'], fields['submitted_at'], now, now),
            )
        else:
            tx.run(
                """
                UPDATE rule_revisions
                SET title = %s, content = %s, images = %s, status = %s,
                    submitted_by = %s, submitted_at = %s,
                    reviewed_by = NULL, review_notes = NULL, reviewed_at = NULL,
                    updated_at = %s
                WHERE id = %s
                """,
                (title, content, json.dumps(images), fields['status'],
                 fields['submitted_by'], fields['submitted_at'], now, revision['id']),
            )
        record_rule_change(
            tx, rule['id'], 'draft_edit', actor.id,
            old_content=rule['content'],
            new_content=content,
            description=f"Proposed edit of rule {rule['full_code']}",
        )

    @staticmethod
    def _update_live(tx, actor: StaffUser, rule: dict, data: dict, fields: dict, new_category: Any) -> None:
        rule_id = rule['id']
        is_sub_rule = rule['parent_rule_id'] is not None
        title, content = _validate_text(
            data.get('title', rule['title']),
            data.get('content', rule['content']),
            is_sub_rule,
        )
        images = normalize_images(data['images']) if 'images' in data else load_images(rule['images'])

        category_id = rule['category_id']
        rule_number = rule['rule_number']
        full_code = rule['full_code']
        if new_category is not None:
            if is_sub_rule:
                raise ValidationError('Sub-rules move with their parent rule')
            children = tx.get(
                "SELECT COUNT(*) AS count FROM rules WHERE parent_rule_id = %s",
                (rule_id,),
            )
            if children['count'] > 0:
                raise ValidationError('Rules with sub-rules cannot change category')
            category = _load_category(tx, new_category)
            category_id = category['id']
            rule_number = next_rule_number(tx, category_id)
            full_code = format_full_code(category['letter_code'], rule_number)

        now = now_timestamp()
        tx.run(
            """
            UPDATE rules
            SET category_id = %s, rule_number = %s, full_code = %s, title = %s,
                content = %s, images = %s, searchable_content = %s,
                status = %s, submitted_by = %s, submitted_at = %s,
                reviewed_by = NULL, review_notes = NULL, reviewed_at = NULL,
                updated_at = %s
            WHERE id = %s
            """,
            (
                category_id, rule_number, full_code, title, content, json.dumps(images),
                searchable_text(full_code, title, content), fields['status'],
                fields['submitted_by'], fields['submitted_at'], now, rule_id,
            ),
        )
        # A direct edit replaces the editor's own pending proposal
        tx.run(
            "DELETE FROM rule_revisions WHERE rule_id = %s AND submitted_by = %s",
            (rule_id, actor.id),
        )
        description = f"Updated rule {full_code}"
        if full_code != rule['full_code']:
            description = f"Moved rule {rule['full_code']} to {full_code}"
        record_rule_change(
            tx, rule_id, 'updated', actor.id,
            old_content=rule['content'],
            new_content=content,
            description=description,
        )

    @staticmethod
    def delete_rule(actor: StaffUser, rule_id: int) -> str:
        """Remove a rule without renumbering its siblings.

        Unpublished rules (draft/rejected) are removed outright; anything that
        may have been public is deactivated so its code stays reserved.
        Returns ``"hard"`` or ``"soft"``.
        """
        with db.transaction() as tx:
            rule = _load_rule(tx, rule_id)
            children = tx.all("SELECT id, is_active FROM rules WHERE parent_rule_id = %s", (rule_id,))
            if any(child['is_active'] for child in children):
                raise ValidationError('Delete or move the sub-rules of this rule first')

            unpublished = rule['status'] in (ContentStatus.DRAFT.value, ContentStatus.REJECTED.value)
            if unpublished and not children:
                tx.run("DELETE FROM rules WHERE id = %s", (rule_id,))
                mode = 'hard'
            else:
                tx.run(
                    "UPDATE rules SET is_active = %s, updated_at = %s WHERE id = %s",
                    (False, now_timestamp(), rule_id),
                )
                mode = 'soft'
            record_rule_change(
                tx, rule_id, 'deleted', actor.id,
                old_content=rule['content'],
                description=f"Deleted rule {rule['full_code']}",
            )

        log_activity(actor.id, 'delete', 'rule', rule_id, {'full_code': rule['full_code'], 'mode': mode})
        return mode

    @staticmethod
    def get_rule_tree(category_letter: str | None = None) -> list[dict]:
        """Approved rules with their approved sub-rules nested under ``sub_rules``."""
        sql = RULE_SELECT + """
            WHERE r.status = 'approved' AND r.is_active = %s AND c.is_active = %s
        """
        params: list[Any] = [True, True]
        if category_letter:
            category = db.get(
                "SELECT id FROM categories WHERE UPPER(letter_code) = UPPER(%s) AND is_active = %s",
                (category_letter, True),
            )
            if not category:
                raise NotFoundError('Category not found')
            sql += " AND r.category_id = %s"
            params.append(category['id'])
        sql += " ORDER BY c.order_index, r.rule_number, COALESCE(r.sub_number, 0)"

        rows = db.all(sql, params)
        main_rules: dict[int, dict] = {}
        for row in rows:
            if row['parent_rule_id'] is None:
                row['sub_rules'] = []
                main_rules[row['id']] = row
        for row in rows:
            parent = main_rules.get(row['parent_rule_id']) if row['parent_rule_id'] else None
            if parent is not None:
                parent['sub_rules'].append(row)
        return list(main_rules.values())

    @staticmethod
    def get_rule_by_code(code: str) -> dict:
        rule = db.get(
            RULE_SELECT + """
            WHERE UPPER(r.full_code) = UPPER(%s) AND r.status = 'approved' AND r.is_active = %s
            """,
            (code.strip(), True),
        )
        if not rule:
            raise NotFoundError('Rule not found')
        if rule['parent_rule_id'] is None:
            rule['sub_rules'] = db.all(
                RULE_SELECT + """
                WHERE r.parent_rule_id = %s AND r.status = 'approved' AND r.is_active = %s
                ORDER BY r.sub_number
                """,
                (rule['id'], True),
            )
        return rule

    @staticmethod
    def staff_rule_list(
        actor: StaffUser,
        status: str | None = None,
        category_id: int | None = None,
    ) -> list[dict]:
        """Rules visible in the dashboard.

        Editors see published rules plus their own unpublished work;
        moderators and above see everything.
        """
        clauses = ["r.is_active = %s"]
        params: list[Any] = [True]
        if not has_at_least(actor.permission_level, PermissionLevel.MODERATOR):
            clauses.append("(r.status = 'approved' OR r.submitted_by = %s)")
            params.append(actor.id)
        if status:
            if status not in {s.value for s in ContentStatus}:
                raise ValidationError(f'Unknown status: {status}')
            clauses.append("r.status = %s")
            params.append(status)
        if category_id is not None:
            clauses.append("r.category_id = %s")
            params.append(category_id)
        return db.all(
            RULE_SELECT + f" WHERE {' AND '.join(clauses)} "
            "ORDER BY c.order_index, r.rule_number, COALESCE(r.sub_number, 0)",
            params,
        )

    @staticmethod
    def refresh_category_codes(executor, category_id: int, letter_code: str) -> int:
        """Rewrite every code in a category after its letter changes."""
        rows = executor.all(
            "SELECT id, rule_number, sub_number, title, content FROM rules WHERE category_id = %s",
            (category_id,),
        )
        for row in rows:
            full_code = format_full_code(letter_code, row['rule_number'], row['sub_number'])
            executor.run(
                "UPDATE rules SET full_code = %s, searchable_content = %s WHERE id = %s",
                (full_code, searchable_text(full_code, row['title'], row['content']), row['id']),
            )
        return len(rows)

    @staticmethod
    def _notify(rule_id: int, action: str, actor: StaffUser) -> None:
        try:
            DiscordNotifier.notify_rule(rule_id, action, sent_by=actor.id)
        except Exception as e:
            current_app.logger.error(f"Discord notification for rule {rule_id} failed: {e}")


__all__ = [
    'RuleService',
    'format_full_code',
    'next_rule_number',
    'next_sub_number',
    'normalize_images',
    'searchable_text',
]

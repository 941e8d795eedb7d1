"""Rule categories: CRUD and explicit display ordering."""
from __future__ import annotations

import re
from typing import Any

from prisonrp.errors import ConflictError, NotFoundError, ValidationError
from prisonrp.extensions import db
from prisonrp.services.audit import log_activity
from prisonrp.services.db import ErrorKind, StorageError, now_timestamp
from prisonrp.services.rules import RuleService
from prisonrp.services.validation import parse_bool

LETTER_CODE_PATTERN = re.compile(r'^[A-Z]{1,3}$')
COLOR_PATTERN = re.compile(r'^#[0-9a-fA-F]{6}$')
DEFAULT_COLOR = '#3498db'


def _normalize_letter(letter_code: Any) -> str:
    letter = str(letter_code or '').strip().upper()
    if not LETTER_CODE_PATTERN.match(letter):
        raise ValidationError('letter_code must be 1-3 letters (A-Z)')
    return letter


def _normalize_color(color: Any) -> str:
    color = (color or DEFAULT_COLOR).strip()
    if not COLOR_PATTERN.match(color):
        raise ValidationError('color must be a hex color like #3498db')
    return color


class CategoryService:
    """Service for rule categories."""

    @staticmethod
    def list_public() -> list[dict]:
        """Active categories in display order with their published main-rule counts."""
        return db.all(
            """
            SELECT c.id, c.letter_code, c.name, c.description, c.color, c.order_index,
                   (SELECT COUNT(*) FROM rules r
                    WHERE r.category_id = c.id AND r.parent_rule_id IS NULL
                      AND r.status = 'approved' AND r.is_active = %s) AS rule_count
            FROM categories c
            WHERE c.is_active = %s
            ORDER BY c.order_index, c.id
            """,
            (True, True),
        )

    @staticmethod
    def list_all() -> list[dict]:
        return db.all(
            """
            SELECT c.*,
                   (SELECT COUNT(*) FROM rules r
                    WHERE r.category_id = c.id AND r.is_active = %s) AS rule_count
            FROM categories c
            ORDER BY c.order_index, c.id
            """,
            (True,),
        )

    @staticmethod
    def get(category_id: int) -> dict:
        category = db.get(
            """
            SELECT c.*,
                   (SELECT COUNT(*) FROM rules r
                    WHERE r.category_id = c.id AND r.is_active = %s) AS rule_count
            FROM categories c WHERE c.id = %s
            """,
            (True, category_id),
        )
        if not category:
            raise NotFoundError('Category not found')
        return category

    @staticmethod
    def create(
        letter_code: Any,
        name: str | None,
        description: str | None = None,
        color: str | None = None,
        is_active: bool = True,
        actor_id: int | None = None,
    ) -> dict:
        letter = _normalize_letter(letter_code)
        name = (name or '').strip()
        if not name:
            raise ValidationError('Category name is required')
        color = _normalize_color(color)

        try:
            with db.transaction() as tx:
                if tx.get("SELECT id FROM categories WHERE letter_code = %s", (letter,)):
                    raise ConflictError(f'Letter code {letter} is already in use')
                next_index = tx.get(
                    "SELECT COALESCE(MAX(order_index), 0) + 1 AS next_index FROM categories"
                )['next_index']
                result = tx.run(
                    """
                    INSERT INTO categories (letter_code, name, description, color, is_active, order_index)
                    VALUES (%s, %s, %s, %s, %s, %s)
                    """,
                    (letter, name, (description or '').strip() or None, color,
                     parse_bool(is_active, 'is_active', default=True), next_index),
                )
        except StorageError as exc:
            if exc.kind is ErrorKind.UNIQUE_VIOLATION:
                raise ConflictError(f'Letter code {letter} is already in use') from exc
            raise

        log_activity(actor_id, 'create', 'category', result.id, {'letter_code': letter, 'name': name})
        return CategoryService.get(result.id)

    @staticmethod
    def update(category_id: int, data: dict, actor_id: int | None = None) -> dict:
        """Update a category; a new letter code rewrites its rules' codes in the same transaction."""
        current = CategoryService.get(category_id)
        letter = _normalize_letter(data.get('letter_code', current['letter_code']))
        name = (data.get('name', current['name']) or '').strip()
        if not name:
            raise ValidationError('Category name is required')
        description = data.get('description', current['description'])
        color = _normalize_color(data.get('color', current['color']))
        is_active = parse_bool(data.get('is_active'), 'is_active', default=bool(current['is_active']))

        try:
            with db.transaction() as tx:
                if letter != current['letter_code']:
                    clash = tx.get(
                        "SELECT id FROM categories WHERE letter_code = %s AND id <> %s",
                        (letter, category_id),
                    )
                    if clash:
                        raise ConflictError(f'Letter code {letter} is already in use')
                tx.run(
                    """
                    UPDATE categories
                    SET letter_code = %s, name = %s, description = %s, color = %s,
                        is_active = %s, updated_at = %s
                    WHERE id = %s
                    """,
                    (letter, name, description, color, is_active, now_timestamp(), category_id),
                )
                if letter != current['letter_code']:
                    RuleService.refresh_category_codes(tx, category_id, letter)
        except StorageError as exc:
            if exc.kind is ErrorKind.UNIQUE_VIOLATION:
                raise ConflictError(f'Letter code {letter} is already in use') from exc
            raise

        log_activity(actor_id, 'update', 'category', category_id,
                     {'letter_code': letter, 'previous_letter_code': current['letter_code']})
        return CategoryService.get(category_id)

    @staticmethod
    def delete(category_id: int, actor_id: int | None = None) -> None:
        """Delete an empty category. Categories that still own rules are refused."""
        category = CategoryService.get(category_id)
        # Deactivated rules still reference the category and keep their codes reserved
        referencing = db.get(
            "SELECT COUNT(*) AS count FROM rules WHERE category_id = %s", (category_id,)
        )['count']
        if referencing > 0:
            raise ValidationError(
                f"Cannot delete category {category['letter_code']}: it still has "
                f"{referencing} rule(s)"
            )
        db.run("DELETE FROM categories WHERE id = %s", (category_id,))
        log_activity(actor_id, 'delete', 'category', category_id,
                     {'letter_code': category['letter_code'], 'name': category['name']})

    @staticmethod
    def reorder(category_order: Any, actor_id: int | None = None) -> list[dict]:
        """Apply a full ``[{id, order_index}]`` list atomically."""
        if not isinstance(category_order, list) or not category_order:
            raise ValidationError('categoryOrder must be a non-empty list')

        updates: list[tuple[int, int]] = []
        for item in category_order:
            if not isinstance(item, dict):
                raise ValidationError('Each categoryOrder entry must be an object')
            try:
                updates.append((int(item['id']), int(item['order_index'])))
            except (KeyError, TypeError, ValueError):
                raise ValidationError('Each categoryOrder entry needs integer id and order_index') from None

        with db.transaction() as tx:
            for category_id, order_index in updates:
                result = tx.run(
                    "UPDATE categories SET order_index = %s, updated_at = %s WHERE id = %s",
                    (order_index, now_timestamp(), category_id),
                )
                if result.changes == 0:
                    # Raising inside the block rolls back every update above
                    raise NotFoundError(f'Category {category_id} not found')

        log_activity(actor_id, 'update', 'category', None,
                     {'reorder': [{'id': cid, 'order_index': idx} for cid, idx in updates]})
        return CategoryService.list_all()


__all__ = ['CategoryService', 'LETTER_CODE_PATTERN']

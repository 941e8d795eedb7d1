"""Schema bootstrap: DDL apply, additive column migrations and default seed data."""

from __future__ import annotations

from dataclasses import dataclass
from importlib import resources
from typing import TYPE_CHECKING

from prisonrp.services.db import ErrorKind, StorageError, now_timestamp

if TYPE_CHECKING:
    from prisonrp.services.db import StorageAdapter


@dataclass(frozen=True)
class ColumnMigration:
    table: str
    column: str
    sqlite_definition: str
    postgres_definition: str

    def definition_for(self, backend_name: str) -> str:
        if backend_name == 'postgres':
            return self.postgres_definition
        return self.sqlite_definition


# Applied in order on every startup. Columns that already exist are skipped.
MIGRATIONS: list[ColumnMigration] = [
    ColumnMigration('categories', 'color', "VARCHAR(7) DEFAULT '#3498db'", "VARCHAR(7) DEFAULT '#3498db'"),
    ColumnMigration('categories', 'is_active', 'BOOLEAN NOT NULL DEFAULT 1', 'BOOLEAN NOT NULL DEFAULT TRUE'),
    ColumnMigration('discord_messages', 'action_type', 'VARCHAR(30)', 'VARCHAR(30)'),
    ColumnMigration('announcements', 'published_at', 'DATETIME', 'TIMESTAMP'),
    ColumnMigration('rules', 'searchable_content', 'TEXT', 'TEXT'),
]

DEFAULT_CATEGORIES = [
    ('A', 'General Server Rules', 'Basic rules that apply to all players'),
    ('B', 'PrisonRP Specific Rules', 'Rules specific to the prison roleplay environment'),
    ('C', 'Guard Guidelines', 'Rules and guidelines for prison guards'),
    ('D', 'Prisoner Guidelines', 'Rules and guidelines for prisoners'),
    ('E', 'Warden Protocols', 'Rules and protocols for wardens'),
    ('F', 'Economy & Contraband Rules', 'Rules regarding prison economy and contraband'),
    ('G', 'Staff Information', 'Information about server staff and reporting'),
]

WELCOME_ANNOUNCEMENT = (
    'Welcome to DigitalDeltaGaming PrisonRP!',
    'Welcome to our PrisonRP server! Please read all rules carefully before playing. '
    'Have fun and follow the rules!',
    5,
)

DEMO_STAFF = [
    ('76561198000000000', 'Demo Admin', 'admin'),
    ('76561198000000001', 'Demo Moderator', 'moderator'),
]


def load_schema(backend_name: str) -> list[str]:
    """Return the DDL statements for a backend, comments stripped."""
    filename = 'schema-postgres.sql' if backend_name == 'postgres' else 'schema.sql'
    source = resources.files('prisonrp').joinpath('schema').joinpath(filename).read_text(encoding='utf-8')
    lines = [line for line in source.splitlines() if not line.strip().startswith('--')]
    return [statement.strip() for statement in '\n'.join(lines).split(';') if statement.strip()]


def apply_schema(storage: StorageAdapter) -> int:
    statements = load_schema(storage.backend_name)
    with storage.transaction() as tx:
        for statement in statements:
            tx.run(statement)
    storage.log.info(f"Applied {len(statements)} schema statements ({storage.backend_name})")
    return len(statements)


def run_migrations(storage: StorageAdapter, migrations: list[ColumnMigration] | None = None) -> list[str]:
    """Apply additive column migrations; returns the columns that were added.

    Existing columns are expected on every restart and are skipped quietly.
    Any other failure is logged and startup continues.
    """
    applied = []
    for migration in migrations if migrations is not None else MIGRATIONS:
        name = f"{migration.table}.{migration.column}"
        try:
            storage.add_column(
                migration.table,
                migration.column,
                migration.definition_for(storage.backend_name),
            )
        except StorageError as exc:
            if exc.kind is ErrorKind.DUPLICATE_COLUMN:
                storage.log.debug(f"Migration {name} already applied")
                continue
            storage.log.error(f"Migration {name} failed: {exc.message}")
            continue
        applied.append(name)
        storage.log.info(f"Migration: added column {name}")
    return applied


def _is_empty(tx, table: str) -> bool:
    return tx.get(f"SELECT COUNT(*) AS count FROM {table}")['count'] == 0


def seed_defaults(storage: StorageAdapter) -> dict[str, int]:
    """Insert default categories, a welcome announcement and demo staff into empty tables."""
    inserted = {'categories': 0, 'announcements': 0, 'staff_users': 0}
    with storage.transaction() as tx:
        if _is_empty(tx, 'categories'):
            for index, (letter, name, description) in enumerate(DEFAULT_CATEGORIES, start=1):
                tx.run(
                    "INSERT INTO categories (letter_code, name, description, order_index) VALUES (%s, %s, %s, %s)",
                    (letter, name, description, index),
                )
                inserted['categories'] += 1

        if _is_empty(tx, 'announcements'):
            title, content, priority = WELCOME_ANNOUNCEMENT
            now = now_timestamp()
            tx.run(
                """
                INSERT INTO announcements (title, content, priority, is_active, status,
                                           announcement_type, published_at)
                VALUES (%s, %s, %s, %s, 'approved', 'immediate', %s)
                """,
                (title, content, priority, True, now),
            )
            inserted['announcements'] += 1

        if _is_empty(tx, 'staff_users'):
            for steam_id, username, level in DEMO_STAFF:
                tx.run(
                    "INSERT INTO staff_users (steam_id, username, permission_level) VALUES (%s, %s, %s)",
                    (steam_id, username, level),
                )
                inserted['staff_users'] += 1

    for table, count in inserted.items():
        if count:
            storage.log.info(f"Seeded {count} default row(s) into {table}")
    return inserted


def bootstrap(storage: StorageAdapter, seed: bool = True) -> None:
    apply_schema(storage)
    run_migrations(storage)
    if seed:
        seed_defaults(storage)


__all__ = [
    'ColumnMigration',
    'MIGRATIONS',
    'load_schema',
    'apply_schema',
    'run_migrations',
    'seed_defaults',
    'bootstrap',
]

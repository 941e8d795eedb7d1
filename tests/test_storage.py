import logging

import pytest
from sqlalchemy.engine import make_url

from prisonrp.config import database_url
from prisonrp.services.db import (
    ErrorKind,
    PostgresBackend,
    StorageAdapter,
    StorageError,
    _prepare_statement,
    parse_timestamp,
)
from prisonrp.services.schema import MIGRATIONS, ColumnMigration, bootstrap, run_migrations


@pytest.fixture()
def adapter(tmp_path):
    storage = StorageAdapter(f"sqlite:///{tmp_path / 'storage.db'}", log=logging.getLogger('test'))
    storage.initialize(seed=False)
    yield storage
    storage.close()


class TestStatementPreparation:
    def test_positional_placeholders_become_named_binds(self):
        statement, params = _prepare_statement("SELECT * FROM rules WHERE id = %s AND status = %s", (3, 'approved'))
        assert ':param_0' in str(statement)
        assert ':param_1' in str(statement)
        assert params == {'param_0': 3, 'param_1': 'approved'}

    def test_mismatched_placeholders_raise(self):
        with pytest.raises(ValueError):
            _prepare_statement("SELECT %s, %s", (1,))

    def test_postgres_inserts_get_returning_id(self):
        backend = PostgresBackend.__new__(PostgresBackend)
        assert backend.prepare("INSERT INTO categories (name) VALUES (%s)").endswith('RETURNING id')
        assert 'RETURNING' not in backend.prepare("UPDATE categories SET name = %s")


class TestAdapter:
    def test_run_returns_inserted_id_and_changes(self, adapter):
        first = adapter.run(
            "INSERT INTO categories (letter_code, name, order_index) VALUES (%s, %s, %s)", ('A', 'General', 1)
        )
        second = adapter.run(
            "INSERT INTO categories (letter_code, name, order_index) VALUES (%s, %s, %s)", ('B', 'Prison', 2)
        )
        assert second.id == first.id + 1
        updated = adapter.run("UPDATE categories SET description = %s", ('x',))
        assert updated.changes == 2

    def test_get_and_all_return_dicts(self, adapter):
        adapter.run("INSERT INTO categories (letter_code, name, order_index) VALUES (%s, %s, %s)", ('A', 'General', 1))
        row = adapter.get("SELECT letter_code, name FROM categories WHERE letter_code = %s", ('A',))
        assert row == {'letter_code': 'A', 'name': 'General'}
        assert adapter.get("SELECT * FROM categories WHERE letter_code = %s", ('Z',)) is None
        assert [r['name'] for r in adapter.all("SELECT name FROM categories")] == ['General']

    def test_transaction_rolls_back_on_error(self, adapter):
        with pytest.raises(RuntimeError):
            with adapter.transaction() as tx:
                tx.run("INSERT INTO categories (letter_code, name, order_index) VALUES (%s, %s, %s)", ('A', 'x', 1))
                raise RuntimeError('boom')
        assert adapter.all("SELECT * FROM categories") == []

    def test_unique_violation_is_classified(self, adapter):
        adapter.run("INSERT INTO categories (letter_code, name, order_index) VALUES (%s, %s, %s)", ('A', 'x', 1))
        with pytest.raises(StorageError) as excinfo:
            adapter.run("INSERT INTO categories (letter_code, name, order_index) VALUES (%s, %s, %s)", ('A', 'y', 2))
        assert excinfo.value.kind is ErrorKind.UNIQUE_VIOLATION
        assert excinfo.value.backend == 'sqlite'

    def test_foreign_keys_are_enforced(self, adapter):
        with pytest.raises(StorageError) as excinfo:
            adapter.run(
                "INSERT INTO rules (category_id, rule_number, full_code, content) VALUES (%s, %s, %s, %s)",
                (999, 1, 'A.1', 'content'),
            )
        assert excinfo.value.kind is ErrorKind.FOREIGN_KEY_VIOLATION

    def test_duplicate_column_is_classified(self, adapter):
        with pytest.raises(StorageError) as excinfo:
            adapter.add_column('categories', 'color', 'VARCHAR(7)')
        assert excinfo.value.kind is ErrorKind.DUPLICATE_COLUMN

    def test_unreachable_database_is_a_connection_error(self, tmp_path):
        directory = tmp_path / 'not-a-file'
        directory.mkdir()
        storage = StorageAdapter(f"sqlite:///{directory}")
        with pytest.raises(StorageError) as excinfo:
            storage.connect()
        assert excinfo.value.kind is ErrorKind.CONNECTION


class TestMigrations:
    def test_bootstrap_is_idempotent(self, adapter):
        bootstrap(adapter, seed=True)
        bootstrap(adapter, seed=True)
        assert adapter.get("SELECT COUNT(*) AS count FROM categories")['count'] == 7
        assert adapter.get("SELECT COUNT(*) AS count FROM announcements")['count'] == 1

    def test_rerunning_migrations_adds_nothing(self, adapter):
        assert run_migrations(adapter) == []
        columns = adapter.column_names('categories')
        for migration in MIGRATIONS:
            assert migration.column in adapter.column_names(migration.table)
        assert 'color' in columns

    def test_new_column_is_added_once(self, adapter):
        extra = [ColumnMigration('categories', 'icon', 'VARCHAR(50)', 'VARCHAR(50)')]
        assert run_migrations(adapter, extra) == ['categories.icon']
        assert run_migrations(adapter, extra) == []

    def test_failing_migration_is_logged_and_skipped(self, adapter, caplog):
        broken = [
            ColumnMigration('no_such_table', 'x', 'TEXT', 'TEXT'),
            ColumnMigration('categories', 'icon', 'VARCHAR(50)', 'VARCHAR(50)'),
        ]
        with caplog.at_level(logging.ERROR, logger='test'):
            added = run_migrations(adapter, broken)
        assert added == ['categories.icon']
        assert 'no_such_table.x' in caplog.text


def test_parse_timestamp_reads_stored_format():
    parsed = parse_timestamp('2024-05-01 12:30:00')
    assert parsed.year == 2024 and parsed.hour == 12
    assert parsed.tzinfo is not None
    assert parse_timestamp(None) is None


def test_postgres_url_escapes_credentials():
    url = database_url({
        'DATABASE_TYPE': 'postgres',
        'DB_USER': 'rules@admin',
        'DB_PASSWORD': 'p@ss/w:rd#1',
        'DB_HOST': 'db.internal',
        'DB_PORT': 5432,
        'DB_NAME': 'ddg_prisonrp',
    })
    parsed = make_url(url)
    assert parsed.drivername == 'postgresql+psycopg2'
    assert parsed.username == 'rules@admin'
    assert parsed.password == 'p@ss/w:rd#1'
    assert parsed.host == 'db.internal'
    assert parsed.port == 5432
    assert parsed.database == 'ddg_prisonrp'


def test_hosted_postgres_url_is_rewritten_for_the_driver():
    url = database_url({'DATABASE_TYPE': 'postgres', 'DATABASE_URL': 'postgres://u:p@host/db'})
    assert url == 'postgresql+psycopg2://u:p@host/db'

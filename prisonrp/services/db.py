"""Storage adapter over SQLAlchemy Core with interchangeable SQLite/Postgres backends.

All queries in the application are written once, with ``%s`` positional
placeholders, and executed through :class:`StorageAdapter` which exposes a
small ``run`` / ``get`` / ``all`` surface:

* ``run`` executes a mutating statement and returns :class:`RunResult`
  (``id`` of the inserted row, ``changes`` = affected rows)
* ``get`` returns the first row as a dict or ``None``
* ``all`` returns every row as a list of dicts

Driver failures are re-raised as :class:`StorageError` tagged with an
:class:`ErrorKind` derived from structured driver data (SQLSTATE codes,
SQLite extended result codes, schema introspection).
"""

from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Sequence, Union

from flask import current_app
from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import DBAPIError, IntegrityError, NoSuchTableError
from sqlalchemy.pool import StaticPool

ParamType = Union[Sequence[Any], Mapping[str, Any], Any]

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'


class ErrorKind(Enum):
    CONNECTION = "connection"
    DUPLICATE_COLUMN = "duplicate_column"
    DUPLICATE_TABLE = "duplicate_table"
    UNIQUE_VIOLATION = "unique_violation"
    FOREIGN_KEY_VIOLATION = "foreign_key_violation"
    CONSTRAINT_VIOLATION = "constraint_violation"
    SYNTAX = "syntax"
    OTHER = "other"


class StorageError(Exception):
    """Database failure tagged with the backend that produced it."""

    def __init__(self, kind: ErrorKind, backend: str, message: str):
        super().__init__(message)
        self.kind = kind
        self.backend = backend
        self.message = message

    def __repr__(self) -> str:
        return f"StorageError(kind={self.kind.value!r}, backend={self.backend!r}, message={self.message!r})"


@dataclass(frozen=True)
class RunResult:
    id: int | None
    changes: int


def now_timestamp() -> str:
    """Current UTC time in the format stored by both backends."""
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: Any) -> datetime | None:
    """Read a stored timestamp (string from SQLite, datetime from Postgres) as aware UTC."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _prepare_statement(query: str, params: ParamType = None):
    if params is None:
        return text(query), {}

    if isinstance(params, Mapping):
        bind_params: Dict[str, Any] = {}
        new_query = query
        for key, value in params.items():
            new_query = new_query.replace(f"%({key})s", f":{key}")
            bind_params[key] = value
        return text(new_query), bind_params

    if not isinstance(params, Sequence) or isinstance(params, (str, bytes)):
        params = (params,)

    parts = query.split("%s")
    if len(parts) - 1 != len(params):
        raise ValueError("Mismatched placeholders and parameters in query.")

    bind_params = {f"param_{idx}": value for idx, value in enumerate(params)}
    new_query = "".join(
        part + (f":param_{idx}" if idx < len(params) else "")
        for idx, part in enumerate(parts)
    )
    return text(new_query), bind_params


def _is_insert(sql: str) -> bool:
    return sql.lstrip().upper().startswith('INSERT')


class Backend:
    """Driver-specific behaviour behind the adapter."""

    name = 'generic'
    schema_file = 'schema.sql'

    def __init__(self, url: str, **options: Any) -> None:
        self.url = url
        self.engine: Engine = self.create_engine(url, **options)

    def create_engine(self, url: str, **options: Any) -> Engine:
        raise NotImplementedError

    def prepare(self, sql: str) -> str:
        return sql

    def inserted_id(self, result) -> int | None:
        raise NotImplementedError

    def classify(self, exc: DBAPIError) -> ErrorKind:
        raise NotImplementedError

    def wrap(self, exc: DBAPIError) -> StorageError:
        return StorageError(self.classify(exc), self.name, str(exc.orig))

    def dispose(self) -> None:
        self.engine.dispose()


class SQLiteBackend(Backend):
    """Embedded single-file database; the driver serializes access."""

    name = 'sqlite'
    schema_file = 'schema.sql'

    def create_engine(self, url: str, **options: Any) -> Engine:
        database = make_url(url).database
        if database and database != ':memory:':
            directory = os.path.dirname(os.path.abspath(database))
            if not os.path.isdir(directory):
                os.makedirs(directory, exist_ok=True)
                logger.info(f"Created database directory {directory}")
            engine = create_engine(url, future=True)
        else:
            engine = create_engine(
                url,
                connect_args={'check_same_thread': False},
                poolclass=StaticPool,
                future=True,
            )

        @event.listens_for(engine, 'connect')
        def _enable_foreign_keys(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA foreign_keys = ON')
            cursor.close()

        return engine

    def inserted_id(self, result) -> int | None:
        return result.lastrowid

    def classify(self, exc: DBAPIError) -> ErrorKind:
        code = getattr(exc.orig, 'sqlite_errorcode', None)
        if isinstance(exc, IntegrityError):
            if code in (sqlite3.SQLITE_CONSTRAINT_UNIQUE, sqlite3.SQLITE_CONSTRAINT_PRIMARYKEY):
                return ErrorKind.UNIQUE_VIOLATION
            if code == sqlite3.SQLITE_CONSTRAINT_FOREIGNKEY:
                return ErrorKind.FOREIGN_KEY_VIOLATION
            return ErrorKind.CONSTRAINT_VIOLATION
        if code in (sqlite3.SQLITE_CANTOPEN, sqlite3.SQLITE_NOTADB):
            return ErrorKind.CONNECTION
        return ErrorKind.OTHER


class PostgresBackend(Backend):
    """Networked database behind a bounded connection pool."""

    name = 'postgres'
    schema_file = 'schema-postgres.sql'

    SQLSTATE_KINDS = {
        '42701': ErrorKind.DUPLICATE_COLUMN,
        '42P07': ErrorKind.DUPLICATE_TABLE,
        '23505': ErrorKind.UNIQUE_VIOLATION,
        '23503': ErrorKind.FOREIGN_KEY_VIOLATION,
        '42601': ErrorKind.SYNTAX,
    }

    def create_engine(self, url: str, **options: Any) -> Engine:
        connect_args = {}
        if options.get('ssl'):
            connect_args['sslmode'] = 'require'
        return create_engine(
            url,
            pool_size=options.get('pool_size', 10),
            max_overflow=0,
            pool_timeout=options.get('pool_timeout', 30),
            pool_pre_ping=True,
            connect_args=connect_args,
            future=True,
        )

    def prepare(self, sql: str) -> str:
        # Inserted ids come back through RETURNING rather than a driver attribute
        if _is_insert(sql) and 'RETURNING' not in sql.upper():
            return sql.rstrip().rstrip(';') + ' RETURNING id'
        return sql

    def inserted_id(self, result) -> int | None:
        row = result.first()
        return row[0] if row is not None else None

    def classify(self, exc: DBAPIError) -> ErrorKind:
        pgcode = getattr(exc.orig, 'pgcode', None)
        if pgcode is None:
            return ErrorKind.CONNECTION if exc.connection_invalidated else ErrorKind.OTHER
        if pgcode in self.SQLSTATE_KINDS:
            return self.SQLSTATE_KINDS[pgcode]
        if pgcode.startswith('08'):
            return ErrorKind.CONNECTION
        if pgcode.startswith('23'):
            return ErrorKind.CONSTRAINT_VIOLATION
        return ErrorKind.OTHER


BACKENDS = {
    'sqlite': SQLiteBackend,
    'postgres': PostgresBackend,
}


def backend_for_url(url: str, **options: Any) -> Backend:
    dialect = make_url(url).get_backend_name()
    name = 'postgres' if dialect.startswith('postgres') else dialect
    if name not in BACKENDS:
        raise StorageError(ErrorKind.CONNECTION, name, f"Unsupported database backend: {dialect}")
    return BACKENDS[name](url, **options)


class Executor:
    """run/get/all bound to one open connection."""

    def __init__(self, conn: Connection, backend: Backend) -> None:
        self._conn = conn
        self._backend = backend

    def _execute(self, sql: str, params: ParamType):
        statement, bind_params = _prepare_statement(sql, params)
        try:
            return self._conn.execute(statement, bind_params)
        except DBAPIError as exc:
            raise self._backend.wrap(exc) from exc

    def run(self, sql: str, params: ParamType = ()) -> RunResult:
        is_insert = _is_insert(sql)
        result = self._execute(self._backend.prepare(sql), params)
        inserted = self._backend.inserted_id(result) if is_insert else None
        return RunResult(id=inserted, changes=result.rowcount)

    def get(self, sql: str, params: ParamType = ()) -> dict | None:
        row = self._execute(sql, params).mappings().first()
        return dict(row) if row is not None else None

    def all(self, sql: str, params: ParamType = ()) -> list[dict]:
        return [dict(row) for row in self._execute(sql, params).mappings().all()]


class StorageAdapter:
    """Uniform query surface over the configured backend."""

    def __init__(self, url: str, *, pool_size: int = 10, ssl: bool = False,
                 log: logging.Logger | None = None) -> None:
        self.url = url
        self.log = log or logger
        self._options = {'pool_size': pool_size, 'ssl': ssl}
        self._backend: Backend | None = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any], log: logging.Logger | None = None) -> "StorageAdapter":
        from prisonrp.config import database_url

        return cls(
            database_url(config),
            pool_size=config.get('DB_POOL_SIZE', 10),
            ssl=config.get('APP_ENV') == 'production',
            log=log,
        )

    @property
    def backend(self) -> Backend:
        if self._backend is None:
            raise StorageError(ErrorKind.CONNECTION, 'none', 'Storage adapter is not initialized')
        return self._backend

    @property
    def backend_name(self) -> str:
        return self.backend.name

    def connect(self) -> None:
        """Open the backend and verify connectivity; failures here are fatal."""
        backend = backend_for_url(self.url, **self._options)
        try:
            with backend.engine.connect() as conn:
                conn.execute(text('SELECT 1'))
        except DBAPIError as exc:
            backend.dispose()
            raise StorageError(ErrorKind.CONNECTION, backend.name, str(exc.orig)) from exc
        self._backend = backend
        self.log.info(f"Connected to {backend.name} database")

    def initialize(self, seed: bool = True) -> "StorageAdapter":
        """Connect, apply schema, run additive migrations and seed empty tables."""
        from prisonrp.services.schema import bootstrap

        self.connect()
        bootstrap(self, seed=seed)
        return self

    def run(self, sql: str, params: ParamType = ()) -> RunResult:
        with self.backend.engine.begin() as conn:
            return Executor(conn, self.backend).run(sql, params)

    def get(self, sql: str, params: ParamType = ()) -> dict | None:
        with self.backend.engine.begin() as conn:
            return Executor(conn, self.backend).get(sql, params)

    def all(self, sql: str, params: ParamType = ()) -> list[dict]:
        with self.backend.engine.begin() as conn:
            return Executor(conn, self.backend).all(sql, params)

    @contextmanager
    def transaction(self) -> Iterator[Executor]:
        """Group statements; commits on exit, rolls back if the block raises."""
        with self.backend.engine.begin() as conn:
            yield Executor(conn, self.backend)

    def column_names(self, table: str) -> list[str]:
        try:
            columns = inspect(self.backend.engine).get_columns(table)
        except NoSuchTableError as exc:
            raise StorageError(ErrorKind.OTHER, self.backend.name, f"No such table: {table}") from exc
        return [column['name'] for column in columns]

    def add_column(self, table: str, column: str, definition: str) -> None:
        """ALTER TABLE ... ADD COLUMN; raises DUPLICATE_COLUMN when it already exists."""
        if column in self.column_names(table):
            raise StorageError(
                ErrorKind.DUPLICATE_COLUMN,
                self.backend.name,
                f"Column {table}.{column} already exists",
            )
        self.run(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    def close(self) -> None:
        if self._backend is not None:
            self._backend.dispose()
            self._backend = None


class Storage:
    """Flask binding: one adapter per application, reached through ``current_app``."""

    extension_key = 'prisonrp_storage'

    def init_app(self, app) -> None:
        adapter = StorageAdapter.from_config(app.config, log=app.logger)
        with app.app_context():
            adapter.initialize(seed=not app.config.get('SKIP_SEED', False))
        app.extensions[self.extension_key] = adapter

    @property
    def adapter(self) -> StorageAdapter:
        return current_app.extensions[self.extension_key]

    @property
    def backend_name(self) -> str:
        return self.adapter.backend_name

    def run(self, sql: str, params: ParamType = ()) -> RunResult:
        return self.adapter.run(sql, params)

    def get(self, sql: str, params: ParamType = ()) -> dict | None:
        return self.adapter.get(sql, params)

    def all(self, sql: str, params: ParamType = ()) -> list[dict]:
        return self.adapter.all(sql, params)

    def transaction(self):
        return self.adapter.transaction()


__all__ = [
    'ErrorKind',
    'StorageError',
    'RunResult',
    'Backend',
    'SQLiteBackend',
    'PostgresBackend',
    'Executor',
    'StorageAdapter',
    'Storage',
    'now_timestamp',
    'format_timestamp',
    'parse_timestamp',
]

"""
Async relational store client for the Deal Desk engine.

Owns the SQLAlchemy 2.0 async engine. PostgreSQL (asyncpg) is the
production target; SQLite (aiosqlite) is supported for local runs and
tests. Every workflow mutation runs inside one `transaction()` block, which
is the engine's unit of work: the body's writes commit together or not at
all.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

import structlog
from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from ..errors import wrap_database_error
from ..schema import metadata

logger = structlog.get_logger(__name__)

# libpq parameters that asyncpg rejects as connection kwargs
_STRIP_PARAMS = {'channel_binding', 'sslmode'}


def _sanitize_url(url: str) -> tuple[str, bool]:
    """
    Remove URL query params that asyncpg does not understand.

    Returns:
        (sanitized_url, ssl_required). ssl_required is True when the URL
        asked for sslmode=require, which is passed to asyncpg via
        connect_args instead.
    """
    parsed = urlparse(url)
    if not parsed.query:
        return url, False
    params = parse_qs(parsed.query)
    ssl_required = params.get('sslmode', [''])[0] in ('require', 'verify-ca', 'verify-full')
    filtered = {k: v for k, v in params.items() if k not in _STRIP_PARAMS}
    new_query = urlencode(filtered, doseq=True)
    return urlunparse(parsed._replace(query=new_query)), ssl_required


def _normalize_driver(url: str) -> str:
    """Pick the async driver for plain Postgres / SQLite URLs."""
    if url.startswith('postgres://'):
        return url.replace('postgres://', 'postgresql+asyncpg://', 1)
    if url.startswith('postgresql://'):
        return url.replace('postgresql://', 'postgresql+asyncpg://', 1)
    if url.startswith('sqlite://'):
        return url.replace('sqlite://', 'sqlite+aiosqlite://', 1)
    return url


def _serialize_sqlite_writers(engine: AsyncEngine) -> None:
    """
    Make every SQLite transaction take the write lock at BEGIN.

    pysqlite defers BEGIN until the first write, so a read made to decide
    a write would run outside any transaction and FOR UPDATE is not
    available. BEGIN IMMEDIATE makes a second unit of work wait until the
    first commits, and it then reads the committed state.
    """

    @event.listens_for(engine.sync_engine, 'connect')
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, 'begin')
    def _begin_immediate(conn):
        conn.exec_driver_sql('BEGIN IMMEDIATE')


class DatabaseClient:
    """
    Async database client.

    Usage:
        db = DatabaseClient('postgresql://...')
        await db.connect()
        async with db.transaction() as conn:
            ...
    """

    def __init__(self, database_url: str | None = None):
        """
        Initialize with a connection URL.

        Args:
            database_url: postgres://, postgresql://, sqlite:// or an explicit
                          async driver URL (postgresql+asyncpg://,
                          sqlite+aiosqlite://).
        """
        self._engine: AsyncEngine | None = None
        self._database_url = database_url

    async def connect(self, database_url: str | None = None) -> None:
        """
        Create the async engine. Idempotent, no-op if already connected.

        Args:
            database_url: Override the URL from __init__.
        """
        if self._engine is not None:
            return

        url = database_url or self._database_url
        if not url:
            raise ValueError('database_url is required')

        url = _normalize_driver(url)

        if url.startswith('postgresql+asyncpg://'):
            url, ssl_required = _sanitize_url(url)
            connect_args: dict = {'prepared_statement_cache_size': 0}
            if ssl_required:
                connect_args['ssl'] = 'require'
            self._engine = create_async_engine(
                url,
                pool_size=5,
                max_overflow=5,
                pool_pre_ping=True,
                pool_timeout=30,
                connect_args=connect_args,
            )
        else:
            self._engine = create_async_engine(url)
            if self._engine.dialect.name == 'sqlite':
                _serialize_sqlite_writers(self._engine)

        logger.info('database_client.connected', dialect=self._engine.dialect.name)

    async def close(self) -> None:
        """Dispose of the engine and connection pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            logger.info('database_client.closed')

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError('DatabaseClient not connected, call connect() first')
        return self._engine

    async def create_schema(self) -> None:
        """Create all tables that do not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)
        logger.info('database_client.schema_ready')

    async def verify_connectivity(self) -> bool:
        """Return True if we can execute a simple query."""
        try:
            async with self.engine.begin() as conn:
                await conn.execute(text('SELECT 1'))
            return True
        except Exception:
            logger.exception('database_client.connectivity_check_failed')
            return False

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncConnection]:
        """
        Unit of work: commit on success, roll back on any exception.

        Driver errors surface as DatabaseError; domain errors raised by the
        body propagate unchanged (after rollback).
        """
        try:
            async with self.engine.begin() as conn:
                yield conn
        except SQLAlchemyError as exc:
            raise wrap_database_error(exc) from exc

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[AsyncConnection]:
        """Read-only connection; rolled back when the block exits."""
        try:
            async with self.engine.connect() as conn:
                yield conn
        except SQLAlchemyError as exc:
            raise wrap_database_error(exc) from exc

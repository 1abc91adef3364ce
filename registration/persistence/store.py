"""Registration storage on a pooled SQLAlchemy async engine (aiosqlite)."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import Column, MetaData, String, Table, func, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from registration.domain.correlation_id import CorrelationLoggerAdapter
from registration.domain.registration import Registration

STORE_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("registration.persistence.store"), {}
)

IN_MEMORY_DATABASE = ":memory:"
SQLITE_BUSY_TIMEOUT = 5.0

metadata = MetaData()

registrations = Table(
    "registrations",
    metadata,
    Column("id", String, primary_key=True),
    Column("email", String, nullable=False, unique=True),
    Column("name", String, nullable=False),
    Column("subscribed_at", String, nullable=False),
)


class StoreError(Exception):
    """Raised when the database rejects or fails an operation."""


def engine_url(database_uri: str) -> str:
    """Turn a sqlite path (or ``:memory:``) into an aiosqlite URL.

    Values that already carry a scheme are passed through untouched.
    """
    if "://" in database_uri:
        return database_uri
    if database_uri == IN_MEMORY_DATABASE:
        return "sqlite+aiosqlite://"
    return f"sqlite+aiosqlite:///{database_uri}"


def _create_engine(database_uri: str, pool_size: int) -> AsyncEngine:
    if database_uri == IN_MEMORY_DATABASE:
        # every :memory: connection is its own database
        return create_async_engine(engine_url(database_uri), poolclass=StaticPool)
    return create_async_engine(
        engine_url(database_uri),
        pool_size=pool_size,
        max_overflow=0,
        pool_pre_ping=True,
        connect_args={"timeout": SQLITE_BUSY_TIMEOUT},
    )


class RegistrationStore:
    """Registration queries served from a bounded async connection pool.

    The engine owns the pool; each public coroutine checks out one session,
    commits on success and rolls back on failure. Driver errors surface as
    ``StoreError``.
    """

    def __init__(self, database_uri: str, pool_size: int) -> None:
        self._database_uri = database_uri
        self._pool_size = 1 if database_uri == IN_MEMORY_DATABASE else max(1, pool_size)
        self._engine = _create_engine(database_uri, self._pool_size)
        self._session_factory = async_sessionmaker(
            self._engine, class_=AsyncSession, expire_on_commit=False
        )
        self._closed = False

    @classmethod
    async def open(cls, database_uri: str, pool_size: int) -> "RegistrationStore":
        """Create the engine and make sure the schema exists."""
        store = cls(database_uri, pool_size)
        try:
            await store.migrate()
        except StoreError:
            await store.close()
            raise
        STORE_LOGGER.info(
            "Database pool opened",
            extra={"event": "store_opened", "database": database_uri},
        )
        return store

    @property
    def pool_size(self) -> int:
        return self._pool_size

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        if self._closed:
            raise StoreError("store is closed")
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as error:
                await session.rollback()
                STORE_LOGGER.error(
                    "Database operation failed",
                    extra={
                        "event": "store_error",
                        "error_type": type(error).__name__,
                        "error": operation,
                    },
                )
                raise StoreError(f"registration {operation} failed") from error

    async def migrate(self) -> None:
        """Create the registrations table when it is missing."""
        if self._closed:
            raise StoreError("store is closed")
        try:
            async with self._engine.begin() as connection:
                await connection.run_sync(metadata.create_all)
        except SQLAlchemyError as error:
            raise StoreError(f"cannot open database {self._database_uri}") from error

    async def insert(self, registration: Registration) -> bool:
        """Insert the registration; False when the email is already stored."""
        statement = (
            sqlite_insert(registrations)
            .values(
                id=registration.id,
                email=registration.email,
                name=registration.name,
                subscribed_at=registration.subscribed_at,
            )
            .on_conflict_do_nothing(index_elements=["email"])
        )
        async with self._session("insert") as session:
            result = await session.execute(statement)
        return result.rowcount == 1

    async def fetch_by_email(self, email: str) -> Optional[Registration]:
        """Look up one registration; used by tests and operators, not by the endpoints."""
        statement = select(registrations).where(registrations.c.email == email)
        async with self._session("lookup") as session:
            row = (await session.execute(statement)).one_or_none()
        if row is None:
            return None
        return Registration(
            name=row.name, email=row.email, id=row.id, subscribed_at=row.subscribed_at
        )

    async def count(self) -> int:
        """Number of stored registrations; test and operator support only."""
        statement = select(func.count()).select_from(registrations)
        async with self._session("count") as session:
            return (await session.execute(statement)).scalar_one()

    async def close(self) -> None:
        """Dispose of the engine's pool; further calls raise StoreError."""
        if self._closed:
            return
        self._closed = True
        await self._engine.dispose()
        STORE_LOGGER.info(
            "Database pool closed",
            extra={"event": "store_closed", "database": self._database_uri},
        )

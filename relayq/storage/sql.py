"""Async SQLAlchemy key-value store.

Keeps queue snapshots in a single ``relayq_kv`` table so any database that
SQLAlchemy's async engine supports (PostgreSQL via asyncpg, SQLite via
aiosqlite, ...) can back a queue:

- One row per key, upserted on every persist
- Session lifecycle with commit on success and rollback on error
- ``create_tables()`` for dev/test bootstrapping
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator, Optional

from sqlalchemy import DateTime, String, Text, delete, func, select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for relayq tables."""
    pass


class KeyValueEntry(Base):
    """A single stored snapshot."""

    __tablename__ = "relayq_kv"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class SqlKeyValueStore:
    """KeyValueStore over an async SQLAlchemy engine.

    Usage::

        store = SqlKeyValueStore.from_url("sqlite+aiosqlite:///relayq.db")
        await store.create_tables()
        queue = DurableOrderedQueue(store, config)
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_url(cls, url: str, echo: bool = False) -> "SqlKeyValueStore":
        return cls(create_async_engine(url, echo=echo, pool_pre_ping=True))

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_tables(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Dispose of the connection pool."""
        await self.engine.dispose()

    # --- KeyValueStore ---

    async def get(self, key: str) -> Optional[str]:
        async with self.session() as session:
            result = await session.execute(
                select(KeyValueEntry.value).where(KeyValueEntry.key == key)
            )
            return result.scalar_one_or_none()

    async def set(self, key: str, value: str) -> None:
        async with self.session() as session:
            entry = await session.get(KeyValueEntry, key)
            if entry is None:
                session.add(KeyValueEntry(key=key, value=value))
            else:
                entry.value = value

    async def remove(self, key: str) -> None:
        async with self.session() as session:
            await session.execute(delete(KeyValueEntry).where(KeyValueEntry.key == key))

"""Durable storage medium on the SQLAlchemy asyncio engine."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import String, Text, delete, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class StoredBlob(Base):
    """One namespace blob per row."""

    __tablename__ = "fhevm_kv_store"

    name: Mapped[str] = mapped_column(String(255), primary_key=True)
    blob: Mapped[str] = mapped_column(Text, nullable=False)


class SqlStorageMedium:
    """StorageMedium backed by a SQL database (``sqlite+aiosqlite`` by default)."""

    def __init__(self, database_url: str = "sqlite+aiosqlite:///fhevm_session.db"):
        # Accept plain sqlite URLs from the environment
        if database_url.startswith("sqlite:///"):
            database_url = database_url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        self.database_url = database_url
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    async def initialize(self) -> None:
        """Create the engine and the blob table."""
        if self._engine is not None:
            return
        self._engine = create_async_engine(self.database_url, echo=False)
        self._sessionmaker = async_sessionmaker(self._engine, expire_on_commit=False)
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        """Dispose the engine."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._sessionmaker = None

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        if not self._sessionmaker:
            raise RuntimeError("Storage not initialized. Call initialize() first.")

        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def get_item(self, name: str) -> str | None:
        async with self.get_session() as session:
            result = await session.execute(select(StoredBlob.blob).where(StoredBlob.name == name))
            return result.scalar_one_or_none()

    async def set_item(self, name: str, blob: str) -> None:
        """Insert or replace the blob for ``name`` in one statement where the dialect allows."""
        dialect = self._engine.dialect.name if self._engine else None
        async with self.get_session() as session:
            if dialect in ("sqlite", "postgresql"):
                insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
                stmt = insert(StoredBlob).values(name=name, blob=blob)
                stmt = stmt.on_conflict_do_update(index_elements=[StoredBlob.name], set_={"blob": blob})
                await session.execute(stmt)
                return

            result = await session.execute(
                update(StoredBlob).where(StoredBlob.name == name).values(blob=blob)
            )
            if result.rowcount == 0:
                session.add(StoredBlob(name=name, blob=blob))

    async def remove_item(self, name: str) -> None:
        async with self.get_session() as session:
            await session.execute(delete(StoredBlob).where(StoredBlob.name == name))

    async def clear(self) -> None:
        async with self.get_session() as session:
            await session.execute(delete(StoredBlob))

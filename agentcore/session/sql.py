"""SQLAlchemy async session store.

Works with any async driver; tests and the CLI default use sqlite+aiosqlite.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from agentcore.errors import PersistenceError
from agentcore.session.models import (
    CheckpointStats,
    SessionCheckpoint,
    SessionData,
    StoredMessage,
)

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class SessionRow(Base):
    __tablename__ = "sessions"

    id: Mapped[str] = mapped_column(String(200), primary_key=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class MessageRow(Base):
    __tablename__ = "messages"

    session_id: Mapped[str] = mapped_column(
        String(200), ForeignKey("sessions.id", ondelete="CASCADE"), primary_key=True
    )
    position: Mapped[int] = mapped_column(Integer, primary_key=True)
    message_id: Mapped[str] = mapped_column(String(100), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)


class CheckpointRow(Base):
    __tablename__ = "checkpoints"

    session_id: Mapped[str] = mapped_column(
        String(200), ForeignKey("sessions.id", ondelete="CASCADE"), primary_key=True
    )
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    load_after_message_id: Mapped[str] = mapped_column(String(100), nullable=False)
    compressed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    stats: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


class SqlSessionStore:
    def __init__(self, url: str, echo: bool = False) -> None:
        self.engine = create_async_engine(url, echo=echo)
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def connect(self) -> None:
        """Create tables if missing."""
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to initialize session store: {e}") from e

    async def disconnect(self) -> None:
        await self.engine.dispose()

    async def __aenter__(self) -> "SqlSessionStore":
        await self.connect()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.disconnect()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Yield a transactional session; backend errors become PersistenceError."""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            raise PersistenceError(f"Session store error: {e}") from e

    @staticmethod
    async def _touch(session: AsyncSession, session_id: str) -> None:
        now = datetime.now(UTC)
        row = await session.get(SessionRow, session_id)
        if row is None:
            session.add(SessionRow(id=session_id, updated_at=now))
            await session.flush()
        else:
            row.updated_at = now

    @staticmethod
    async def _replace_messages(
        session: AsyncSession, session_id: str, messages: list[StoredMessage]
    ) -> None:
        await session.execute(delete(MessageRow).where(MessageRow.session_id == session_id))
        for position, msg in enumerate(messages):
            session.add(
                MessageRow(
                    session_id=session_id,
                    position=position,
                    message_id=msg.id,
                    payload=msg.model_dump(mode="json"),
                )
            )

    @staticmethod
    async def _replace_checkpoint(
        session: AsyncSession, session_id: str, checkpoint: SessionCheckpoint | None
    ) -> None:
        await session.execute(delete(CheckpointRow).where(CheckpointRow.session_id == session_id))
        if checkpoint is not None:
            session.add(
                CheckpointRow(
                    session_id=session_id,
                    summary=checkpoint.summary,
                    load_after_message_id=checkpoint.load_after_message_id,
                    compressed_at=checkpoint.compressed_at,
                    stats=checkpoint.stats.model_dump(),
                )
            )

    async def save_messages(self, session_id: str, messages: list[StoredMessage]) -> None:
        async with self.session() as session:
            await self._touch(session, session_id)
            await self._replace_messages(session, session_id, messages)

    async def load_messages(self, session_id: str) -> list[StoredMessage]:
        async with self.session() as session:
            result = await session.execute(
                select(MessageRow.payload)
                .where(MessageRow.session_id == session_id)
                .order_by(MessageRow.position)
            )
            return [StoredMessage.model_validate(payload) for payload in result.scalars()]

    async def save_checkpoint(self, session_id: str, checkpoint: SessionCheckpoint) -> None:
        async with self.session() as session:
            await self._touch(session, session_id)
            await self._replace_checkpoint(session, session_id, checkpoint)

    async def load_checkpoint(self, session_id: str) -> SessionCheckpoint | None:
        async with self.session() as session:
            row = await session.get(CheckpointRow, session_id)
            if row is None:
                return None
            compressed_at = row.compressed_at
            if compressed_at.tzinfo is None:
                # sqlite drops tzinfo
                compressed_at = compressed_at.replace(tzinfo=UTC)
            return SessionCheckpoint(
                summary=row.summary,
                load_after_message_id=row.load_after_message_id,
                compressed_at=compressed_at,
                stats=CheckpointStats.model_validate(row.stats or {}),
            )

    async def delete_checkpoint(self, session_id: str) -> None:
        async with self.session() as session:
            await session.execute(
                delete(CheckpointRow).where(CheckpointRow.session_id == session_id)
            )

    async def save_session_data(self, data: SessionData) -> None:
        """Messages and checkpoint in one transaction."""
        async with self.session() as session:
            await self._touch(session, data.session_id)
            await self._replace_messages(session, data.session_id, data.messages)
            await self._replace_checkpoint(session, data.session_id, data.checkpoint)

    async def load_session_data(self, session_id: str) -> SessionData | None:
        if not await self.exists(session_id):
            return None
        return SessionData(
            session_id=session_id,
            messages=await self.load_messages(session_id),
            checkpoint=await self.load_checkpoint(session_id),
        )

    async def exists(self, session_id: str) -> bool:
        async with self.session() as session:
            return await session.get(SessionRow, session_id) is not None

    async def delete(self, session_id: str) -> None:
        async with self.session() as session:
            await session.execute(delete(MessageRow).where(MessageRow.session_id == session_id))
            await session.execute(
                delete(CheckpointRow).where(CheckpointRow.session_id == session_id)
            )
            await session.execute(delete(SessionRow).where(SessionRow.id == session_id))

    async def list_sessions(self) -> list[str]:
        async with self.session() as session:
            result = await session.execute(select(SessionRow.id).order_by(SessionRow.id))
            return list(result.scalars())

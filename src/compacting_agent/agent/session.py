"""
Durable, ordered storage of conversation turns per session.
"""

import asyncio
import json
import weakref
from collections.abc import Sequence
from uuid import uuid4

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import StorageError
from ..llm.base import LLMMessage
from ..models import Message, MessageRole, SandboxContainer, Session, utcnow

logger = structlog.get_logger()


class MessageStore:
    """Append-only turn log keyed by session, with an atomic replace-all.

    ``append`` and ``replace_all`` for one session never interleave. Separate
    sessions share nothing.
    """

    def __init__(self, session_maker: async_sessionmaker):
        self._session_maker = session_maker
        # Entries vanish once no append or replace_all holds the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock(self, session_id: str) -> asyncio.Lock:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock

    @staticmethod
    async def _ensure_session_row(db: AsyncSession, session_id: str) -> Session:
        session = await db.get(Session, session_id)
        if session is None:
            session = Session(id=session_id)
            db.add(session)
        return session

    async def get_or_create_session(self, session_id: str | None = None) -> str:
        """Return ``session_id`` if it exists, otherwise create a new session."""
        try:
            async with self._session_maker() as db:
                if session_id:
                    existing = await db.get(Session, session_id)
                    if existing is not None:
                        return existing.id

                now = utcnow()
                session = Session(id=str(uuid4()), created_at=now, updated_at=now)
                db.add(session)
                await db.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to get or create session", session_id=session_id, error=str(e))
            raise StorageError(f"Failed to get or create session: {e}") from e

        logger.info("Created new session", session_id=session.id, requested=session_id)
        return session.id

    async def get_session(self, session_id: str) -> Session | None:
        """Fetch the session row, if any."""
        try:
            async with self._session_maker() as db:
                return await db.get(Session, session_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read session: {e}") from e

    async def session_exists(self, session_id: str) -> bool:
        return await self.get_session(session_id) is not None

    async def append(self, session_id: str, role: str | MessageRole, content: str) -> Message:
        """Write one turn at the next sequence number and bump the session."""
        role_value = MessageRole(role).value

        async with self._lock(session_id):
            try:
                async with self._session_maker() as db:
                    async with db.begin():
                        session = await self._ensure_session_row(db, session_id)

                        result = await db.execute(
                            select(func.max(Message.sequence))
                            .where(Message.session_id == session_id)
                        )
                        current = result.scalar_one_or_none()
                        next_sequence = 0 if current is None else current + 1

                        now = utcnow()
                        message = Message(
                            session_id=session_id,
                            role=role_value,
                            content=content,
                            sequence=next_sequence,
                            created_at=now,
                        )
                        db.add(message)
                        session.updated_at = now
            except SQLAlchemyError as e:
                logger.error("Failed to append message", session_id=session_id, error=str(e))
                raise StorageError(f"Failed to append message: {e}") from e

        return message

    async def load(self, session_id: str) -> list[Message]:
        """Load all turns of a session in sequence order."""
        try:
            async with self._session_maker() as db:
                result = await db.execute(
                    select(Message)
                    .where(Message.session_id == session_id)
                    .order_by(Message.sequence.asc())
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Failed to load messages", session_id=session_id, error=str(e))
            raise StorageError(f"Failed to load messages: {e}") from e

    async def replace_all(self, session_id: str, messages: Sequence[LLMMessage]) -> list[Message]:
        """Atomically replace a session's turns, renumbering them 0..N-1."""
        rows: list[Message] = []

        async with self._lock(session_id):
            try:
                async with self._session_maker() as db:
                    async with db.begin():
                        session = await self._ensure_session_row(db, session_id)
                        await db.execute(delete(Message).where(Message.session_id == session_id))

                        now = utcnow()
                        for sequence, msg in enumerate(messages):
                            content = msg.content if isinstance(msg.content, str) else json.dumps(msg.content)
                            rows.append(Message(
                                session_id=session_id,
                                role=MessageRole(msg.role).value,
                                content=content,
                                sequence=sequence,
                                created_at=now,
                            ))
                        db.add_all(rows)
                        session.updated_at = now
            except SQLAlchemyError as e:
                logger.error("Failed to replace messages", session_id=session_id, error=str(e))
                raise StorageError(f"Failed to replace messages: {e}") from e

        logger.info("Replaced session messages", session_id=session_id, count=len(rows))
        return rows

    async def record_sandbox(self, session_id: str, container_id: str) -> None:
        """Associate a sandbox container with a session, replacing any prior one."""
        try:
            async with self._session_maker() as db:
                async with db.begin():
                    await self._ensure_session_row(db, session_id)
                    result = await db.execute(
                        select(SandboxContainer).where(SandboxContainer.session_id == session_id)
                    )
                    row = result.scalar_one_or_none()
                    if row is None:
                        db.add(SandboxContainer(session_id=session_id, container_id=container_id))
                    elif row.container_id != container_id:
                        row.container_id = container_id
                        row.created_at = utcnow()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to record sandbox: {e}") from e

    async def get_sandbox(self, session_id: str) -> str | None:
        """Container id recorded for a session."""
        try:
            async with self._session_maker() as db:
                result = await db.execute(
                    select(SandboxContainer.container_id)
                    .where(SandboxContainer.session_id == session_id)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read sandbox: {e}") from e

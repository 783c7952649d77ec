"""
SQLAlchemy-backed stores for user profiles and feedback.

Works with any async driver SQLAlchemy supports; the default configuration uses
a SQLite file through aiosqlite.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy import JSON, DateTime, String, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from preppulse.feedback import Feedback, FeedbackDraft
from preppulse.store import UserRecord, build_feedback


class Base(DeclarativeBase):
    pass


class UserRow(Base):
    __tablename__ = "users"

    uid: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(320))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


class FeedbackRow(Base):
    __tablename__ = "feedback"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    interview_id: Mapped[Optional[str]] = mapped_column(String(128), index=True, nullable=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(128), index=True, nullable=True)
    data: Mapped[Dict[str, Any]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))


def _utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


class Database:
    """Owns the engine and session factory shared by the SQL stores."""

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine = create_async_engine(url, echo=echo)
        self.sessions = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)

    async def create_all(self) -> None:
        """Create missing tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info(f"Database ready ({self.engine.url.render_as_string(hide_password=True)})")

    async def dispose(self) -> None:
        await self.engine.dispose()


class SqlUserStore:
    def __init__(self, database: Database):
        self.database = database

    async def get(self, uid: str) -> Optional[UserRecord]:
        async with self.database.sessions() as session:
            row = await session.get(UserRow, uid)
        if row is None:
            return None
        return UserRecord(uid=row.uid, name=row.name, email=row.email, created_at=_utc(row.created_at))

    async def save(self, user: UserRecord) -> None:
        async with self.database.sessions() as session:
            await session.merge(
                UserRow(uid=user.uid, name=user.name, email=user.email, created_at=user.created_at)
            )
            await session.commit()


class SqlFeedbackStore:
    """Feedback rows keyed by id. Saving with an existing id overwrites the row."""

    def __init__(self, database: Database):
        self.database = database

    async def save(
        self,
        draft: FeedbackDraft,
        interview_id: Optional[str],
        user_id: Optional[str],
        feedback_id: Optional[str] = None,
    ) -> Feedback:
        feedback = build_feedback(draft, interview_id, user_id, feedback_id)
        async with self.database.sessions() as session:
            await session.merge(
                FeedbackRow(
                    id=feedback.id,
                    interview_id=interview_id,
                    user_id=user_id,
                    data=draft.model_dump(mode="json"),
                    created_at=feedback.created_at,
                )
            )
            await session.commit()
        return feedback

    async def get(self, feedback_id: str) -> Optional[Feedback]:
        async with self.database.sessions() as session:
            row = await session.get(FeedbackRow, feedback_id)
        return _to_feedback(row) if row is not None else None

    async def find(self, interview_id: str, user_id: str) -> Optional[Feedback]:
        async with self.database.sessions() as session:
            result = await session.execute(
                select(FeedbackRow)
                .where(FeedbackRow.interview_id == interview_id, FeedbackRow.user_id == user_id)
                .order_by(FeedbackRow.created_at.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
        return _to_feedback(row) if row is not None else None


def _to_feedback(row: FeedbackRow) -> Feedback:
    return Feedback(
        id=row.id,
        interview_id=row.interview_id,
        user_id=row.user_id,
        created_at=_utc(row.created_at),
        **row.data,
    )

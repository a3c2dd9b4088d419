from typing import List, Optional
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer
from sqlalchemy.types import TypeDecorator
from sqlmodel import Field, Relationship, SQLModel


PRIORITY_LABELS = {1: "Low", 2: "Medium", 3: "High"}
DEFAULT_PRIORITY = 2


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Aware UTC datetime; naive input is taken to already be UTC."""
    if value is None:
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware DateTime that always binds and returns UTC.
    SQLite keeps no offset, so values read back from it get UTC re-attached.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return to_utc(value)

    def process_result_value(self, value, dialect):
        return to_utc(value)


def priority_label(priority: int) -> str:
    return PRIORITY_LABELS.get(priority, "Unknown")


class User(SQLModel, table=True):
    """
    A registered account. ``email`` is stored normalized (trimmed, lower-case)
    and the unique index on it is the final guard against duplicate sign-ups.
    """
    # Ids are never reused: a token names its account by id alone.
    __table_args__ = {"sqlite_autoincrement": True}

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(max_length=255, unique=True, index=True, nullable=False)
    hashed_password: str = Field(nullable=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, nullable=False)

    tasks: List["Task"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class Task(SQLModel, table=True):
    __table_args__ = (
        Index("ix_task_user_id_is_completed", "user_id", "is_completed"),
        {"sqlite_autoincrement": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(
        sa_column=Column(Integer, ForeignKey("user.id", ondelete="CASCADE"), index=True, nullable=False)
    )
    title: str = Field(max_length=200, nullable=False)
    description: Optional[str] = Field(default=None, max_length=2000)
    due_date: Optional[datetime] = Field(default=None, sa_type=UTCDateTime, index=True)
    priority: int = Field(default=DEFAULT_PRIORITY, nullable=False)
    is_completed: bool = Field(default=False, nullable=False)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, nullable=False)
    updated_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)

    user: Optional[User] = Relationship(back_populates="tasks")

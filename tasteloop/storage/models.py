"""SQLAlchemy ORM models for tasteloop."""

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tasteloop.storage.db import Base


class ItemFeedback(Base):
    """Latest like/dislike per user and item (upserted, never appended)."""

    __tablename__ = "item_feedback"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    item_id: Mapped[str] = mapped_column(String, nullable=False)
    domain: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    polarity: Mapped[str] = mapped_column(String, nullable=False)
    signals_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_item_feedback_user_item"),
        CheckConstraint("polarity IN ('like', 'dislike')", name="ck_item_feedback_polarity"),
        CheckConstraint(
            "domain IS NULL OR domain IN ('music', 'film')", name="ck_item_feedback_domain"
        ),
        Index("ix_item_feedback_user_updated", "user_id", "updated_at"),
    )


class HistoryRecord(Base):
    """Authoritative per-item recommendation history."""

    __tablename__ = "history_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    item_id: Mapped[str] = mapped_column(String, nullable=False)
    polarity: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    seen_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "item_id", name="uq_history_entries_user_item"),
        Index("ix_history_entries_user", "user_id"),
    )


class StoredPreference(Base):
    """Durable per-user, per-domain preferences as a JSON field map."""

    __tablename__ = "stored_preferences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    domain: Mapped[str] = mapped_column(String, nullable=False)
    fields_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "domain", name="uq_stored_preferences_user_domain"),
        CheckConstraint("domain IN ('music', 'film')", name="ck_stored_preferences_domain"),
    )


class Event(Base):
    """Audit log of engine events."""

    __tablename__ = "events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_name: Mapped[str] = mapped_column(String, nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    item_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_events_name_created", "event_name", "created_at"),
        Index("ix_events_user_created", "user_id", "created_at"),
    )

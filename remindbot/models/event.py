import datetime as dt
from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from remindbot.utils import utcnow
from .base import Base


EVENT_TYPES = ("completed", "skipped", "auto_skipped", "postponed", "cancelled")


class ReminderEvent(Base):
    """Append-only transition log; never updated."""

    __tablename__ = "reminder_events"
    __table_args__ = (
        Index("ix_reminder_events_user_created", "user_id", "created_at"),
        Index("ix_reminder_events_type", "event_type"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reminder_id: Mapped[int | None] = mapped_column(ForeignKey("reminders.id"), nullable=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    routine_id: Mapped[int | None] = mapped_column(ForeignKey("routines.id"), nullable=True)

    event_type: Mapped[str] = mapped_column(String(20))
    event_source: Mapped[str] = mapped_column(String(20), default="bot")
    metadata_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)

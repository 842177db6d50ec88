import datetime as dt
from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Time, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from remindbot.utils import utcnow
from .base import Base


PENDING = "pending"
SENT = "sent"
COMPLETED = "completed"
SKIPPED = "skipped"
CANCELLED = "cancelled"

OPEN_STATUSES = (PENDING, SENT)
TERMINAL_STATUSES = (COMPLETED, SKIPPED, CANCELLED)


class Reminder(Base):
    __tablename__ = "reminders"
    __table_args__ = (
        UniqueConstraint("routine_id", "scheduled_date", "scheduled_time", name="uq_reminders_occurrence"),
        Index("ix_reminders_user_date", "user_id", "scheduled_date"),
        Index("ix_reminders_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    routine_id: Mapped[int] = mapped_column(ForeignKey("routines.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"))

    # User-local wall clock
    scheduled_date: Mapped[dt.date] = mapped_column(Date)
    scheduled_time: Mapped[dt.time] = mapped_column(Time)

    status: Mapped[str] = mapped_column(String(20), default=PENDING)
    postpone_count: Mapped[int] = mapped_column(Integer, default=0)
    max_postpones: Mapped[int] = mapped_column(Integer, default=2)
    escalation_level: Mapped[int] = mapped_column(Integer, default=0)

    # UTC
    sent_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)
    postponed_until: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)
    confirmation_source: Mapped[str | None] = mapped_column(String(20), nullable=True)
    last_error: Mapped[str | None] = mapped_column(String(400), nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    routine = relationship("Routine")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def postpones_remaining(self) -> int:
        return max(0, (self.max_postpones or 0) - (self.postpone_count or 0))

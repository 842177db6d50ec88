import datetime as dt
from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship

from remindbot.utils import utcnow
from .base import Base


ROUTINE_CATEGORIES = ("habit", "medication", "task")
SCHEDULE_PATTERNS = ("daily", "weekdays", "custom")


class Routine(Base):
    __tablename__ = "routines"
    __table_args__ = (
        Index("ix_routines_user_active", "user_id", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)

    category: Mapped[str] = mapped_column(String(20), default="habit")
    title: Mapped[str] = mapped_column(String(100))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    icon: Mapped[str | None] = mapped_column(String(10), nullable=True)
    dosage: Mapped[str | None] = mapped_column(String(50), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    grace_period_min: Mapped[int] = mapped_column(Integer, default=120)
    priority: Mapped[int] = mapped_column(Integer, default=1)  # 3 for medication

    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at: Mapped[dt.datetime | None] = mapped_column(DateTime, nullable=True)

    user = relationship("User", back_populates="routines")
    schedules = relationship("Schedule", back_populates="routine", cascade="all, delete-orphan")


class Schedule(Base):
    __tablename__ = "schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    routine_id: Mapped[int] = mapped_column(ForeignKey("routines.id", ondelete="CASCADE"), index=True)

    pattern: Mapped[str] = mapped_column(String(20), default="daily")
    time_weekdays: Mapped[dt.time | None] = mapped_column(Time, nullable=True)
    time_weekends: Mapped[dt.time | None] = mapped_column(Time, nullable=True)
    custom_days: Mapped[list | None] = mapped_column(JSON, nullable=True)  # ISO weekdays, 1=Mon
    extra_times: Mapped[list | None] = mapped_column(JSON, nullable=True)  # ["13:00", "20:00"]
    end_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)

    routine = relationship("Routine", back_populates="schedules")

import datetime as dt
from sqlalchemy import Boolean, String, DateTime, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from remindbot.utils import utcnow
from .base import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("telegram_chat_id", name="uq_users_telegram_chat_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    telegram_chat_id: Mapped[str] = mapped_column(String(64), index=True)
    full_name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), default="Europe/Moscow")

    # Local "HH:MM"; either one missing disables quiet hours
    quiet_hours_start: Mapped[str | None] = mapped_column(String(5), nullable=True, default="23:00")
    quiet_hours_end: Mapped[str | None] = mapped_column(String(5), nullable=True, default="08:00")

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)

    routines = relationship("Routine", back_populates="user", cascade="all, delete-orphan")

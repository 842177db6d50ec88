"""Initial schema (users, routines, schedules, reminders, events)

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-18
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("telegram_chat_id", sa.String(length=64), nullable=False),
        sa.Column("full_name", sa.String(length=120), nullable=True),
        sa.Column("timezone", sa.String(length=64), nullable=False, server_default="Europe/Moscow"),
        sa.Column("quiet_hours_start", sa.String(length=5), nullable=True, server_default="23:00"),
        sa.Column("quiet_hours_end", sa.String(length=5), nullable=True, server_default="08:00"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("telegram_chat_id", name="uq_users_telegram_chat_id"),
    )
    op.create_index("ix_users_telegram_chat_id", "users", ["telegram_chat_id"], unique=False)

    op.create_table(
        "routines",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("category", sa.String(length=20), nullable=False, server_default="habit"),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("icon", sa.String(length=10), nullable=True),
        sa.Column("dosage", sa.String(length=50), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("grace_period_min", sa.Integer(), nullable=False, server_default="120"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_routines_user_id", "routines", ["user_id"], unique=False)
    op.create_index("ix_routines_user_active", "routines", ["user_id", "is_active"], unique=False)

    op.create_table(
        "schedules",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("routine_id", sa.Integer(), sa.ForeignKey("routines.id", ondelete="CASCADE"), nullable=False),
        sa.Column("pattern", sa.String(length=20), nullable=False, server_default="daily"),
        sa.Column("time_weekdays", sa.Time(), nullable=True),
        sa.Column("time_weekends", sa.Time(), nullable=True),
        sa.Column("custom_days", sa.JSON(), nullable=True),
        sa.Column("extra_times", sa.JSON(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_schedules_routine_id", "schedules", ["routine_id"], unique=False)

    op.create_table(
        "reminders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("routine_id", sa.Integer(), sa.ForeignKey("routines.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("scheduled_time", sa.Time(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("postpone_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_postpones", sa.Integer(), nullable=False, server_default="2"),
        sa.Column("escalation_level", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sent_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("postponed_until", sa.DateTime(), nullable=True),
        sa.Column("confirmation_source", sa.String(length=20), nullable=True),
        sa.Column("last_error", sa.String(length=400), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("routine_id", "scheduled_date", "scheduled_time", name="uq_reminders_occurrence"),
    )
    op.create_index("ix_reminders_routine_id", "reminders", ["routine_id"], unique=False)
    op.create_index("ix_reminders_user_date", "reminders", ["user_id", "scheduled_date"], unique=False)
    op.create_index("ix_reminders_status", "reminders", ["status"], unique=False)

    op.create_table(
        "reminder_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("reminder_id", sa.Integer(), sa.ForeignKey("reminders.id"), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("routine_id", sa.Integer(), sa.ForeignKey("routines.id"), nullable=True),
        sa.Column("event_type", sa.String(length=20), nullable=False),
        sa.Column("event_source", sa.String(length=20), nullable=False, server_default="bot"),
        sa.Column("metadata_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_reminder_events_reminder_id", "reminder_events", ["reminder_id"], unique=False)
    op.create_index("ix_reminder_events_user_created", "reminder_events", ["user_id", "created_at"], unique=False)
    op.create_index("ix_reminder_events_type", "reminder_events", ["event_type"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_reminder_events_type", table_name="reminder_events")
    op.drop_index("ix_reminder_events_user_created", table_name="reminder_events")
    op.drop_index("ix_reminder_events_reminder_id", table_name="reminder_events")
    op.drop_table("reminder_events")
    op.drop_index("ix_reminders_status", table_name="reminders")
    op.drop_index("ix_reminders_user_date", table_name="reminders")
    op.drop_index("ix_reminders_routine_id", table_name="reminders")
    op.drop_table("reminders")
    op.drop_index("ix_schedules_routine_id", table_name="schedules")
    op.drop_table("schedules")
    op.drop_index("ix_routines_user_active", table_name="routines")
    op.drop_index("ix_routines_user_id", table_name="routines")
    op.drop_table("routines")
    op.drop_index("ix_users_telegram_chat_id", table_name="users")
    op.drop_table("users")

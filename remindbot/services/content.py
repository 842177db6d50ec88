"""Reminder message content.

The scheduler never builds text itself: it asks a ``ContentProvider`` for the
content of a (category, message kind) pair and passes the result to the
delivery client untouched. A provider returning ``None`` means "nothing is
defined for this step", which at the last escalation level is what triggers
auto-skip.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from remindbot.i18n.core import lookup, t
from remindbot.settings import settings


class ContentMissingError(LookupError):
    """No content for a message that must be sent (configuration error)."""


class RoutineCategory(str, Enum):
    HABIT = "habit"
    MEDICATION = "medication"
    TASK = "task"

    @classmethod
    def parse(cls, value: str | None) -> "RoutineCategory":
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.HABIT


class MessageKind(str, Enum):
    INITIAL = "initial"
    ESCALATION_1 = "escalation_1"
    ESCALATION_2 = "escalation_2"
    ESCALATION_3 = "escalation_3"
    AUTO_SKIP = "auto_skip"

    @classmethod
    def escalation(cls, level: int) -> "MessageKind":
        return cls(f"escalation_{level}")


@dataclass(frozen=True)
class ReminderAction:
    label: str
    callback_data: str


@dataclass(frozen=True)
class ReminderContent:
    text: str
    actions: tuple[tuple[ReminderAction, ...], ...] = ()


def callback_complete(reminder_id: int) -> str:
    return f"rem:ok:{reminder_id}"


def callback_skip(reminder_id: int) -> str:
    return f"rem:skip:{reminder_id}"


def callback_postpone(reminder_id: int, minutes: int) -> str:
    return f"rem:p:{reminder_id}:{minutes}"


class ContentProvider(Protocol):
    def render(self, kind: MessageKind, routine, reminder) -> ReminderContent | None: ...


class CatalogContentProvider:
    """Content from the JSON catalogs in ``remindbot/i18n``."""

    def __init__(self, locale: str | None = None, postpone_minutes: int | None = None) -> None:
        self.locale = locale or settings.LOCALE
        self.postpone_minutes = postpone_minutes or settings.DEFAULT_POSTPONE_MIN

    def _context(self, category: RoutineCategory, at: dt.time | None) -> str:
        hour = at.hour if at else 12
        if category is RoutineCategory.MEDICATION:
            slot = "evening" if hour >= 20 else "morning" if hour < 10 else "day"
        elif category is RoutineCategory.HABIT:
            slot = "morning" if hour < 10 else "day"
        else:
            return ""
        return t(f"reminder.context.{category.value}.{slot}", self.locale)

    def _actions(self, kind: MessageKind, category: RoutineCategory, reminder_id: int):
        done_key = "button.taken" if category is RoutineCategory.MEDICATION else "button.done"
        done = ReminderAction(t(done_key, self.locale), callback_complete(reminder_id))
        skip = ReminderAction(t("button.skip", self.locale), callback_skip(reminder_id))
        if kind is MessageKind.INITIAL:
            postpone = ReminderAction(
                t("button.postpone", self.locale, minutes=self.postpone_minutes),
                callback_postpone(reminder_id, self.postpone_minutes),
            )
            return ((done,), (postpone, skip))
        if kind is MessageKind.ESCALATION_1:
            again = ReminderAction(
                t("button.remind_again", self.locale),
                callback_postpone(reminder_id, self.postpone_minutes),
            )
            return ((done,), (again,))
        if kind is MessageKind.AUTO_SKIP:
            return ()
        return ((done, skip),)

    def render(self, kind: MessageKind, routine, reminder) -> ReminderContent | None:
        category = RoutineCategory.parse(getattr(routine, "category", None))
        template = lookup(f"reminder.{category.value}.{kind.value}", self.locale)
        if template is None:
            return None
        dosage = getattr(routine, "dosage", None)
        text = template.format(
            icon=getattr(routine, "icon", None) or "⭐",
            title=getattr(routine, "title", ""),
            dosage=f" ({dosage})" if dosage else "",
            context=self._context(category, getattr(reminder, "scheduled_time", None)),
        ).strip()
        return ReminderContent(text=text, actions=self._actions(kind, category, reminder.id))

from .base import Base
from .user import User
from .routine import Routine, Schedule
from .reminder import Reminder
from .event import ReminderEvent

__all__ = [
    "Base",
    "User",
    "Routine",
    "Schedule",
    "Reminder",
    "ReminderEvent",
]

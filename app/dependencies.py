from __future__ import annotations

from functools import lru_cache

from reminders.dispatcher import ReminderDispatcher
from repos.reminder_repo import ReminderRepository


# Built on first request so importing the app needs no credentials.
@lru_cache(maxsize=1)
def get_dispatcher() -> ReminderDispatcher:
    return ReminderDispatcher()


def get_reminder_repo() -> ReminderRepository:
    return get_dispatcher().reminders

from __future__ import annotations

from models.reminders import DEFAULT_MEDICATION_NAME, Notification

REMINDER_TITLE = "Medication Reminder"
MED_NAME_SEPARATOR = " & "


def merge_med_name(current: str, med_name: str) -> str:
    """
    Append med_name unless it already appears in current.

    Plain substring containment, case-sensitive: "Med" is absorbed by "MedA".
    """
    if med_name in current:
        return current
    return f"{current}{MED_NAME_SEPARATOR}{med_name}"


def format_reminder_notification(med_name: str) -> Notification:
    return Notification(title=REMINDER_TITLE, body=f"Time to take {med_name or DEFAULT_MEDICATION_NAME}!")

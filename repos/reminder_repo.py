from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from google.cloud.firestore import AsyncClient

from models.reminders import DEFAULT_MEDICATION_NAME, Reminder
from models.schema import COL_SCHEDULED_REMINDERS, FIELD_DUE_AT, FIELD_MEDICATION_NAME, FIELD_USER_ID
from storage.firestore_client import get_firestore_client


class ReminderRepository:
    def __init__(self, db: Optional[AsyncClient] = None):
        self.db = db or get_firestore_client()

    def _col(self):
        return self.db.collection(COL_SCHEDULED_REMINDERS)

    async def list_due(self, start: datetime, end: datetime) -> List[Reminder]:
        """Reminders with start <= dueAt < end."""
        query = (
            self._col()
            .where(FIELD_DUE_AT, ">=", start)
            .where(FIELD_DUE_AT, "<", end)
        )
        out: List[Reminder] = []
        for snap in await query.get():
            d = snap.to_dict() or {}
            out.append(
                Reminder(
                    id=snap.id,
                    user_id=str(d.get(FIELD_USER_ID) or ""),
                    medication_name=d.get(FIELD_MEDICATION_NAME) or DEFAULT_MEDICATION_NAME,
                    due_at=d.get(FIELD_DUE_AT),
                )
            )
        return out

    async def delete(self, reminder_id: str) -> None:
        # Firestore deletes are idempotent; a missing document is not an error.
        await self._col().document(reminder_id).delete()

    async def schedule(self, user_id: str, medication_name: str, due_at: datetime) -> str:
        ref = self._col().document()
        await ref.set({
            FIELD_USER_ID: user_id,
            FIELD_MEDICATION_NAME: medication_name,
            FIELD_DUE_AT: due_at,
        })
        return ref.id

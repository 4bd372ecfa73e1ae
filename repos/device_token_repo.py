from __future__ import annotations

from typing import List, Optional

from google.cloud.firestore import AsyncClient

from models.reminders import DeviceToken
from models.schema import COL_FCM_TOKENS, COL_USERS
from storage.firestore_client import get_firestore_client


class DeviceTokenRepository:
    """users/{user_id}/fcmTokens/{token}: the document id is the FCM token itself."""

    def __init__(self, db: Optional[AsyncClient] = None):
        self.db = db or get_firestore_client()

    def _tokens_col(self, user_id: str):
        return self.db.collection(COL_USERS).document(user_id).collection(COL_FCM_TOKENS)

    async def list_device_tokens(self, user_id: str) -> List[DeviceToken]:
        out = []
        for snap in await self._tokens_col(user_id).get():
            d = snap.to_dict() or {}
            out.append(DeviceToken(token_id=snap.id, created_at=d.get("createdAt"), user_agent=d.get("userAgent") or ""))
        return out

    async def list_tokens(self, user_id: str) -> List[str]:
        return [t.token_id for t in await self.list_device_tokens(user_id)]

    async def delete(self, user_id: str, token: str) -> None:
        await self._tokens_col(user_id).document(token).delete()

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from app.dependencies import get_reminder_repo
from repos.reminder_repo import ReminderRepository
from security.operator_auth import OperatorClaims, verify_operator_request

router = APIRouter()
log = logging.getLogger("medrem.routers.admin")


class TestReminderRequest(BaseModel):
    user_id: str = Field(min_length=1)
    medication_name: str = Field(default="Test medication", min_length=1)
    due_in_minutes: int = Field(default=1, ge=0, le=72 * 60)


@router.get("/whoami")
def whoami(request: Request):
    claims = verify_operator_request(request)
    return {"ok": True, "claims": {"sub": claims.get("sub"), "email": claims.get("email"), "aud": claims.get("aud")}}


@router.post("/schedule_test_reminder")
async def schedule_test_reminder(
    body: TestReminderRequest,
    claims: dict = OperatorClaims,
    repo: ReminderRepository = Depends(get_reminder_repo),
):
    due_at = datetime.now(timezone.utc) + timedelta(minutes=body.due_in_minutes)
    reminder_id = await repo.schedule(body.user_id, body.medication_name, due_at)
    log.info(
        "test_reminder_scheduled",
        extra={
            "extra": {
                "event": "test_reminder_scheduled",
                "reminder_id": reminder_id,
                "user_id": body.user_id,
                "due_at": due_at.isoformat(),
                "operator": claims.get("email") or claims.get("sub"),
            }
        },
    )
    return {"ok": True, "reminder_id": reminder_id, "due_at": due_at.isoformat()}

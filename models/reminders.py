from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

DEFAULT_MEDICATION_NAME = "your medication"

# Provider error codes that mean the device token will never work again.
ERROR_TOKEN_NOT_REGISTERED = "messaging/registration-token-not-registered"
ERROR_INVALID_REGISTRATION_TOKEN = "messaging/invalid-registration-token"
INVALID_TOKEN_CODES = frozenset({ERROR_TOKEN_NOT_REGISTERED, ERROR_INVALID_REGISTRATION_TOKEN})


@dataclass
class Reminder:
    id: str
    user_id: str
    medication_name: str
    due_at: Optional[datetime] = None


@dataclass
class DeviceToken:
    token_id: str
    created_at: Optional[datetime] = None
    user_agent: str = ""


@dataclass
class Notification:
    title: str
    body: str


@dataclass
class NotificationBatchEntry:
    notification: Notification
    token: str
    user_id: str


@dataclass
class UserAggregate:
    """All due reminders of one user folded into a single notification.

    ``reminder_id`` is the last reminder seen for the user; it is only useful
    as log context when the user has several reminders due.
    """

    med_name: str
    reminder_id: str
    tokens: List[str] = field(default_factory=list)


@dataclass
class SendResult:
    success: bool
    message_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: str = ""


@dataclass
class DispatchSummary:
    ok: bool = True
    reminders: int = 0
    users: int = 0
    sent: int = 0
    succeeded: int = 0
    failed: int = 0
    reminders_deleted: int = 0
    tokens_deleted: int = 0
    duration_ms: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

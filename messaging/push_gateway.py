from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import List, Optional, Sequence

import firebase_admin
from firebase_admin import credentials, exceptions, messaging

from config.settings import settings
from models.reminders import (
    ERROR_INVALID_REGISTRATION_TOKEN,
    ERROR_TOKEN_NOT_REGISTERED,
    NotificationBatchEntry,
    SendResult,
)
from ops.metrics import Timer

log = logging.getLogger("medrem.push")


class PushGateway:
    """One result per entry, in the order the entries were given.

    Raising means the whole call failed and nothing can be said about
    individual entries.
    """

    async def send_each(self, entries: Sequence[NotificationBatchEntry]) -> List[SendResult]:
        raise NotImplementedError


def normalize_error_code(exc: Optional[BaseException]) -> str:
    if exc is None:
        return "messaging/unknown-error"
    if isinstance(exc, messaging.UnregisteredError):
        return ERROR_TOKEN_NOT_REGISTERED
    if isinstance(exc, exceptions.InvalidArgumentError) and "registration token" in str(exc).lower():
        return ERROR_INVALID_REGISTRATION_TOKEN
    code = getattr(exc, "code", None) or type(exc).__name__
    return "messaging/" + str(code).lower().replace("_", "-")


def _chunks(items: Sequence[NotificationBatchEntry], size: int):
    size = max(1, int(size))
    for i in range(0, len(items), size):
        yield items[i:i + size]


def ensure_firebase_app(
    project_id: Optional[str] = None,
    credentials_json: Optional[str] = None,
) -> firebase_admin.App:
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    proj = project_id if project_id is not None else settings.FCM_PROJECT_ID
    creds_src = credentials_json if credentials_json is not None else settings.FCM_CREDENTIALS_JSON
    creds_src = (creds_src or "").strip()
    options = {"projectId": proj} if proj else None

    if creds_src.startswith("{"):
        source = "inline_json"
        app = firebase_admin.initialize_app(credentials.Certificate(json.loads(creds_src)), options=options)
    elif creds_src and os.path.exists(creds_src):
        source = "file"
        app = firebase_admin.initialize_app(credentials.Certificate(creds_src), options=options)
    else:
        # ApplicationDefault credentials (Cloud Run service account)
        source = "adc"
        app = firebase_admin.initialize_app(options=options)

    log.info("firebase_app_initialized", extra={"extra": {"event": "firebase_app_initialized", "project_id": proj, "credentials": source}})
    return app


class FcmPushGateway(PushGateway):
    def __init__(
        self,
        app: Optional[firebase_admin.App] = None,
        max_batch_size: Optional[int] = None,
        dry_run: Optional[bool] = None,
    ):
        self._app = app
        self.max_batch_size = max_batch_size or settings.FCM_MAX_BATCH_SIZE
        self.dry_run = settings.FCM_DRY_RUN if dry_run is None else dry_run

    @property
    def app(self) -> firebase_admin.App:
        if self._app is None:
            self._app = ensure_firebase_app()
        return self._app

    def _send_chunk(self, chunk: Sequence[NotificationBatchEntry]) -> List[SendResult]:
        msgs = [
            messaging.Message(
                token=e.token,
                notification=messaging.Notification(title=e.notification.title, body=e.notification.body),
            )
            for e in chunk
        ]
        resp = messaging.send_each(msgs, dry_run=self.dry_run, app=self.app)
        out: List[SendResult] = []
        for r in resp.responses:
            if r.success:
                out.append(SendResult(success=True, message_id=r.message_id))
            else:
                out.append(
                    SendResult(
                        success=False,
                        error_code=normalize_error_code(r.exception),
                        error_message=str(r.exception or ""),
                    )
                )
        return out

    async def send_each(self, entries: Sequence[NotificationBatchEntry]) -> List[SendResult]:
        t = Timer()
        results: List[SendResult] = []
        for chunk in _chunks(list(entries), self.max_batch_size):
            # firebase-admin is blocking; keep the event loop free.
            results.extend(await asyncio.to_thread(self._send_chunk, chunk))

        log.info(
            "fcm_send_each_result",
            extra={
                "extra": {
                    "event": "fcm_send_each_result",
                    "messages": len(results),
                    "success_count": sum(1 for r in results if r.success),
                    "failure_count": sum(1 for r in results if not r.success),
                    "dry_run": self.dry_run,
                    "latency_ms": t.ms(),
                }
            },
        )
        return results

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from config.settings import settings
from messaging.push_gateway import FcmPushGateway, PushGateway
from models.reminders import (
    INVALID_TOKEN_CODES,
    DispatchSummary,
    NotificationBatchEntry,
    Reminder,
    SendResult,
    UserAggregate,
)
from ops.metrics import Timer
from ops.structured_logger import token_hint
from reminders.formatter import format_reminder_notification, merge_med_name
from repos.device_token_repo import DeviceTokenRepository
from repos.reminder_repo import ReminderRepository
from storage.firestore_client import get_firestore_client

log = logging.getLogger("medrem.dispatcher")


class ReminderDispatcher:
    """
    One scan of scheduledReminders, run on the scheduler cadence.

    fetch_due -> group_by_user -> resolve_tokens -> build_batch -> send
    -> collect_invalid_tokens -> cleanup, composed by run().

    Failure boundaries:
      - a token fetch failure only affects that user (recovered in resolve_tokens)
      - anything else raised by a stage ends the run in run()'s handler;
        reminders are deleted only when the run reaches cleanup.
    """

    def __init__(
        self,
        reminders: Optional[ReminderRepository] = None,
        tokens: Optional[DeviceTokenRepository] = None,
        gateway: Optional[PushGateway] = None,
        lookahead_minutes: Optional[int] = None,
        time_zone: Optional[str] = None,
        delete_orphans: Optional[bool] = None,
    ):
        if reminders is None or tokens is None:
            db = get_firestore_client()
            reminders = reminders or ReminderRepository(db)
            tokens = tokens or DeviceTokenRepository(db)
        self.reminders = reminders
        self.tokens = tokens
        self.gateway = gateway or FcmPushGateway()
        if lookahead_minutes is None:
            lookahead_minutes = settings.REMINDER_LOOKAHEAD_MINUTES
        self.lookahead = timedelta(minutes=lookahead_minutes)
        self.tz = ZoneInfo(time_zone or settings.REMINDER_TIME_ZONE)
        self.delete_orphans = settings.DELETE_ORPHAN_REMINDERS if delete_orphans is None else delete_orphans

    def window(self, now: datetime) -> Tuple[datetime, datetime]:
        """Half-open [now, now + lookahead) so adjacent runs never overlap."""
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        return now, now + self.lookahead

    async def fetch_due(self, now: datetime) -> List[Reminder]:
        start, end = self.window(now)
        log.info(
            "reminder_scan_started",
            extra={
                "extra": {
                    "event": "reminder_scan_started",
                    "window_start": start.isoformat(),
                    "window_end": end.isoformat(),
                    "local_time": start.astimezone(self.tz).isoformat(),
                    "time_zone": str(self.tz),
                }
            },
        )
        return list(await self.reminders.list_due(start, end))

    def group_by_user(self, reminders: Sequence[Reminder]) -> Dict[str, UserAggregate]:
        aggregates: Dict[str, UserAggregate] = {}
        for r in reminders:
            if not r.user_id:
                log.warning(
                    "reminder_missing_user_id",
                    extra={"extra": {"event": "reminder_missing_user_id", "reminder_id": r.id}},
                )
                continue
            agg = aggregates.get(r.user_id)
            if agg is None:
                aggregates[r.user_id] = UserAggregate(med_name=r.medication_name, reminder_id=r.id)
            else:
                agg.med_name = merge_med_name(agg.med_name, r.medication_name)
                agg.reminder_id = r.id
        return aggregates

    async def _load_user_tokens(self, user_id: str, agg: UserAggregate) -> None:
        try:
            tokens = await self.tokens.list_tokens(user_id)
        except Exception as e:
            # Isolated per user: the rest of the batch still goes out.
            log.error(
                "token_fetch_failed",
                extra={
                    "extra": {
                        "event": "token_fetch_failed",
                        "user_id": user_id,
                        "error_type": type(e).__name__,
                        "message": str(e),
                    }
                },
                exc_info=True,
            )
            agg.tokens = []
            return

        if tokens:
            agg.tokens = list(tokens)
        else:
            log.warning("no_tokens_found", extra={"extra": {"event": "no_tokens_found", "user_id": user_id}})

    async def resolve_tokens(self, aggregates: Dict[str, UserAggregate]) -> None:
        await asyncio.gather(*(self._load_user_tokens(uid, agg) for uid, agg in aggregates.items()))

    def build_batch(self, aggregates: Dict[str, UserAggregate]) -> List[NotificationBatchEntry]:
        batch: List[NotificationBatchEntry] = []
        for user_id, agg in aggregates.items():
            if not agg.tokens:
                log.warning(
                    "reminder_not_deliverable",
                    extra={
                        "extra": {
                            "event": "reminder_not_deliverable",
                            "user_id": user_id,
                            "med_name": agg.med_name,
                            "reminder_id": agg.reminder_id,
                        }
                    },
                )
                continue
            notification = format_reminder_notification(agg.med_name)
            for token in agg.tokens:
                batch.append(NotificationBatchEntry(notification=notification, token=token, user_id=user_id))
        return batch

    async def send(self, batch: Sequence[NotificationBatchEntry]) -> List[SendResult]:
        if not batch:
            log.info("no_messages_to_send", extra={"extra": {"event": "no_messages_to_send"}})
            return []

        log.info("push_send_attempt", extra={"extra": {"event": "push_send_attempt", "messages": len(batch)}})
        results = list(await self.gateway.send_each(batch))
        if len(results) != len(batch):
            raise RuntimeError(f"push_result_count_mismatch: sent={len(batch)} results={len(results)}")
        return results

    def collect_invalid_tokens(
        self, batch: Sequence[NotificationBatchEntry], results: Sequence[SendResult]
    ) -> Dict[str, List[str]]:
        invalid: Dict[str, List[str]] = {}
        for entry, result in zip(batch, results):
            if result.success:
                continue
            log.warning(
                "push_send_failed",
                extra={
                    "extra": {
                        "event": "push_send_failed",
                        "user_id": entry.user_id,
                        "token": token_hint(entry.token),
                        "error_code": result.error_code,
                        "message": result.error_message,
                    }
                },
            )
            if result.error_code not in INVALID_TOKEN_CODES:
                continue
            user_tokens = invalid.setdefault(entry.user_id, [])
            if entry.token not in user_tokens:
                user_tokens.append(entry.token)
                log.info(
                    "token_marked_for_deletion",
                    extra={
                        "extra": {
                            "event": "token_marked_for_deletion",
                            "user_id": entry.user_id,
                            "token": token_hint(entry.token),
                            "error_code": result.error_code,
                        }
                    },
                )
        return invalid

    async def cleanup(self, reminders: Sequence[Reminder], invalid_tokens: Dict[str, List[str]]) -> Tuple[int, int]:
        """
        Delete every fetched reminder and every invalid token concurrently.

        All deletes settle before returning; the first failure is then raised.
        """
        reminder_ids = []
        for r in reminders:
            if not r.user_id and not self.delete_orphans:
                log.warning("orphan_reminder_kept", extra={"extra": {"event": "orphan_reminder_kept", "reminder_id": r.id}})
                continue
            reminder_ids.append(r.id)

        ops = [self.reminders.delete(rid) for rid in reminder_ids]
        token_count = 0
        for user_id, tokens in invalid_tokens.items():
            for token in tokens:
                ops.append(self.tokens.delete(user_id, token))
                token_count += 1

        outcomes = await asyncio.gather(*ops, return_exceptions=True)
        errors = [o for o in outcomes if isinstance(o, BaseException)]
        if errors:
            log.warning(
                "delete_failed",
                extra={"extra": {"event": "delete_failed", "failed": len(errors), "attempted": len(ops)}},
            )
            raise errors[0]

        log.info(
            "cleanup_complete",
            extra={"extra": {"event": "cleanup_complete", "reminders_deleted": len(reminder_ids), "tokens_deleted": token_count}},
        )
        return len(reminder_ids), token_count

    async def run(self, now: Optional[datetime] = None) -> DispatchSummary:
        t = Timer()
        now = now or datetime.now(timezone.utc)
        summary = DispatchSummary()
        try:
            due = await self.fetch_due(now)
            summary.reminders = len(due)
            if not due:
                log.info("no_reminders_due", extra={"extra": {"event": "no_reminders_due"}})
                summary.duration_ms = t.ms()
                return summary

            log.info("reminders_fetched", extra={"extra": {"event": "reminders_fetched", "count": len(due)}})
            aggregates = self.group_by_user(due)
            summary.users = len(aggregates)

            await self.resolve_tokens(aggregates)
            batch = self.build_batch(aggregates)

            results = await self.send(batch)
            summary.sent = len(batch)
            summary.succeeded = sum(1 for r in results if r.success)
            summary.failed = summary.sent - summary.succeeded

            invalid = self.collect_invalid_tokens(batch, results)
            summary.reminders_deleted, summary.tokens_deleted = await self.cleanup(due, invalid)
        except Exception as e:
            log.error(
                "dispatch_error",
                extra={"extra": {"event": "dispatch_error", "error_type": type(e).__name__, "message": str(e)}},
                exc_info=True,
            )
            summary.ok = False
            summary.error = type(e).__name__

        summary.duration_ms = t.ms()
        log.info("dispatch_complete", extra={"extra": {"event": "dispatch_complete", **summary.to_dict()}})
        return summary

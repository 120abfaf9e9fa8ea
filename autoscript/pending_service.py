from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging

from autoscript.config import Settings
from autoscript.scripting_lib.base import Messenger
from autoscript.state_store import AutomationStateStore


logger = logging.getLogger(__name__)


class PendingMessageService:
    """Delivers pending messages once their scheduled time has passed.

    Each row is claimed before sending, so a message cancelled or taken by
    another worker in the meantime is skipped. A claim older than the lease
    window is treated as abandoned and can be taken again. Recipients are
    sent one at a time and remembered, so a retry only reaches the ones that
    were missed. Delivered rows are deleted; failed rows are released with
    their attempt counter increased.
    """

    def __init__(
        self,
        messenger: Messenger,
        settings: Settings,
        state_store: AutomationStateStore,
    ) -> None:
        self._messenger = messenger
        self._settings = settings
        self._state_store = state_store
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._loop(), name="pending_message_loop")
        logger.info("pending message service started", extra={"event": "pending_started"})

    async def stop(self) -> None:
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        logger.info("pending message service stopped", extra={"event": "pending_stopped"})

    async def _loop(self) -> None:
        while True:
            await self.deliver_due_messages()
            await asyncio.sleep(max(5, self._settings.pending_poll_interval_seconds))

    async def deliver_due_messages(self, now_utc: datetime | None = None) -> int:
        now_utc = now_utc or datetime.now(timezone.utc)
        lease_seconds = self._settings.pending_claim_lease_seconds
        due = self._state_store.list_due_pending_messages(
            now_utc=now_utc,
            retry_limit=self._settings.pending_send_retry_limit,
            limit=100,
            lease_seconds=lease_seconds,
        )
        delivered = 0
        for item in due:
            pending_id = int(item["id"])
            automation_id = item["automation_id"]
            if not self._state_store.claim_pending_message(
                pending_id=pending_id,
                claimed_at_utc=datetime.now(timezone.utc),
                lease_seconds=lease_seconds,
            ):
                continue
            try:
                message_ids = await self._send_to_remaining(pending_id, item)
            except asyncio.CancelledError:
                # Hand the row back untouched so the next sweep picks it up.
                self._state_store.unclaim_pending_message(pending_id=pending_id)
                logger.warning(
                    "pending message delivery interrupted",
                    extra={
                        "event": "pending_interrupted",
                        "pending_id": pending_id,
                        "automation_id": automation_id,
                        "status": "cancelled",
                    },
                )
                raise
            except Exception as exc:
                await self._handle_failure(pending_id, automation_id, exc)
                continue
            self._state_store.complete_pending_message(pending_id=pending_id)
            self._state_store.record_audit_event(
                event_type="pending_message_sent",
                automation_id=automation_id,
                status="ok",
                severity="info",
                payload={"pending_id": pending_id, "message_id": ",".join(message_ids)},
            )
            logger.info(
                "pending message delivered",
                extra={
                    "event": "pending_sent",
                    "pending_id": pending_id,
                    "automation_id": automation_id,
                    "status": "ok",
                    "result_count": len(message_ids),
                },
            )
            delivered += 1
        return delivered

    async def _send_to_remaining(self, pending_id: int, item: dict) -> list[str]:
        """Send to each recipient not yet reached, recording every success."""
        already = set(item.get("delivered") or [])
        message_ids: list[str] = []
        for recipient in item["recipients"]:
            if recipient in already:
                continue
            message_id = await self._messenger.create_message(
                str(item["title"]), str(item["body"]), [recipient]
            )
            self._state_store.mark_recipient_delivered(
                pending_id=pending_id, recipient=recipient
            )
            message_ids.append(message_id)
        return message_ids

    async def _handle_failure(
        self, pending_id: int, automation_id: int | None, exc: Exception
    ) -> None:
        attempts = self._state_store.release_pending_message(
            pending_id=pending_id,
            error_text=str(exc),
        )
        exhausted = attempts >= self._settings.pending_send_retry_limit
        severity = "critico" if exhausted else "alerta"
        self._state_store.record_audit_event(
            event_type="pending_message_error",
            automation_id=automation_id,
            status="error",
            severity=severity,
            payload={"pending_id": pending_id, "attempts": attempts, "error": str(exc)},
        )
        logger.error(
            "pending message delivery failed",
            exc_info=exc,
            extra={
                "event": "pending_send_error",
                "pending_id": pending_id,
                "automation_id": automation_id,
                "status": "error",
                "severity": severity,
            },
        )
        if exhausted:
            await self._notify_operator(pending_id, automation_id, attempts, exc)

    async def _notify_operator(
        self,
        pending_id: int,
        automation_id: int | None,
        attempts: int,
        exc: Exception,
    ) -> None:
        chat_id = self._settings.operator_chat_id
        if chat_id is None:
            return
        body = (
            f"Pending message {pending_id} (automation {automation_id}) "
            f"gave up after {attempts} attempts: {exc}"
        )
        try:
            await self._messenger.create_message(
                "Delivery failed", body, [str(chat_id)]
            )
        except Exception:
            logger.exception(
                "operator notification failed",
                extra={"event": "operator_notify_error", "pending_id": pending_id},
            )

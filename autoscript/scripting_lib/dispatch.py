from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging

from autoscript.scripting_lib.base import Messenger, PendingMessageStore
from autoscript.scripting_lib.errors import InvalidPayload
from autoscript.scripting_lib.models import DeliveryResult, MessagePayload


logger = logging.getLogger(__name__)


class Dispatcher:
    def __init__(self, messenger: Messenger, store: PendingMessageStore) -> None:
        self._messenger = messenger
        self._store = store

    async def send_message(
        self,
        payload: MessagePayload,
        *,
        delay: int | None = None,
        automation_id: int | None = None,
    ) -> DeliveryResult:
        """Send ``payload`` now, or store it for delivery in ``delay`` minutes.

        A delayed message is only persisted here; the pending message worker
        delivers it once it is due and removes the row.
        """
        self._validate(payload)
        if delay is not None and int(delay) > 0:
            scheduled_at = datetime.now(timezone.utc) + timedelta(minutes=int(delay))
            pending_id = self._store.create_pending_message(
                automation_id=automation_id,
                title=payload.title,
                body=payload.body,
                recipients=payload.recipients,
                scheduled_at_utc=scheduled_at,
            )
            logger.info(
                "message scheduled",
                extra={
                    "event": "message_pending",
                    "automation_id": automation_id,
                    "pending_id": pending_id,
                    "status": "pending",
                },
            )
            return DeliveryResult(status="pending", pending_id=pending_id)

        message_id = await self._messenger.create_message(
            payload.title, payload.body, payload.recipients
        )
        logger.info(
            "message sent",
            extra={
                "event": "message_sent",
                "automation_id": automation_id,
                "status": "sent",
            },
        )
        return DeliveryResult(status="sent", message_id=message_id)

    def cancel_pending(self, automation_id: int) -> int:
        removed = self._store.cancel_pending_messages(automation_id=automation_id)
        logger.info(
            "pending messages cancelled",
            extra={
                "event": "message_pending_cancelled",
                "automation_id": automation_id,
                "status": "ok",
            },
        )
        return removed

    @staticmethod
    def _validate(payload: MessagePayload) -> None:
        if not payload.recipients:
            raise InvalidPayload("message needs at least one recipient")

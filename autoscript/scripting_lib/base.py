from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Protocol, Sequence

from autoscript.scripting_lib.models import ReportPoint


class ReportEngine(Protocol):
    def compute_series(
        self, report_name: str, filters: Mapping[str, Any]
    ) -> list[ReportPoint] | None:
        """Return the day/count series of a report, or None when it does not exist."""


class Messenger(Protocol):
    async def create_message(
        self, title: str, body: str, recipients: Sequence[str]
    ) -> str:
        """Deliver a message now and return its identifier."""


class PendingMessageStore(Protocol):
    def create_pending_message(
        self,
        *,
        automation_id: int | None,
        title: str,
        body: str,
        recipients: Sequence[str],
        scheduled_at_utc: datetime,
    ) -> int: ...

    def cancel_pending_messages(self, *, automation_id: int) -> int: ...

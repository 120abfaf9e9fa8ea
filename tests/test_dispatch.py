from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from autoscript.scripting_lib.dispatch import Dispatcher
from autoscript.scripting_lib.errors import InvalidPayload
from autoscript.scripting_lib.models import MessagePayload
from autoscript.state_store import AutomationStateStore


class FakeMessenger:
    def __init__(self) -> None:
        self.messages: list[dict] = []

    async def create_message(self, title, body, recipients):
        self.messages.append({"title": title, "body": body, "recipients": list(recipients)})
        return f"msg-{len(self.messages)}"


def build_payload(recipients=("1001",)) -> MessagePayload:
    return MessagePayload.build(
        title="Tell me and I forget.",
        body="Teach me and I remember. Involve me and I learn.",
        recipients=recipients,
    )


@pytest.mark.asyncio
async def test_delayed_message_creates_pending_record(tmp_path: Path) -> None:
    store = AutomationStateStore(str(tmp_path / "state.db"))
    messenger = FakeMessenger()
    dispatcher = Dispatcher(messenger, store)
    before = datetime.now(timezone.utc)

    result = await dispatcher.send_message(build_payload(), delay=2, automation_id=7)

    assert result.status == "pending"
    assert result.pending is True
    assert result.message_id is None
    assert store.count_pending_messages() == 1
    assert messenger.messages == []
    row = store.get_pending_message(result.pending_id)
    assert row is not None
    assert row["automation_id"] == 7
    assert row["recipients"] == ["1001"]
    scheduled = datetime.fromisoformat(row["scheduled_at_utc"])
    assert before + timedelta(minutes=2) <= scheduled
    assert scheduled <= datetime.now(timezone.utc) + timedelta(minutes=2)


@pytest.mark.asyncio
async def test_message_without_delay_is_sent_now(tmp_path: Path) -> None:
    store = AutomationStateStore(str(tmp_path / "state.db"))
    messenger = FakeMessenger()
    dispatcher = Dispatcher(messenger, store)

    result = await dispatcher.send_message(build_payload(), automation_id=7)

    assert result.status == "sent"
    assert result.message_id == "msg-1"
    assert len(messenger.messages) == 1
    assert store.count_pending_messages() == 0


@pytest.mark.asyncio
async def test_non_positive_delay_is_sent_now(tmp_path: Path) -> None:
    store = AutomationStateStore(str(tmp_path / "state.db"))
    messenger = FakeMessenger()
    dispatcher = Dispatcher(messenger, store)

    await dispatcher.send_message(build_payload(), delay=0)
    await dispatcher.send_message(build_payload(), delay=-5)

    assert len(messenger.messages) == 2
    assert store.count_pending_messages() == 0


@pytest.mark.asyncio
async def test_empty_recipients_is_invalid(tmp_path: Path) -> None:
    store = AutomationStateStore(str(tmp_path / "state.db"))
    messenger = FakeMessenger()
    dispatcher = Dispatcher(messenger, store)

    with pytest.raises(InvalidPayload):
        await dispatcher.send_message(build_payload(recipients=()), delay=2)
    with pytest.raises(InvalidPayload):
        await dispatcher.send_message(build_payload(recipients=["  "]))

    assert messenger.messages == []
    assert store.count_pending_messages() == 0


@pytest.mark.asyncio
async def test_empty_rendered_body_is_still_sent(tmp_path: Path) -> None:
    messenger = FakeMessenger()
    dispatcher = Dispatcher(messenger, AutomationStateStore(str(tmp_path / "s.db")))

    result = await dispatcher.send_message(MessagePayload.build("title", "", ["1"]))

    assert result.status == "sent"
    assert messenger.messages == [{"title": "title", "body": "", "recipients": ["1"]}]


@pytest.mark.asyncio
async def test_cancel_pending_only_touches_automation(tmp_path: Path) -> None:
    store = AutomationStateStore(str(tmp_path / "state.db"))
    dispatcher = Dispatcher(FakeMessenger(), store)
    await dispatcher.send_message(build_payload(), delay=5, automation_id=1)
    await dispatcher.send_message(build_payload(), delay=5, automation_id=1)
    await dispatcher.send_message(build_payload(), delay=5, automation_id=2)

    assert dispatcher.cancel_pending(1) == 2
    assert store.count_pending_messages(automation_id=1) == 0
    assert store.count_pending_messages(automation_id=2) == 1


def test_payload_build_accepts_single_recipient() -> None:
    payload = MessagePayload.build("t", "b", 42)

    assert payload.recipients == ("42",)

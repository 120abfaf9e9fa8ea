from __future__ import annotations

from dataclasses import dataclass

import pytest

from autoscript.message_utils import format_message, split_message
from autoscript.scripting_lib.errors import InvalidPayload
from autoscript.scripting_lib.providers.telegram_messenger import (
    TelegramMessenger,
    resolve_chat_id,
)


@dataclass
class FakeSentMessage:
    message_id: int


class FakeBot:
    def __init__(self) -> None:
        self.messages: list[dict] = []

    async def send_message(self, **kwargs):
        self.messages.append(kwargs)
        return FakeSentMessage(message_id=len(self.messages))


@pytest.mark.asyncio
async def test_create_message_sends_to_every_recipient() -> None:
    bot = FakeBot()
    messenger = TelegramMessenger(bot)

    message_id = await messenger.create_message("Daily <likes>", "|Day|Count|", ["10", "20"])

    assert message_id == "10:1,20:2"
    assert [item["chat_id"] for item in bot.messages] == [10, 20]
    assert bot.messages[0]["text"] == "<b>Daily &lt;likes&gt;</b>\n|Day|Count|"


def test_format_message_without_title() -> None:
    assert format_message("", "body") == "body"


def test_split_message_prefers_newlines() -> None:
    text = "a" * 10 + "\n" + "b" * 10

    assert split_message(text, max_length=15) == ["a" * 10, "b" * 10]
    assert split_message("short") == ["short"]


@pytest.mark.asyncio
async def test_channel_username_is_sent_as_text() -> None:
    bot = FakeBot()
    messenger = TelegramMessenger(bot)

    message_id = await messenger.create_message("t", "b", ["-100200", "@cat_channel"])

    assert message_id == "-100200:1,@cat_channel:2"
    assert [item["chat_id"] for item in bot.messages] == [-100200, "@cat_channel"]


@pytest.mark.asyncio
async def test_invalid_recipient_fails_before_any_send() -> None:
    bot = FakeBot()
    messenger = TelegramMessenger(bot)

    with pytest.raises(InvalidPayload):
        await messenger.create_message("t", "b", ["10", "not a chat", "20"])

    assert bot.messages == []


def test_resolve_chat_id() -> None:
    assert resolve_chat_id(" 42 ") == 42
    assert resolve_chat_id("@cat_channel") == "@cat_channel"
    assert resolve_chat_id("cat_channel") == "@cat_channel"
    with pytest.raises(InvalidPayload):
        resolve_chat_id("cat")
    with pytest.raises(InvalidPayload):
        resolve_chat_id("")

from __future__ import annotations

import html
import re
from typing import Sequence

from telegram import Bot
from telegram.constants import ParseMode

from autoscript.message_utils import format_message, split_message
from autoscript.scripting_lib.errors import InvalidPayload


CHAT_ID_RE = re.compile(r"^-?\d+$")
USERNAME_RE = re.compile(r"^@?(?P<name>[A-Za-z][A-Za-z0-9_]{4,31})$")


def resolve_chat_id(recipient: str) -> int | str:
    """Numeric chat ids become ints; usernames become ``@name`` text."""
    value = str(recipient).strip()
    if CHAT_ID_RE.match(value):
        return int(value)
    match = USERNAME_RE.match(value)
    if match:
        return f"@{match.group('name')}"
    raise InvalidPayload(f"invalid recipient: {recipient!r}")


class TelegramMessenger:
    """Sends a message to every recipient chat; returns ``chat:message`` ids.

    Every recipient is resolved before the first send, so a bad entry
    fails the whole call without a partial delivery.
    """

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def create_message(
        self, title: str, body: str, recipients: Sequence[str]
    ) -> str:
        chat_ids = [resolve_chat_id(recipient) for recipient in recipients]
        text = format_message(html.escape(title), html.escape(body))
        delivered: list[str] = []
        for chat_id in chat_ids:
            for chunk in split_message(text):
                sent = await self._bot.send_message(
                    chat_id=chat_id,
                    text=chunk,
                    parse_mode=ParseMode.HTML,
                    disable_web_page_preview=True,
                )
                delivered.append(f"{chat_id}:{sent.message_id}")
        return ",".join(delivered)

from __future__ import annotations

import asyncio
import logging
from typing import Any

from autoscript.scripting_lib.dispatch import Dispatcher
from autoscript.scripting_lib.models import DeliveryResult, MessagePayload
from autoscript.scripting_lib.placeholders import PlaceholderEngine
from autoscript.scripting_lib.registry import ScriptBuilder, ScriptRegistry
from autoscript.scripting_lib.runner import current_context


logger = logging.getLogger(__name__)

SCRIPT_NAME = "send_message"


class SendMessageScript:
    """Render a title/body pair and deliver it, optionally after a delay.

    Trigger payload values are exposed as placeholders, so a body such as
    ``"%%SITE_TITLE%% weekly likes: %%REPORT=likes start_date=2024-01-01%%"``
    is resolved at run time.
    """

    name = SCRIPT_NAME

    def __init__(self, engine: PlaceholderEngine, dispatcher: Dispatcher) -> None:
        self._engine = engine
        self._dispatcher = dispatcher

    def declare(self, s: ScriptBuilder) -> None:
        s.version(1)
        s.placeholder("trigger")
        s.field("title", component="text", accepts_placeholders=True, required=True)
        s.field("body", component="message", accepts_placeholders=True, required=True)
        s.field("recipients", component="users", required=True)
        s.field("delay", component="text")
        s.script(self.run)
        s.on_reset(self.reset)

    async def run(self) -> DeliveryResult:
        context = current_context()
        values = self._placeholder_values(context.trigger, context.trigger_payload)
        # REPORT tokens call the report engine synchronously; keep that off the loop.
        title = await asyncio.to_thread(
            self._engine.render, str(context.field_value("title", "")), values
        )
        body = await asyncio.to_thread(
            self._engine.render, str(context.field_value("body", "")), values
        )
        payload = MessagePayload.build(
            title=title,
            body=body,
            recipients=context.field_value("recipients", ()),
        )
        return await self._dispatcher.send_message(
            payload,
            delay=_parse_delay(context.field_value("delay")),
            automation_id=context.instance.id,
        )

    def reset(self) -> int:
        context = current_context()
        return self._dispatcher.cancel_pending(context.instance.id)

    @staticmethod
    def _placeholder_values(trigger: str | None, payload) -> dict[str, Any]:
        values: dict[str, Any] = {
            str(key).lower(): value
            for key, value in payload.items()
            if isinstance(value, (str, int, float))
        }
        if trigger:
            values["trigger"] = trigger
        return values


def _parse_delay(raw: Any) -> int | None:
    if raw is None or raw == "":
        return None
    try:
        return int(str(raw).strip())
    except ValueError:
        logger.warning(
            "ignoring invalid delay",
            extra={"event": "script_delay_invalid", "script": SCRIPT_NAME},
        )
        return None


def register_send_message(
    registry: ScriptRegistry, engine: PlaceholderEngine, dispatcher: Dispatcher
) -> SendMessageScript:
    script = SendMessageScript(engine, dispatcher)
    registry.add(script.name, script.declare)
    return script

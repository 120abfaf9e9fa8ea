"""Built-in scripts."""

from autoscript.scripting_lib.scripts.send_message import (
    SendMessageScript,
    register_send_message,
)

__all__ = [
    "SendMessageScript",
    "register_send_message",
]

from __future__ import annotations

import re
from typing import Any


_SENSITIVE_KEY_RE = re.compile(
    r"(password|token|secret|api[_-]?key|api[_-]?username|authorization|cookie)",
    re.IGNORECASE,
)

# Example: https://api.telegram.org/bot123:ABCDEF/sendMessage
_BOT_TOKEN_URL_RE = re.compile(
    r"(api\.telegram\.org/bot)(\d+:[A-Za-z0-9_-]+)",
    re.IGNORECASE,
)

# Api-Key: abc / api_key=abc / token=abc
_SECRET_PAIR_RE = re.compile(
    r"(?i)\b(token|password|secret|api[_-]key)(\s*[:=]\s*)([^\s&,]+)"
)


def redact_text(text: str) -> str:
    if not text:
        return text
    value = _BOT_TOKEN_URL_RE.sub(r"\1<redacted>", text)
    return _SECRET_PAIR_RE.sub(r"\1\2<redacted>", value)


def redact_payload(obj: Any) -> Any:
    if isinstance(obj, str):
        return redact_text(obj)
    if isinstance(obj, dict):
        return {
            key: "<redacted>" if _SENSITIVE_KEY_RE.search(str(key)) else redact_payload(value)
            for key, value in obj.items()
        }
    if isinstance(obj, (list, tuple)):
        return [redact_payload(item) for item in obj]
    return obj

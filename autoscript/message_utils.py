from __future__ import annotations


TELEGRAM_TEXT_LIMIT = 3900


def format_message(title: str, body: str) -> str:
    title = (title or "").strip()
    body = (body or "").strip("\n")
    if not title:
        return body
    return f"<b>{title}</b>\n{body}"


def split_message(text: str, max_length: int = TELEGRAM_TEXT_LIMIT) -> list[str]:
    if len(text) <= max_length:
        return [text]
    chunks: list[str] = []
    remaining = text
    while len(remaining) > max_length:
        split_at = remaining.rfind("\n", 0, max_length)
        if split_at <= 0:
            split_at = max_length
        chunks.append(remaining[:split_at].rstrip())
        remaining = remaining[split_at:].lstrip("\n")
    if remaining:
        chunks.append(remaining)
    return chunks

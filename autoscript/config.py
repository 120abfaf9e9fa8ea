from __future__ import annotations

from dataclasses import dataclass
import os

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str
    operator_chat_id: int | None = None
    site_title: str = "Automation"
    request_timeout_seconds: int = 20
    report_api_base_url: str | None = None
    report_api_key: str | None = None
    report_api_username: str | None = None
    pending_poll_interval_seconds: int = 15
    pending_send_retry_limit: int = 3
    pending_claim_lease_seconds: int = 300
    log_level: str = "INFO"
    state_db_path: str = "data/autoscript.db"


def _read_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}: expected an integer.") from exc


def _read_optional_str(name: str) -> str | None:
    raw = os.getenv(name, "").strip()
    return raw or None


def _read_optional_int(name: str) -> int | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}: expected an integer.") from exc


def load_settings() -> Settings:
    # Local .env values win over stale shell/system environment values.
    load_dotenv(override=True)

    token = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()
    if not token:
        raise ValueError("Missing TELEGRAM_BOT_TOKEN in environment.")

    retry_limit = _read_int("PENDING_SEND_RETRY_LIMIT", 3)
    if retry_limit < 1:
        raise ValueError("Invalid PENDING_SEND_RETRY_LIMIT: must be at least 1.")

    return Settings(
        telegram_bot_token=token,
        operator_chat_id=_read_optional_int("OPERATOR_CHAT_ID"),
        site_title=os.getenv("SITE_TITLE", "Automation").strip() or "Automation",
        request_timeout_seconds=_read_int("REQUEST_TIMEOUT_SECONDS", 20),
        report_api_base_url=_read_optional_str("REPORT_API_BASE_URL"),
        report_api_key=_read_optional_str("REPORT_API_KEY"),
        report_api_username=_read_optional_str("REPORT_API_USERNAME"),
        pending_poll_interval_seconds=_read_int("PENDING_POLL_INTERVAL_SECONDS", 15),
        pending_send_retry_limit=retry_limit,
        pending_claim_lease_seconds=_read_int("PENDING_CLAIM_LEASE_SECONDS", 300),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO",
        state_db_path=os.getenv("STATE_DB_PATH", "data/autoscript.db").strip(),
    )

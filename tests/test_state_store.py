from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
import sqlite3

from autoscript.state_store import AutomationStateStore


def create(store: AutomationStateStore, minutes: int, automation_id: int = 1) -> int:
    return store.create_pending_message(
        automation_id=automation_id,
        title="t",
        body="b",
        recipients=["10", "20"],
        scheduled_at_utc=datetime.now(timezone.utc) + timedelta(minutes=minutes),
    )


def test_due_pending_messages_respect_schedule(tmp_path: Path) -> None:
    store = AutomationStateStore(str(tmp_path / "state.db"))
    due_id = create(store, -1)
    create(store, 30)

    due = store.list_due_pending_messages(
        now_utc=datetime.now(timezone.utc), retry_limit=3, limit=10
    )

    assert [item["id"] for item in due] == [due_id]
    assert due[0]["recipients"] == ["10", "20"]


def test_claim_is_single_use(tmp_path: Path) -> None:
    store = AutomationStateStore(str(tmp_path / "state.db"))
    pending_id = create(store, -1)
    now = datetime.now(timezone.utc)

    assert store.claim_pending_message(pending_id=pending_id, claimed_at_utc=now) is True
    assert store.claim_pending_message(pending_id=pending_id, claimed_at_utc=now) is False
    assert store.list_due_pending_messages(now_utc=now, retry_limit=3) == []


def test_cancel_loses_against_claim(tmp_path: Path) -> None:
    store = AutomationStateStore(str(tmp_path / "state.db"))
    claimed_id = create(store, -1)
    free_id = create(store, -1)
    store.claim_pending_message(
        pending_id=claimed_id, claimed_at_utc=datetime.now(timezone.utc)
    )

    assert store.cancel_pending_message(pending_id=claimed_id) is False
    assert store.cancel_pending_message(pending_id=free_id) is True
    assert store.count_pending_messages() == 1


def test_release_increments_attempts_and_retry_limit_hides_row(tmp_path: Path) -> None:
    store = AutomationStateStore(str(tmp_path / "state.db"))
    pending_id = create(store, -1)
    now = datetime.now(timezone.utc)
    store.claim_pending_message(pending_id=pending_id, claimed_at_utc=now)

    attempts = store.release_pending_message(pending_id=pending_id, error_text="timeout")

    assert attempts == 1
    row = store.get_pending_message(pending_id)
    assert row is not None
    assert row["claimed_at_utc"] is None
    assert row["last_error"] == "timeout"
    assert store.list_due_pending_messages(now_utc=now, retry_limit=1) == []
    assert len(store.list_due_pending_messages(now_utc=now, retry_limit=2)) == 1


def test_complete_deletes_row(tmp_path: Path) -> None:
    store = AutomationStateStore(str(tmp_path / "state.db"))
    pending_id = create(store, -1)

    store.complete_pending_message(pending_id=pending_id)

    assert store.get_pending_message(pending_id) is None
    assert store.count_pending_messages() == 0


def test_audit_events_latest_first_and_redacted(tmp_path: Path) -> None:
    store = AutomationStateStore(str(tmp_path / "state.db"))
    store.record_audit_event(
        event_type="pending_message_sent",
        automation_id=1,
        status="ok",
        severity="info",
        payload={"pending_id": 1},
    )
    store.record_audit_event(
        event_type="pending_message_error",
        automation_id=1,
        status="error",
        severity="alerta",
        payload={
            "api_key": "abc",
            "error": "POST https://api.telegram.org/bot123:ABCDEF/sendMessage failed",
        },
    )

    events = store.list_audit_events(limit=5)
    assert [item["event_type"] for item in events] == [
        "pending_message_error",
        "pending_message_sent",
    ]
    payload = events[0]["payload"]
    assert payload["api_key"] == "<redacted>"
    assert "ABCDEF" not in payload["error"]

    errors = store.list_audit_events(limit=5, only_error=True)
    assert len(errors) == 1
    assert errors[0]["status"] == "error"


def test_stale_claim_is_listed_and_claimable_after_lease(tmp_path: Path) -> None:
    store = AutomationStateStore(str(tmp_path / "state.db"))
    pending_id = create(store, -1)
    now = datetime.now(timezone.utc)
    store.claim_pending_message(
        pending_id=pending_id, claimed_at_utc=now - timedelta(minutes=10)
    )

    assert store.list_due_pending_messages(now_utc=now, retry_limit=3) == []
    assert store.list_due_pending_messages(
        now_utc=now, retry_limit=3, lease_seconds=3600
    ) == []
    due = store.list_due_pending_messages(now_utc=now, retry_limit=3, lease_seconds=300)
    assert [item["id"] for item in due] == [pending_id]

    assert store.claim_pending_message(pending_id=pending_id, claimed_at_utc=now) is False
    assert store.claim_pending_message(
        pending_id=pending_id, claimed_at_utc=now, lease_seconds=300
    ) is True
    assert store.claim_pending_message(
        pending_id=pending_id, claimed_at_utc=now, lease_seconds=300
    ) is False


def test_unclaim_keeps_attempt_counter(tmp_path: Path) -> None:
    store = AutomationStateStore(str(tmp_path / "state.db"))
    pending_id = create(store, -1)
    store.claim_pending_message(
        pending_id=pending_id, claimed_at_utc=datetime.now(timezone.utc)
    )

    store.unclaim_pending_message(pending_id=pending_id)

    row = store.get_pending_message(pending_id)
    assert row is not None
    assert row["claimed_at_utc"] is None
    assert row["send_attempts"] == 0


def test_mark_recipient_delivered_is_idempotent(tmp_path: Path) -> None:
    store = AutomationStateStore(str(tmp_path / "state.db"))
    pending_id = create(store, -1)

    store.mark_recipient_delivered(pending_id=pending_id, recipient="20")
    store.mark_recipient_delivered(pending_id=pending_id, recipient="20")
    store.mark_recipient_delivered(pending_id=pending_id + 100, recipient="10")

    row = store.get_pending_message(pending_id)
    assert row is not None
    assert row["delivered"] == ["20"]


def test_existing_database_gains_delivered_column(tmp_path: Path) -> None:
    db_path = tmp_path / "state.db"
    connection = sqlite3.connect(db_path)
    connection.execute(
        """
        CREATE TABLE pending_messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            created_at TEXT NOT NULL,
            automation_id INTEGER,
            title TEXT NOT NULL,
            body TEXT NOT NULL,
            recipients_json TEXT NOT NULL,
            scheduled_at_utc TEXT NOT NULL,
            claimed_at_utc TEXT,
            send_attempts INTEGER NOT NULL DEFAULT 0,
            last_error TEXT
        )
        """
    )
    connection.commit()
    connection.close()

    store = AutomationStateStore(str(db_path))
    pending_id = create(store, -1)

    row = store.get_pending_message(pending_id)
    assert row is not None
    assert row["delivered"] == []

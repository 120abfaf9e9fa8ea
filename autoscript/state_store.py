from __future__ import annotations

from datetime import datetime, timedelta, timezone
import json
import logging
from pathlib import Path
import sqlite3
import threading
from typing import Sequence

from autoscript.redaction import redact_payload


logger = logging.getLogger(__name__)


class AutomationStateStore:
    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        self._lock = threading.Lock()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = sqlite3.connect(self._db_path, check_same_thread=False)
        self._connection.row_factory = sqlite3.Row
        self._configure_pragmas()
        self._ensure_schema()

    def _configure_pragmas(self) -> None:
        with self._lock:
            cursor = self._connection.cursor()
            try:
                cursor.execute("PRAGMA journal_mode=WAL;")
                cursor.execute("PRAGMA synchronous=NORMAL;")
                cursor.execute("PRAGMA busy_timeout=5000;")
            except sqlite3.Error:
                logger.warning(
                    "failed to configure sqlite pragmas",
                    extra={"event": "sqlite_pragmas_error"},
                    exc_info=True,
                )

    def _ensure_schema(self) -> None:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS pending_messages (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    created_at TEXT NOT NULL,
                    automation_id INTEGER,
                    title TEXT NOT NULL,
                    body TEXT NOT NULL,
                    recipients_json TEXT NOT NULL,
                    scheduled_at_utc TEXT NOT NULL,
                    claimed_at_utc TEXT,
                    send_attempts INTEGER NOT NULL DEFAULT 0,
                    last_error TEXT,
                    delivered_json TEXT NOT NULL DEFAULT '[]'
                )
                """
            )
            self._ensure_pending_columns(cursor)
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_pending_messages_scheduled_at
                ON pending_messages(scheduled_at_utc)
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS audit_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    created_at TEXT NOT NULL,
                    event_type TEXT NOT NULL,
                    automation_id INTEGER,
                    status TEXT,
                    severity TEXT,
                    payload_json TEXT
                )
                """
            )
            self._connection.commit()

    def _ensure_pending_columns(self, cursor: sqlite3.Cursor) -> None:
        rows = cursor.execute("PRAGMA table_info(pending_messages)").fetchall()
        existing = {str(row["name"]) for row in rows}
        expected = {
            "claimed_at_utc": "TEXT",
            "last_error": "TEXT",
            "delivered_json": "TEXT NOT NULL DEFAULT '[]'",
        }
        for column, col_type in expected.items():
            if column in existing:
                continue
            cursor.execute(
                f"ALTER TABLE pending_messages ADD COLUMN {column} {col_type}"
            )

    def close(self) -> None:
        with self._lock:
            try:
                self._connection.close()
            except sqlite3.Error:
                logger.warning(
                    "failed to close sqlite connection",
                    extra={"event": "sqlite_close_error"},
                    exc_info=True,
                )

    def create_pending_message(
        self,
        *,
        automation_id: int | None,
        title: str,
        body: str,
        recipients: Sequence[str],
        scheduled_at_utc: datetime,
    ) -> int:
        now_iso = datetime.now(timezone.utc).isoformat()
        scheduled_iso = scheduled_at_utc.astimezone(timezone.utc).isoformat()
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                INSERT INTO pending_messages (
                    created_at, automation_id, title, body, recipients_json,
                    scheduled_at_utc
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    now_iso,
                    automation_id,
                    title,
                    body,
                    json.dumps(list(recipients), ensure_ascii=False),
                    scheduled_iso,
                ),
            )
            self._connection.commit()
            return int(cursor.lastrowid)

    def count_pending_messages(self, *, automation_id: int | None = None) -> int:
        with self._lock:
            cursor = self._connection.cursor()
            if automation_id is None:
                row = cursor.execute("SELECT COUNT(*) FROM pending_messages").fetchone()
            else:
                row = cursor.execute(
                    "SELECT COUNT(*) FROM pending_messages WHERE automation_id = ?",
                    (automation_id,),
                ).fetchone()
        return int(row[0])

    def get_pending_message(self, pending_id: int) -> dict | None:
        with self._lock:
            cursor = self._connection.cursor()
            row = cursor.execute(
                "SELECT * FROM pending_messages WHERE id = ?",
                (pending_id,),
            ).fetchone()
        return _row_to_dict(row) if row is not None else None

    def list_due_pending_messages(
        self,
        *,
        now_utc: datetime,
        retry_limit: int,
        limit: int = 100,
        lease_seconds: int | None = None,
    ) -> list[dict]:
        now_iso = now_utc.astimezone(timezone.utc).isoformat()
        stale_iso = _stale_cutoff(now_utc, lease_seconds)
        with self._lock:
            cursor = self._connection.cursor()
            rows = cursor.execute(
                """
                SELECT * FROM pending_messages
                WHERE (claimed_at_utc IS NULL OR claimed_at_utc < ?)
                  AND scheduled_at_utc <= ?
                  AND send_attempts < ?
                ORDER BY scheduled_at_utc ASC
                LIMIT ?
                """,
                (stale_iso, now_iso, retry_limit, limit),
            ).fetchall()
        return [_row_to_dict(row) for row in rows]

    def claim_pending_message(
        self,
        *,
        pending_id: int,
        claimed_at_utc: datetime,
        lease_seconds: int | None = None,
    ) -> bool:
        claimed_iso = claimed_at_utc.astimezone(timezone.utc).isoformat()
        stale_iso = _stale_cutoff(claimed_at_utc, lease_seconds)
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                UPDATE pending_messages
                SET claimed_at_utc = ?
                WHERE id = ? AND (claimed_at_utc IS NULL OR claimed_at_utc < ?)
                """,
                (claimed_iso, pending_id, stale_iso),
            )
            self._connection.commit()
            return cursor.rowcount == 1

    def unclaim_pending_message(self, *, pending_id: int) -> None:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                "UPDATE pending_messages SET claimed_at_utc = NULL WHERE id = ?",
                (pending_id,),
            )
            self._connection.commit()

    def mark_recipient_delivered(self, *, pending_id: int, recipient: str) -> None:
        with self._lock:
            cursor = self._connection.cursor()
            row = cursor.execute(
                "SELECT delivered_json FROM pending_messages WHERE id = ?",
                (pending_id,),
            ).fetchone()
            if row is None:
                return
            delivered = _load_json_list(row["delivered_json"])
            if recipient in delivered:
                return
            delivered.append(recipient)
            cursor.execute(
                "UPDATE pending_messages SET delivered_json = ? WHERE id = ?",
                (json.dumps(delivered, ensure_ascii=False), pending_id),
            )
            self._connection.commit()

    def complete_pending_message(self, *, pending_id: int) -> None:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute("DELETE FROM pending_messages WHERE id = ?", (pending_id,))
            self._connection.commit()

    def release_pending_message(self, *, pending_id: int, error_text: str) -> int:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                UPDATE pending_messages
                SET claimed_at_utc = NULL,
                    send_attempts = send_attempts + 1,
                    last_error = ?
                WHERE id = ?
                """,
                (error_text[:500], pending_id),
            )
            row = cursor.execute(
                "SELECT send_attempts FROM pending_messages WHERE id = ?",
                (pending_id,),
            ).fetchone()
            self._connection.commit()
        return int(row["send_attempts"]) if row is not None else 0

    def cancel_pending_message(self, *, pending_id: int) -> bool:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                "DELETE FROM pending_messages WHERE id = ? AND claimed_at_utc IS NULL",
                (pending_id,),
            )
            self._connection.commit()
            return cursor.rowcount == 1

    def cancel_pending_messages(self, *, automation_id: int) -> int:
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                DELETE FROM pending_messages
                WHERE automation_id = ? AND claimed_at_utc IS NULL
                """,
                (automation_id,),
            )
            self._connection.commit()
            return int(cursor.rowcount)

    def record_audit_event(
        self,
        *,
        event_type: str,
        automation_id: int | None,
        status: str | None,
        severity: str | None,
        payload: dict | None = None,
    ) -> None:
        now_iso = datetime.now(timezone.utc).isoformat()
        payload_json = (
            json.dumps(redact_payload(payload), ensure_ascii=False)
            if payload is not None
            else None
        )
        with self._lock:
            cursor = self._connection.cursor()
            cursor.execute(
                """
                INSERT INTO audit_log (
                    created_at, event_type, automation_id, status, severity,
                    payload_json
                ) VALUES (?, ?, ?, ?, ?, ?)
                """,
                (now_iso, event_type, automation_id, status, severity, payload_json),
            )
            self._connection.commit()

    def list_audit_events(self, *, limit: int = 20, only_error: bool = False) -> list[dict]:
        safe_limit = max(1, min(200, int(limit)))
        where_clause = "WHERE lower(coalesce(status, '')) = 'error'" if only_error else ""
        with self._lock:
            cursor = self._connection.cursor()
            rows = cursor.execute(
                f"""
                SELECT created_at, event_type, automation_id, status, severity,
                       payload_json
                FROM audit_log
                {where_clause}
                ORDER BY id DESC
                LIMIT ?
                """,
                (safe_limit,),
            ).fetchall()
        events: list[dict] = []
        for row in rows:
            payload = None
            if row["payload_json"]:
                try:
                    payload = json.loads(row["payload_json"])
                except json.JSONDecodeError:
                    payload = None
            events.append(
                {
                    "created_at": row["created_at"],
                    "event_type": row["event_type"],
                    "automation_id": row["automation_id"],
                    "status": row["status"],
                    "severity": row["severity"],
                    "payload": payload,
                }
            )
        return events


def _stale_cutoff(now_utc: datetime, lease_seconds: int | None) -> str:
    # An empty string sorts before every timestamp, so no claim counts as stale.
    if not lease_seconds or lease_seconds <= 0:
        return ""
    cutoff = now_utc.astimezone(timezone.utc) - timedelta(seconds=lease_seconds)
    return cutoff.isoformat()


def _load_json_list(raw: str | None) -> list[str]:
    try:
        items = json.loads(raw or "[]")
    except json.JSONDecodeError:
        return []
    if not isinstance(items, list):
        return []
    return [str(item) for item in items]


def _row_to_dict(row: sqlite3.Row) -> dict:
    return {
        "id": int(row["id"]),
        "created_at": row["created_at"],
        "automation_id": (
            int(row["automation_id"]) if row["automation_id"] is not None else None
        ),
        "title": row["title"],
        "body": row["body"],
        "recipients": _load_json_list(row["recipients_json"]),
        "delivered": _load_json_list(row["delivered_json"]),
        "scheduled_at_utc": row["scheduled_at_utc"],
        "claimed_at_utc": row["claimed_at_utc"],
        "send_attempts": int(row["send_attempts"]),
        "last_error": row["last_error"],
    }

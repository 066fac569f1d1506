from __future__ import annotations

import sqlite3
from datetime import datetime, timezone

from .models import EventLedgerEntry


class DuplicateEventError(Exception):
    def __init__(self, event_id: str) -> None:
        super().__init__(f"event already recorded: {event_id}")
        self.event_id = event_id


class EventLedger:
    """Processed event ids, written in the same transaction as their effects."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def has_processed(self, event_id: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM event_ledger WHERE event_id = ? LIMIT 1",
            (event_id,),
        ).fetchone()
        return row is not None

    def record(
        self,
        *,
        event_id: str,
        account_id: str,
        external_trade_id: str,
        event_type: str,
        received_at: datetime | None = None,
    ) -> EventLedgerEntry:
        entry = EventLedgerEntry(
            event_id=event_id,
            account_id=account_id,
            external_trade_id=external_trade_id,
            type=event_type,
            received_at=(received_at or datetime.now(timezone.utc)).isoformat(),
        )
        try:
            self.conn.execute(
                """
                INSERT INTO event_ledger(event_id, account_id, external_trade_id, type, received_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (entry.event_id, entry.account_id, entry.external_trade_id, entry.type, entry.received_at),
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateEventError(event_id) from exc
        return entry

    def get(self, event_id: str) -> EventLedgerEntry | None:
        row = self.conn.execute(
            "SELECT event_id, account_id, external_trade_id, type, received_at FROM event_ledger WHERE event_id = ?",
            (event_id,),
        ).fetchone()
        if not row:
            return None
        return EventLedgerEntry(
            event_id=row["event_id"],
            account_id=row["account_id"],
            external_trade_id=row["external_trade_id"],
            type=row["type"],
            received_at=row["received_at"],
        )

    def count(self) -> int:
        row = self.conn.execute("SELECT COUNT(*) AS total FROM event_ledger").fetchone()
        return int(row["total"])

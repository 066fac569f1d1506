from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Iterable
from uuid import uuid4

from nrm import normalize_symbol

from .merge import absorb_trade
from .models import SETTLEMENT_CURRENCY, Account, Partial, Trade

AMOUNT_Q = Decimal("0.01")

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def q_amount(value: Decimal) -> Decimal:
    return value.quantize(AMOUNT_Q, rounding=ROUND_HALF_UP)


def _to_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


def _to_amount(value: Any) -> Decimal:
    if value is None:
        return Decimal("0.00")
    return q_amount(Decimal(str(value)))


def _to_text(value: Decimal | None) -> str | None:
    return format(value, "f") if value is not None else None


def _placeholders(values: list[str]) -> str:
    return ",".join("?" for _ in values)


def _row_to_trade(row: sqlite3.Row) -> Trade:
    return Trade(
        id=row["id"],
        account_id=row["account_id"],
        external_trade_id=row["external_trade_id"],
        symbol=row["symbol"],
        created_at=row["created_at"],
        raw_symbol=row["raw_symbol"],
        direction=row["direction"],
        order_type=row["order_type"],
        status=row["status"],
        outcome=row["outcome"],
        pending=bool(row["is_pending"]),
        filled=bool(row["filled"]),
        entry_price=_to_decimal(row["entry_price"]),
        stop_loss=_to_decimal(row["stop_loss"]),
        take_profit=_to_decimal(row["take_profit"]),
        final_stop_loss=_to_decimal(row["final_stop_loss"]),
        final_take_profit=_to_decimal(row["final_take_profit"]),
        exit_price=_to_decimal(row["exit_price"]),
        quantity=_to_decimal(row["quantity"]),
        partials=[Partial.from_dict(item) for item in json.loads(row["partials_json"] or "[]")],
        main_pnl=_to_amount(row["main_pnl"]) if row["main_pnl"] is not None else None,
        fees=_to_amount(row["fees"]),
        net_pnl=_to_amount(row["pnl"]),
        balance_applied=bool(row["balance_applied"]),
        tags=list(json.loads(row["tags_json"] or "[]")),
        screenshots=list(json.loads(row["screenshots_json"] or "[]")),
        notes=row["notes"] or "",
        emotional_notes=row["emotional_notes"] or "",
        entry_date=row["entry_date"],
        exit_date=row["exit_date"],
        is_deleted=bool(row["is_deleted"]),
        deleted_at=row["deleted_at"],
    )


def _row_to_account(row: sqlite3.Row) -> Account:
    return Account(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        currency=row["currency"],
        balance=_to_amount(row["balance"]),
    )


class AccountRepository:
    def __init__(self, conn: sqlite3.Connection, *, clock: Clock = _utc_now) -> None:
        self.conn = conn
        self._clock = clock

    def ensure_user(self, user_id: str, name: str | None = None) -> None:
        self.conn.execute(
            "INSERT OR IGNORE INTO users(id, name, created_at) VALUES (?, ?, ?)",
            (user_id, name or user_id, self._clock().isoformat()),
        )

    def create(self, *, account_id: str, user_id: str, name: str, balance: Decimal = Decimal("0")) -> Account:
        self.ensure_user(user_id)
        self.conn.execute(
            """
            INSERT INTO accounts(id, user_id, name, currency, balance, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (account_id, user_id, name, SETTLEMENT_CURRENCY, str(q_amount(balance)), self._clock().isoformat()),
        )
        return Account(
            id=account_id,
            user_id=user_id,
            name=name,
            currency=SETTLEMENT_CURRENCY,
            balance=q_amount(balance),
        )

    def get(self, account_id: str) -> Account | None:
        row = self.conn.execute(
            "SELECT id, user_id, name, currency, balance FROM accounts WHERE id = ?",
            (account_id,),
        ).fetchone()
        return _row_to_account(row) if row else None

    def add_to_balance(self, account_id: str, delta: Decimal) -> bool:
        if delta == 0:
            return True
        cursor = self.conn.execute(
            "UPDATE accounts SET balance = ROUND(balance + ?, 2) WHERE id = ?",
            (str(q_amount(delta)), account_id),
        )
        return cursor.rowcount > 0


class TradeRepository:
    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        clock: Clock = _utc_now,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.conn = conn
        self._clock = clock
        self._id_factory = id_factory or (lambda: f"trade_ea_{uuid4().hex[:16]}")

    def get(self, trade_id: str) -> Trade | None:
        row = self.conn.execute("SELECT * FROM trades WHERE id = ?", (trade_id,)).fetchone()
        return _row_to_trade(row) if row else None

    def find_by_external_id(self, account_id: str, external_trade_id: str) -> Trade | None:
        row = self.conn.execute(
            "SELECT * FROM trades WHERE account_id = ? AND external_trade_id = ?",
            (account_id, external_trade_id),
        ).fetchone()
        return _row_to_trade(row) if row else None

    def get_or_create(self, account_id: str, external_trade_id: str, raw_symbol: str | None) -> Trade:
        existing = self.find_by_external_id(account_id, external_trade_id)
        if existing is not None:
            return existing

        now = self._clock().isoformat()
        trade = Trade(
            id=self._id_factory(),
            account_id=account_id,
            external_trade_id=external_trade_id,
            symbol=normalize_symbol(raw_symbol),
            raw_symbol=raw_symbol,
            created_at=now,
        )
        self.insert(trade)
        return trade

    def merge_pending_into_position(
        self,
        account_id: str,
        pending_external_id: str,
        position_external_id: str,
        raw_symbol: str | None,
    ) -> tuple[Trade, Decimal]:
        """Re-key the pending row onto the position id.

        Returns the row and the balance delta the caller must apply when a
        separate position row was folded into it.
        """
        pending = self.find_by_external_id(account_id, pending_external_id)
        if pending is None:
            return self.get_or_create(account_id, position_external_id, raw_symbol), Decimal("0")

        balance_shift = Decimal("0")
        if pending_external_id != position_external_id:
            position = self.find_by_external_id(account_id, position_external_id)
            if position is not None:
                balance_shift = absorb_trade(pending, position)
                self.delete_many([position.id])

        pending.external_trade_id = position_external_id
        if raw_symbol:
            pending.symbol = normalize_symbol(raw_symbol)
            pending.raw_symbol = raw_symbol
        self.save(pending)
        return pending, balance_shift

    def insert(self, trade: Trade) -> None:
        columns, values = self._columns(trade)
        self.conn.execute(
            f"INSERT INTO trades({', '.join(columns)}) VALUES ({_placeholders(columns)})",
            values,
        )

    def save(self, trade: Trade) -> None:
        columns, values = self._columns(trade)
        assignments = ", ".join(f"{column} = ?" for column in columns if column != "id")
        self.conn.execute(
            f"UPDATE trades SET {assignments} WHERE id = ?",
            (*values[1:], trade.id),
        )

    def list_for_account(self, account_id: str) -> list[Trade]:
        rows = self.conn.execute(
            "SELECT * FROM trades WHERE account_id = ? ORDER BY entry_date DESC, id ASC",
            (account_id,),
        ).fetchall()
        return [_row_to_trade(row) for row in rows]

    def list_by_ids(self, ids: list[str]) -> list[Trade]:
        if not ids:
            return []
        rows = self.conn.execute(
            f"SELECT * FROM trades WHERE id IN ({_placeholders(ids)}) ORDER BY id ASC",
            ids,
        ).fetchall()
        return [_row_to_trade(row) for row in rows]

    def select_for_batch(self, ids: list[str], *, deleted: bool) -> list[Trade]:
        if not ids:
            return []
        rows = self.conn.execute(
            f"SELECT * FROM trades WHERE id IN ({_placeholders(ids)}) AND is_deleted = ? ORDER BY id ASC",
            (*ids, 1 if deleted else 0),
        ).fetchall()
        return [_row_to_trade(row) for row in rows]

    def mark_deleted(self, ids: list[str], deleted_at: datetime) -> int:
        if not ids:
            return 0
        cursor = self.conn.execute(
            f"UPDATE trades SET is_deleted = 1, deleted_at = ? WHERE id IN ({_placeholders(ids)}) AND is_deleted = 0",
            (deleted_at.isoformat(), *ids),
        )
        return cursor.rowcount

    def clear_deleted(self, ids: list[str]) -> int:
        if not ids:
            return 0
        cursor = self.conn.execute(
            f"UPDATE trades SET is_deleted = 0, deleted_at = NULL WHERE id IN ({_placeholders(ids)}) AND is_deleted = 1",
            ids,
        )
        return cursor.rowcount

    def list_purgeable(self, cutoff: datetime, limit: int) -> list[Trade]:
        rows = self.conn.execute(
            """
            SELECT * FROM trades
            WHERE is_deleted = 1 AND deleted_at IS NOT NULL AND deleted_at < ?
            ORDER BY deleted_at ASC
            LIMIT ?
            """,
            (cutoff.isoformat(), max(1, limit)),
        ).fetchall()
        return [_row_to_trade(row) for row in rows]

    def delete_many(self, ids: Iterable[str]) -> int:
        id_list = list(ids)
        if not id_list:
            return 0
        cursor = self.conn.execute(f"DELETE FROM trades WHERE id IN ({_placeholders(id_list)})", id_list)
        return cursor.rowcount

    @staticmethod
    def _columns(trade: Trade) -> tuple[list[str], list[object]]:
        pairs: list[tuple[str, object]] = [
            ("id", trade.id),
            ("account_id", trade.account_id),
            ("external_trade_id", trade.external_trade_id),
            ("raw_symbol", trade.raw_symbol),
            ("symbol", trade.symbol),
            ("direction", trade.direction),
            ("order_type", trade.order_type),
            ("status", trade.status),
            ("outcome", trade.outcome),
            ("is_pending", 1 if trade.pending else 0),
            ("filled", 1 if trade.filled else 0),
            ("entry_price", _to_text(trade.entry_price)),
            ("stop_loss", _to_text(trade.stop_loss)),
            ("take_profit", _to_text(trade.take_profit)),
            ("final_stop_loss", _to_text(trade.final_stop_loss)),
            ("final_take_profit", _to_text(trade.final_take_profit)),
            ("exit_price", _to_text(trade.exit_price)),
            ("quantity", _to_text(trade.quantity)),
            ("partials_json", json.dumps([part.to_dict() for part in trade.partials], separators=(",", ":"))),
            ("main_pnl", _to_text(trade.main_pnl)),
            ("fees", _to_text(trade.fees)),
            ("pnl", _to_text(trade.net_pnl)),
            ("balance_applied", 1 if trade.balance_applied else 0),
            ("tags_json", json.dumps(trade.tags, ensure_ascii=False, separators=(",", ":"))),
            ("screenshots_json", json.dumps(trade.screenshots, ensure_ascii=False, separators=(",", ":"))),
            ("notes", trade.notes),
            ("emotional_notes", trade.emotional_notes),
            ("entry_date", trade.entry_date),
            ("exit_date", trade.exit_date),
            ("created_at", trade.created_at),
            ("is_deleted", 1 if trade.is_deleted else 0),
            ("deleted_at", trade.deleted_at),
        ]
        return [name for name, _ in pairs], [value for _, value in pairs]

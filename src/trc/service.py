from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

from jst import AccountRepository, JournalStore, Trade, TradeRepository
from lcr.errors import BatchConflictError, TransientStoreError, make_journal_error


def _batch_delta(trades: list[Trade], sign: int) -> Decimal:
    total = Decimal("0")
    for trade in trades:
        if trade.balance_applied and trade.net_pnl != 0:
            total += sign * trade.net_pnl
    return total


def _single_account(trades: list[Trade]) -> str:
    account_ids = sorted({trade.account_id for trade in trades})
    if len(account_ids) > 1:
        raise BatchConflictError(account_ids)
    return account_ids[0]


def validate_ids(ids: object) -> list[str]:
    if not isinstance(ids, list) or not ids:
        raise make_journal_error(
            "TRC_IDS_INVALID",
            "ids must be a non-empty list",
            400,
            source="TRC",
            details=[{"field": "ids", "reason": "required non-empty array"}],
        )
    clean: list[str] = []
    for value in ids:
        if not isinstance(value, str) or not value.strip():
            raise make_journal_error(
                "TRC_IDS_INVALID",
                "ids must contain non-empty strings",
                400,
                source="TRC",
                details=[{"field": "ids", "reason": repr(value)}],
            )
        if value not in clean:
            clean.append(value)
    return clean


class TrashRestoreService:
    """Soft-delete and restore trade batches, reversing or reapplying their net P&L."""

    def __init__(self, store: JournalStore, *, clock: Callable[[], datetime] | None = None) -> None:
        self.store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = logging.getLogger("tradejournal.trc")

    def trash(self, ids: list[str]) -> list[Trade]:
        return self._run(validate_ids(ids), restore=False)

    def restore(self, ids: list[str]) -> list[Trade]:
        return self._run(validate_ids(ids), restore=True)

    def _run(self, ids: list[str], *, restore: bool) -> list[Trade]:
        action = "restore" if restore else "trash"
        try:
            with self.store.unit_of_work() as conn:
                trades = TradeRepository(conn, clock=self._clock)
                # only rows that will actually change state take part in the batch
                selected = trades.select_for_batch(ids, deleted=restore)
                if not selected:
                    self._logger.info("%s matched no rows: ids=%s", action, ids)
                    return []

                account_id = _single_account(selected)
                selected_ids = [trade.id for trade in selected]
                delta = _batch_delta(selected, 1 if restore else -1)
                if restore:
                    trades.clear_deleted(selected_ids)
                else:
                    trades.mark_deleted(selected_ids, self._clock())
                AccountRepository(conn, clock=self._clock).add_to_balance(account_id, delta)
                updated = trades.list_by_ids(selected_ids)
        except BatchConflictError:
            self._logger.warning("%s rejected, batch spans accounts: ids=%s", action, ids)
            raise
        except sqlite3.Error as exc:
            self._logger.exception("%s rolled back: ids=%s", action, ids)
            raise TransientStoreError(f"{action} could not be stored, retry: {exc}") from exc

        self._logger.info(
            "%s applied: account_id=%s rows=%s balance_delta=%s",
            action,
            account_id,
            len(updated),
            delta,
        )
        return updated

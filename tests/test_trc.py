from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from jst import AccountRepository, JournalStore, Trade, TradeRepository
from lcr import BatchConflictError, JournalError
from trc import TrashRestoreService, validate_ids


def _now() -> datetime:
    return datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _seed_trade(
    conn,
    *,
    account_id: str,
    external_id: str,
    net_pnl: str,
    applied: bool = True,
) -> Trade:
    trades = TradeRepository(conn, clock=_now)
    trade = trades.get_or_create(account_id, external_id, "EURUSD")
    trade.net_pnl = Decimal(net_pnl)
    trade.balance_applied = applied
    trade.outcome = "Closed"
    trade.status = "WIN" if trade.net_pnl > 0 else "LOSS"
    trades.save(trade)
    if applied:
        AccountRepository(conn, clock=_now).add_to_balance(account_id, trade.net_pnl)
    return trade


@pytest.fixture
def store(tmp_path: Path) -> JournalStore:
    store = JournalStore(tmp_path / "journal.db")
    with store.unit_of_work() as conn:
        accounts = AccountRepository(conn, clock=_now)
        accounts.create(account_id="acc-1", user_id="user-1", name="Main", balance=Decimal("1000"))
        accounts.create(account_id="acc-2", user_id="user-1", name="Swing", balance=Decimal("1000"))
    return store


def _balance(store: JournalStore, account_id: str) -> Decimal:
    with store.unit_of_work() as conn:
        account = AccountRepository(conn).get(account_id)
    assert account is not None
    return account.balance


def test_trash_reverses_applied_pnl_in_one_batch(store: JournalStore) -> None:
    with store.unit_of_work() as conn:
        win = _seed_trade(conn, account_id="acc-1", external_id="E1", net_pnl="48.00")
        loss = _seed_trade(conn, account_id="acc-1", external_id="E2", net_pnl="-20.50")
        unsettled = _seed_trade(conn, account_id="acc-1", external_id="E3", net_pnl="99.00", applied=False)
    assert _balance(store, "acc-1") == Decimal("1027.50")

    service = TrashRestoreService(store, clock=_now)
    trashed = service.trash([win.id, loss.id, unsettled.id])

    assert sorted(trade.id for trade in trashed) == sorted([win.id, loss.id, unsettled.id])
    assert all(trade.is_deleted for trade in trashed)
    assert all(trade.deleted_at == _now().isoformat() for trade in trashed)
    assert _balance(store, "acc-1") == Decimal("1000.00")
    # trash keeps the flag so restore can reapply the same amount
    assert next(trade for trade in trashed if trade.id == win.id).balance_applied is True

    restored = service.restore([win.id, loss.id, unsettled.id])
    assert all(not trade.is_deleted and trade.deleted_at is None for trade in restored)
    assert _balance(store, "acc-1") == Decimal("1027.50")


def test_trash_skips_rows_already_trashed(store: JournalStore) -> None:
    with store.unit_of_work() as conn:
        trade = _seed_trade(conn, account_id="acc-1", external_id="E1", net_pnl="10.00")
    service = TrashRestoreService(store, clock=_now)

    assert len(service.trash([trade.id])) == 1
    assert service.trash([trade.id]) == []
    assert _balance(store, "acc-1") == Decimal("1000.00")

    assert len(service.restore([trade.id])) == 1
    assert service.restore([trade.id]) == []
    assert _balance(store, "acc-1") == Decimal("1010.00")


def test_unknown_ids_are_a_committed_no_op(store: JournalStore) -> None:
    service = TrashRestoreService(store, clock=_now)
    assert service.trash(["missing-1", "missing-2"]) == []
    assert service.restore(["missing-1"]) == []


def test_cross_account_batch_mutates_nothing(store: JournalStore) -> None:
    with store.unit_of_work() as conn:
        first = _seed_trade(conn, account_id="acc-1", external_id="E1", net_pnl="48.00")
        second = _seed_trade(conn, account_id="acc-2", external_id="E1", net_pnl="12.00")
    service = TrashRestoreService(store, clock=_now)

    with pytest.raises(BatchConflictError) as caught:
        service.trash([first.id, second.id])
    assert caught.value.status_code == 400
    assert caught.value.code == "TRC_BATCH_SPANS_ACCOUNTS"

    with store.unit_of_work() as conn:
        rows = TradeRepository(conn).list_by_ids([first.id, second.id])
    assert not any(trade.is_deleted for trade in rows)
    assert _balance(store, "acc-1") == Decimal("1048.00")
    assert _balance(store, "acc-2") == Decimal("1012.00")


def test_restore_rejects_cross_account_batch(store: JournalStore) -> None:
    with store.unit_of_work() as conn:
        first = _seed_trade(conn, account_id="acc-1", external_id="E1", net_pnl="5.00")
        second = _seed_trade(conn, account_id="acc-2", external_id="E1", net_pnl="7.00")
    service = TrashRestoreService(store, clock=_now)
    service.trash([first.id])
    service.trash([second.id])

    with pytest.raises(BatchConflictError):
        service.restore([first.id, second.id])
    assert _balance(store, "acc-1") == Decimal("1000.00")
    assert _balance(store, "acc-2") == Decimal("1000.00")


@pytest.mark.parametrize("ids", [[], None, "t-1", [""], ["t-1", 3]])
def test_invalid_id_lists_are_rejected(ids: object) -> None:
    with pytest.raises(JournalError) as caught:
        validate_ids(ids)
    assert caught.value.status_code == 400
    assert caught.value.code == "TRC_IDS_INVALID"


def test_validate_ids_deduplicates() -> None:
    assert validate_ids(["t-1", "t-2", "t-1"]) == ["t-1", "t-2"]

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
import sqlite3
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from jst import (
    AccountRepository,
    DuplicateEventError,
    EventLedger,
    JournalStore,
    Partial,
    Trade,
    TradeRepository,
    absorb_trade,
    fallback_text,
    initialize_database,
    is_missing,
    merge_tags,
    prefer_existing,
)


def _now() -> datetime:
    return datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


def _store(tmp_path: Path) -> JournalStore:
    store = JournalStore(tmp_path / "journal.db")
    with store.unit_of_work() as conn:
        AccountRepository(conn, clock=_now).create(account_id="acc-1", user_id="user-1", name="Main", balance=Decimal("10000"))
    return store


def test_schema_bootstrap_is_idempotent(tmp_path: Path) -> None:
    db_path = tmp_path / "state" / "journal.db"
    first = initialize_database(db_path)
    first.close()
    second = initialize_database(db_path)
    try:
        tables = {row["name"] for row in second.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        assert {"schema_version", "users", "accounts", "trades", "event_ledger"} <= tables
        versions = second.execute("SELECT COUNT(*) AS total FROM schema_version").fetchone()
        assert versions["total"] == 1
    finally:
        second.close()


def test_preserve_existing_merge_keeps_zero_values() -> None:
    assert is_missing(None)
    assert is_missing("  ")
    assert not is_missing(Decimal("0"))
    assert not is_missing(0)

    assert prefer_existing(Decimal("0"), Decimal("1.5")) == Decimal("0")
    assert prefer_existing(None, Decimal("1.5")) == Decimal("1.5")
    assert prefer_existing("", "LONG") == "LONG"
    assert prefer_existing("SHORT", "LONG") == "SHORT"


def test_merge_tags_is_case_insensitive_union() -> None:
    merged = merge_tags(["#PDH", "news"], ["#pdh", "NEWS", None, "  ", "#Partial"])
    assert merged == ["#PDH", "news", "#Partial"]
    assert merge_tags([], []) == []


def test_fallback_text_only_fills_empty_notes() -> None:
    assert fallback_text("", "agent note") == "agent note"
    assert fallback_text("   ", None) == ""
    assert fallback_text("manual note", "agent note") == "manual note"


def test_get_or_create_returns_single_row_per_external_id(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with store.unit_of_work() as conn:
        trades = TradeRepository(conn, clock=_now)
        first = trades.get_or_create("acc-1", "E1", "EURUSD.a")
        second = trades.get_or_create("acc-1", "E1", "GBPUSD")

    assert first.id == second.id
    assert second.symbol == "EURUSD"
    assert second.raw_symbol == "EURUSD.a"
    assert second.entry_price is None
    assert second.quantity is None
    assert second.pending is False
    assert second.partials == []


def test_unique_index_rejects_second_row_for_same_external_id(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with store.unit_of_work() as conn:
        TradeRepository(conn, clock=_now).get_or_create("acc-1", "E1", None)

    with pytest.raises(sqlite3.IntegrityError):
        with store.unit_of_work() as conn:
            trades = TradeRepository(conn, clock=_now, id_factory=lambda: "trade-dup")
            trade = trades.find_by_external_id("acc-1", "E1")
            assert trade is not None
            trade.id = "trade-dup"
            trades.insert(trade)


def test_merge_pending_into_position_rekeys_existing_row(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with store.unit_of_work() as conn:
        trades = TradeRepository(conn, clock=_now)
        pending = trades.get_or_create("acc-1", "P1", "XAUUSD")
        pending.tags = ["#PDH"]
        pending.partials = [Partial(id="p-1", quantity=Decimal("0.5"), price=Decimal("2000"), pnl=Decimal("10"))]
        trades.save(pending)

        merged, shift = trades.merge_pending_into_position("acc-1", "P1", "Q1", "XAUUSD.pro")

    assert merged.id == pending.id
    assert merged.external_trade_id == "Q1"
    assert shift == Decimal("0")
    assert merged.raw_symbol == "XAUUSD.pro"
    with store.unit_of_work() as conn:
        trades = TradeRepository(conn, clock=_now)
        assert trades.find_by_external_id("acc-1", "P1") is None
        stored = trades.find_by_external_id("acc-1", "Q1")
        assert stored is not None
        assert stored.tags == ["#PDH"]
        assert [part.id for part in stored.partials] == ["p-1"]


def test_merge_pending_folds_existing_position_row(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with store.unit_of_work() as conn:
        trades = TradeRepository(conn, clock=_now)
        pending = trades.get_or_create("acc-1", "P1", "EURUSD")
        pending.entry_price = Decimal("1.1000")
        pending.tags = ["#EQH"]
        trades.save(pending)

        position = trades.get_or_create("acc-1", "Q1", None)
        position.exit_price = Decimal("1.1050")
        position.entry_price = Decimal("1.0990")
        position.tags = ["#Partial"]
        trades.save(position)

        merged, _ = trades.merge_pending_into_position("acc-1", "P1", "Q1", None)

    with store.unit_of_work() as conn:
        rows = conn.execute("SELECT COUNT(*) AS total FROM trades").fetchone()
    assert rows["total"] == 1
    assert merged.id == pending.id
    assert merged.entry_price == Decimal("1.1000")
    assert merged.exit_price == Decimal("1.1050")
    assert merged.tags == ["#EQH", "#Partial"]


def test_merge_pending_falls_back_to_position_id(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with store.unit_of_work() as conn:
        trade, shift = TradeRepository(conn, clock=_now).merge_pending_into_position("acc-1", "P-missing", "Q1", "US30")
    assert shift == Decimal("0")
    assert trade.external_trade_id == "Q1"
    assert trade.symbol == "US30"


def test_absorb_trade_carries_terminal_outcome(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with store.unit_of_work() as conn:
        trades = TradeRepository(conn, clock=_now)
        target = trades.get_or_create("acc-1", "P1", None)
        source = trades.get_or_create("acc-1", "Q1", None)
    source.outcome = "Closed"
    source.status = "WIN"
    source.balance_applied = True
    source.net_pnl = Decimal("48.00")
    source.filled = True
    target.pending = True

    assert absorb_trade(target, source) == Decimal("0")

    assert target.outcome == "Closed"
    assert target.status == "WIN"
    assert target.pending is False
    assert target.filled is True
    assert target.balance_applied is True
    assert target.net_pnl == Decimal("48.00")


def _closed_position(*, deleted: bool) -> Trade:
    return Trade(
        id="trade-q1",
        account_id="acc-1",
        external_trade_id="Q1",
        symbol="EURUSD",
        created_at=_now().isoformat(),
        status="WIN",
        outcome="Closed",
        net_pnl=Decimal("48.00"),
        balance_applied=True,
        is_deleted=deleted,
    )


def test_absorb_trade_reports_balance_shift_across_trash_state() -> None:
    trashed_pending = Trade(id="trade-p1", account_id="acc-1", external_trade_id="P1", symbol="EURUSD", created_at="now", pending=True, is_deleted=True)
    assert absorb_trade(trashed_pending, _closed_position(deleted=False)) == Decimal("-48.00")
    assert trashed_pending.is_deleted is True
    assert trashed_pending.balance_applied is True

    live_pending = Trade(id="trade-p2", account_id="acc-1", external_trade_id="P2", symbol="EURUSD", created_at="now", pending=True)
    assert absorb_trade(live_pending, _closed_position(deleted=True)) == Decimal("48.00")
    assert live_pending.is_deleted is False

    both_trashed = Trade(id="trade-p3", account_id="acc-1", external_trade_id="P3", symbol="EURUSD", created_at="now", is_deleted=True)
    assert absorb_trade(both_trashed, _closed_position(deleted=True)) == Decimal("0")


def test_add_to_balance_is_atomic_delta(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with store.unit_of_work() as conn:
        accounts = AccountRepository(conn, clock=_now)
        assert accounts.add_to_balance("acc-1", Decimal("48.005"))
        assert accounts.add_to_balance("acc-1", Decimal("-0.01"))
        assert not accounts.add_to_balance("acc-missing", Decimal("1"))
        account = accounts.get("acc-1")
    assert account is not None
    assert account.balance == Decimal("10048.00")
    assert account.currency == "USD"


def test_create_account_returns_inserted_values(tmp_path: Path) -> None:
    store = JournalStore(tmp_path / "journal.db")
    with store.unit_of_work() as conn:
        accounts = AccountRepository(conn, clock=_now)
        created = accounts.create(account_id="acc-9", user_id="user-9", name="Prop", balance=Decimal("2500.005"))
        stored = accounts.get("acc-9")
    assert created.balance == Decimal("2500.01")
    assert created.currency == "USD"
    assert stored == created

def test_event_ledger_rejects_duplicate_ids(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with store.unit_of_work() as conn:
        ledger = EventLedger(conn)
        assert not ledger.has_processed("evt-1")
        ledger.record(event_id="evt-1", account_id="acc-1", external_trade_id="E1", event_type="ORDER_PLACED", received_at=_now())
        assert ledger.has_processed("evt-1")
        with pytest.raises(DuplicateEventError):
            ledger.record(event_id="evt-1", account_id="acc-1", external_trade_id="E1", event_type="ORDER_PLACED")
        entry = ledger.get("evt-1")
        assert entry is not None
        assert entry.type == "ORDER_PLACED"
        assert ledger.count() == 1


def test_unit_of_work_rolls_back_on_error(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with pytest.raises(RuntimeError):
        with store.unit_of_work() as conn:
            AccountRepository(conn, clock=_now).add_to_balance("acc-1", Decimal("500"))
            raise RuntimeError("boom")

    with store.unit_of_work() as conn:
        account = AccountRepository(conn, clock=_now).get("acc-1")
    assert account is not None
    assert account.balance == Decimal("10000.00")


def test_purge_queries_respect_cutoff_and_limit(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with store.unit_of_work() as conn:
        trades = TradeRepository(conn, clock=_now)
        ids = [trades.get_or_create("acc-1", f"E{index}", None).id for index in range(3)]
        trades.mark_deleted(ids[:2], _now() - timedelta(days=40))
        trades.mark_deleted(ids[2:], _now())

        purgeable = trades.list_purgeable(_now() - timedelta(days=30), limit=1)
        assert len(purgeable) == 1
        assert purgeable[0].id in ids[:2]
        assert len(trades.list_purgeable(_now() - timedelta(days=30), limit=10)) == 2
        assert trades.delete_many(trade.id for trade in purgeable) == 1

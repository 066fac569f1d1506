from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, TypeVar

from jst import (
    AccountRepository,
    DuplicateEventError,
    EventLedger,
    JournalStore,
    Partial,
    Trade,
    TradeRepository,
    fallback_text,
    is_missing,
    merge_tags,
    prefer_existing,
    q_amount,
)
from nrm import normalize_symbol, normalize_tag_label

from .errors import AccountNotFoundError, TransientStoreError
from .events import (
    AgentEvent,
    OrderCanceledEvent,
    OrderPlacedEvent,
    PartialClosedEvent,
    SltpUpdatedEvent,
    TradeClosedEvent,
    TradeOpenedEvent,
)
from .lifecycle import apply_state, next_state

SL_MOVED_TAG = "#SL-Moved"
TP_MOVED_TAG = "#TP-Moved"
PARTIAL_TAG = "#Partial"
CANCEL_AUDIT_NOTE = "closed trade by EA"
PRICE_EPSILON = Decimal("0.000001")

REPLAY_LEDGER = "ledger"
REPLAY_CONCURRENT = "concurrent"

ValueT = TypeVar("ValueT")


def prefer_incoming(current: ValueT | None, incoming: ValueT | None) -> ValueT | None:
    return prefer_existing(incoming, current)


def price_moved(entry: Decimal | None, final: Decimal | None) -> bool:
    if entry is None or final is None:
        return False
    if entry <= 0 or final <= 0:
        return False
    return abs(entry - final) > PRICE_EPSILON


def moved_tags(trade: Trade, final_stop_loss: Decimal | None, final_take_profit: Decimal | None) -> list[str]:
    tags: list[str] = []
    if price_moved(trade.stop_loss, final_stop_loss):
        tags.append(SL_MOVED_TAG)
    if price_moved(trade.take_profit, final_take_profit):
        tags.append(TP_MOVED_TAG)
    return tags


def _normalized_tags(raw_tags: list[str]) -> list[str | None]:
    return [normalize_tag_label(tag) for tag in raw_tags]


@dataclass(frozen=True)
class ReconcileOutcome:
    event_id: str
    applied: bool
    trade_id: str | None = None
    balance_delta: Decimal = Decimal("0")
    replay_reason: str | None = None

    @property
    def message(self) -> str:
        if self.applied:
            return "Event accepted"
        if self.replay_reason == REPLAY_CONCURRENT:
            return "Event already processed (concurrent)"
        return "Event already processed"


@dataclass
class _EventContext:
    trades: TradeRepository
    accounts: AccountRepository
    account_id: str
    balance_delta: Decimal = Decimal("0")


class LifecycleReconciler:
    """Folds agent lifecycle events into trades and account balances.

    One event is one SQLite transaction: ledger check, account check, the
    trade mutation, any balance delta and the ledger insert commit together
    or not at all. Replaying an event after it committed is a no-op.
    """

    def __init__(
        self,
        store: JournalStore,
        *,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._id_factory = id_factory
        self._logger = logging.getLogger("tradejournal.lcr")
        self._handlers: dict[str, Callable[[_EventContext, AgentEvent], Trade]] = {
            "ORDER_PLACED": self._on_order_placed,
            "TRADE_OPENED": self._on_trade_opened,
            "SLTP_UPDATED": self._on_sltp_updated,
            "PARTIAL_CLOSED": self._on_partial_closed,
            "TRADE_CLOSED": self._on_trade_closed,
            "ORDER_CANCELED": self._on_order_canceled,
        }

    def process(self, event: AgentEvent, *, user_id: str | None = None) -> ReconcileOutcome:
        try:
            with self.store.unit_of_work() as conn:
                ledger = EventLedger(conn)
                if ledger.has_processed(event.eventId):
                    self._logger.info("Replay ignored: event_id=%s type=%s", event.eventId, event.type)
                    return ReconcileOutcome(event_id=event.eventId, applied=False, replay_reason=REPLAY_LEDGER)

                accounts = AccountRepository(conn, clock=self._clock)
                account = accounts.get(event.accountId)
                if account is None or (user_id is not None and account.user_id != user_id):
                    self._logger.warning("Event for unknown account: event_id=%s account_id=%s", event.eventId, event.accountId)
                    raise AccountNotFoundError(event.accountId)

                context = _EventContext(
                    trades=TradeRepository(conn, clock=self._clock, id_factory=self._id_factory),
                    accounts=accounts,
                    account_id=event.accountId,
                )
                trade = self._handlers[event.type](context, event)
                ledger.record(
                    event_id=event.eventId,
                    account_id=event.accountId,
                    external_trade_id=event.externalTradeId,
                    event_type=event.type,
                    received_at=self._clock(),
                )
        except DuplicateEventError:
            self._logger.info("Concurrent replay ignored: event_id=%s type=%s", event.eventId, event.type)
            return ReconcileOutcome(event_id=event.eventId, applied=False, replay_reason=REPLAY_CONCURRENT)
        except sqlite3.Error as exc:
            self._logger.exception("Event rolled back: event_id=%s type=%s", event.eventId, event.type)
            raise TransientStoreError(f"Event could not be stored, retry: {exc}") from exc

        self._logger.info(
            "Event applied: event_id=%s type=%s trade_id=%s balance_delta=%s",
            event.eventId,
            event.type,
            trade.id,
            context.balance_delta,
        )
        return ReconcileOutcome(
            event_id=event.eventId,
            applied=True,
            trade_id=trade.id,
            balance_delta=context.balance_delta,
        )

    def _settle(self, context: _EventContext, trade: Trade, net_pnl: Decimal) -> None:
        """Keep the account balance equal to one application of ``trade.net_pnl``."""
        net_pnl = q_amount(net_pnl)
        delta = Decimal("0")
        # a trashed trade has no balance effect; restore applies whatever it carries
        if not trade.is_deleted:
            delta = net_pnl - trade.net_pnl if trade.balance_applied else net_pnl
        trade.net_pnl = net_pnl
        trade.balance_applied = True
        self._shift_balance(context, delta)

    def _shift_balance(self, context: _EventContext, delta: Decimal) -> None:
        if delta != 0:
            context.accounts.add_to_balance(context.account_id, delta)
            context.balance_delta += delta

    def _on_order_placed(self, context: _EventContext, event: OrderPlacedEvent) -> Trade:
        payload = event.payload
        trade = context.trades.get_or_create(context.account_id, event.externalTradeId, payload.symbol)

        if is_missing(trade.raw_symbol) and payload.symbol:
            trade.raw_symbol = payload.symbol
            trade.symbol = normalize_symbol(payload.symbol)
        trade.direction = prefer_existing(trade.direction, payload.direction)
        trade.order_type = prefer_existing(trade.order_type, payload.orderType)
        trade.entry_price = prefer_existing(trade.entry_price, payload.plannedEntryPrice)
        trade.stop_loss = prefer_existing(trade.stop_loss, payload.entryStopLoss)
        trade.take_profit = prefer_existing(trade.take_profit, payload.entryTakeProfit)
        trade.quantity = prefer_existing(trade.quantity, payload.quantity)
        trade.entry_date = prefer_existing(trade.entry_date, payload.orderPlacedTimeUtc)
        trade.notes = fallback_text(trade.notes, payload.technicalNotes)
        trade.tags = merge_tags(trade.tags, _normalized_tags(payload.tags))

        apply_state(trade, next_state(trade, "ORDER_PLACED"))
        context.trades.save(trade)
        return trade

    def _on_trade_opened(self, context: _EventContext, event: TradeOpenedEvent) -> Trade:
        payload = event.payload
        if payload.pendingExternalTradeId:
            trade, balance_shift = context.trades.merge_pending_into_position(
                context.account_id,
                payload.pendingExternalTradeId,
                event.externalTradeId,
                payload.symbol,
            )
            self._shift_balance(context, balance_shift)
        else:
            trade = context.trades.get_or_create(context.account_id, event.externalTradeId, payload.symbol)

        if payload.symbol:
            trade.raw_symbol = payload.symbol
            trade.symbol = normalize_symbol(payload.symbol)
        trade.direction = prefer_incoming(trade.direction, payload.direction)
        trade.order_type = prefer_incoming(trade.order_type, payload.orderType)
        trade.entry_price = prefer_incoming(trade.entry_price, payload.entryPrice)
        trade.stop_loss = prefer_incoming(trade.stop_loss, payload.entryStopLoss)
        trade.take_profit = prefer_incoming(trade.take_profit, payload.entryTakeProfit)
        trade.quantity = prefer_incoming(trade.quantity, payload.quantity)
        trade.entry_date = prefer_incoming(trade.entry_date, payload.entryTimeUtc) or self._clock().isoformat()
        trade.notes = fallback_text(trade.notes, payload.technicalNotes)
        trade.emotional_notes = fallback_text(trade.emotional_notes, payload.emotionalNotes)
        trade.tags = merge_tags(trade.tags, _normalized_tags(payload.tags))
        trade.filled = True

        apply_state(trade, next_state(trade, "TRADE_OPENED"))
        context.trades.save(trade)
        return trade

    def _on_sltp_updated(self, context: _EventContext, event: SltpUpdatedEvent) -> Trade:
        payload = event.payload
        trade = context.trades.get_or_create(context.account_id, event.externalTradeId, None)

        trade.tags = merge_tags(trade.tags, moved_tags(trade, payload.finalStopLoss, payload.finalTakeProfit))
        trade.final_stop_loss = prefer_incoming(trade.final_stop_loss, payload.finalStopLoss)
        trade.final_take_profit = prefer_incoming(trade.final_take_profit, payload.finalTakeProfit)

        context.trades.save(trade)
        return trade

    def _on_partial_closed(self, context: _EventContext, event: PartialClosedEvent) -> Trade:
        payload = event.payload
        trade = context.trades.get_or_create(context.account_id, event.externalTradeId, None)
        if trade.has_partial(payload.partialId):
            return trade

        trade.partials = [
            *trade.partials,
            Partial(
                id=payload.partialId,
                quantity=payload.closedVolume,
                price=payload.closePrice,
                pnl=payload.partialPnL,
                date=payload.partialTimeUtc,
            ),
        ]
        trade.tags = merge_tags(trade.tags, [PARTIAL_TAG])

        # open trades keep the partial for later; net P&L is settled at close
        if trade.outcome == "Closed":
            core = trade.main_pnl if trade.main_pnl is not None else Decimal("0")
            self._settle(context, trade, core + trade.partials_pnl() - trade.fees)
            apply_state(trade, "CLOSED")

        context.trades.save(trade)
        return trade

    def _on_trade_closed(self, context: _EventContext, event: TradeClosedEvent) -> Trade:
        payload = event.payload
        trade = context.trades.get_or_create(context.account_id, event.externalTradeId, None)

        total_gross = payload.totalPnL if payload.totalPnL is not None else Decimal("0")
        fees = payload.feesUsd if payload.feesUsd is not None else Decimal("0")

        trade.tags = merge_tags(trade.tags, moved_tags(trade, payload.finalStopLoss, payload.finalTakeProfit))
        trade.exit_price = prefer_incoming(trade.exit_price, payload.exitPrice)
        trade.exit_date = prefer_incoming(trade.exit_date, payload.exitTimeUtc)
        trade.final_stop_loss = prefer_incoming(trade.final_stop_loss, payload.finalStopLoss)
        trade.final_take_profit = prefer_incoming(trade.final_take_profit, payload.finalTakeProfit)
        trade.fees = q_amount(fees)
        trade.main_pnl = q_amount(total_gross - trade.partials_pnl())
        self._settle(context, trade, total_gross - fees)

        apply_state(trade, next_state(trade, "TRADE_CLOSED"))
        context.trades.save(trade)
        return trade

    def _on_order_canceled(self, context: _EventContext, event: OrderCanceledEvent) -> Trade:
        payload = event.payload
        trade = context.trades.get_or_create(context.account_id, event.externalTradeId, None)

        state = next_state(trade, "ORDER_CANCELED")
        if state == "MISSED":
            if CANCEL_AUDIT_NOTE not in trade.notes:
                trade.notes = f"{trade.notes}\n{CANCEL_AUDIT_NOTE}" if trade.notes else CANCEL_AUDIT_NOTE
            trade.exit_date = prefer_incoming(trade.exit_date, payload.canceledTimeUtc)
        apply_state(trade, state)

        context.trades.save(trade)
        return trade

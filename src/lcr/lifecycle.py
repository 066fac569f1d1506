from __future__ import annotations

from decimal import Decimal
from typing import Literal

from jst.models import Trade, TradeStatus

from .events import EventType

TradeState = Literal["PENDING", "OPEN", "CLOSED", "MISSED"]

TERMINAL_STATES: frozenset[TradeState] = frozenset({"CLOSED", "MISSED"})

# coarse state after applying an event; side-transitions keep the current state
TRANSITIONS: dict[EventType, dict[TradeState, TradeState]] = {
    "ORDER_PLACED": {"PENDING": "PENDING", "OPEN": "PENDING", "CLOSED": "CLOSED", "MISSED": "MISSED"},
    "TRADE_OPENED": {"PENDING": "OPEN", "OPEN": "OPEN", "CLOSED": "CLOSED", "MISSED": "MISSED"},
    "SLTP_UPDATED": {"PENDING": "PENDING", "OPEN": "OPEN", "CLOSED": "CLOSED", "MISSED": "MISSED"},
    "PARTIAL_CLOSED": {"PENDING": "PENDING", "OPEN": "OPEN", "CLOSED": "CLOSED", "MISSED": "MISSED"},
    "TRADE_CLOSED": {"PENDING": "CLOSED", "OPEN": "CLOSED", "CLOSED": "CLOSED", "MISSED": "CLOSED"},
    "ORDER_CANCELED": {"PENDING": "MISSED", "OPEN": "MISSED", "CLOSED": "CLOSED", "MISSED": "MISSED"},
}


def trade_state(trade: Trade) -> TradeState:
    if trade.outcome == "Closed":
        return "CLOSED"
    if trade.outcome == "Missed":
        return "MISSED"
    return "PENDING" if trade.pending else "OPEN"


def next_state(trade: Trade, event_type: EventType) -> TradeState:
    current = trade_state(trade)
    # a filled position never goes back to pending
    if event_type == "ORDER_PLACED" and current == "OPEN" and trade.filled:
        return "OPEN"
    return TRANSITIONS[event_type][current]


def status_for_net_pnl(net_pnl: Decimal) -> TradeStatus:
    if net_pnl > 0:
        return "WIN"
    if net_pnl < 0:
        return "LOSS"
    return "BREAK_EVEN"


def apply_state(trade: Trade, state: TradeState) -> None:
    if state == "PENDING":
        trade.pending, trade.outcome, trade.status = True, "Open", "OPEN"
    elif state == "OPEN":
        trade.pending, trade.outcome, trade.status = False, "Open", "OPEN"
    elif state == "MISSED":
        trade.pending, trade.outcome, trade.status = False, "Missed", "MISSED"
    else:
        trade.pending, trade.outcome = False, "Closed"
        trade.status = status_for_net_pnl(trade.net_pnl)

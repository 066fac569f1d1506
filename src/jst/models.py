from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Literal

Direction = Literal["LONG", "SHORT"]
TradeStatus = Literal["OPEN", "WIN", "LOSS", "BREAK_EVEN", "MISSED"]
TradeOutcome = Literal["Open", "Closed", "Missed"]

SETTLEMENT_CURRENCY = "USD"


def _decimal_or_none(value: Any) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


def _text_or_none(value: Decimal | None) -> str | None:
    return format(value, "f") if value is not None else None


@dataclass(frozen=True)
class Account:
    id: str
    user_id: str
    name: str
    currency: str
    balance: Decimal


@dataclass(frozen=True)
class Partial:
    id: str
    quantity: Decimal | None
    price: Decimal | None
    pnl: Decimal | None
    date: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "quantity": _text_or_none(self.quantity),
            "price": _text_or_none(self.price),
            "pnl": _text_or_none(self.pnl),
            "date": self.date,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Partial":
        return cls(
            id=str(raw["id"]),
            quantity=_decimal_or_none(raw.get("quantity")),
            price=_decimal_or_none(raw.get("price")),
            pnl=_decimal_or_none(raw.get("pnl")),
            date=raw.get("date"),
        )


@dataclass
class Trade:
    id: str
    account_id: str
    external_trade_id: str | None
    symbol: str
    created_at: str
    raw_symbol: str | None = None
    direction: Direction | None = None
    order_type: str | None = None
    status: TradeStatus = "OPEN"
    outcome: TradeOutcome = "Open"
    pending: bool = False
    filled: bool = False
    entry_price: Decimal | None = None
    stop_loss: Decimal | None = None
    take_profit: Decimal | None = None
    final_stop_loss: Decimal | None = None
    final_take_profit: Decimal | None = None
    exit_price: Decimal | None = None
    quantity: Decimal | None = None
    partials: list[Partial] = field(default_factory=list)
    main_pnl: Decimal | None = None
    fees: Decimal = Decimal("0")
    net_pnl: Decimal = Decimal("0")
    balance_applied: bool = False
    tags: list[str] = field(default_factory=list)
    screenshots: list[str] = field(default_factory=list)
    notes: str = ""
    emotional_notes: str = ""
    entry_date: str | None = None
    exit_date: str | None = None
    is_deleted: bool = False
    deleted_at: str | None = None

    def partials_pnl(self) -> Decimal:
        return sum((part.pnl for part in self.partials if part.pnl is not None), Decimal("0"))

    def has_partial(self, partial_id: str) -> bool:
        return any(part.id == partial_id for part in self.partials)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "accountId": self.account_id,
            "externalTradeId": self.external_trade_id,
            "symbol": self.symbol,
            "rawSymbol": self.raw_symbol,
            "type": self.direction,
            "orderType": self.order_type,
            "status": self.status,
            "outcome": self.outcome,
            "isPending": self.pending,
            "entryPrice": _text_or_none(self.entry_price),
            "stopLoss": _text_or_none(self.stop_loss),
            "takeProfit": _text_or_none(self.take_profit),
            "finalStopLoss": _text_or_none(self.final_stop_loss),
            "finalTakeProfit": _text_or_none(self.final_take_profit),
            "exitPrice": _text_or_none(self.exit_price),
            "quantity": _text_or_none(self.quantity),
            "partials": [part.to_dict() for part in self.partials],
            "mainPnl": _text_or_none(self.main_pnl),
            "fees": _text_or_none(self.fees),
            "pnl": _text_or_none(self.net_pnl),
            "isBalanceUpdated": self.balance_applied,
            "tags": list(self.tags),
            "screenshots": list(self.screenshots),
            "notes": self.notes,
            "emotionalNotes": self.emotional_notes,
            "entryDate": self.entry_date,
            "exitDate": self.exit_date,
            "createdAt": self.created_at,
            "isDeleted": self.is_deleted,
            "deletedAt": self.deleted_at,
        }


@dataclass(frozen=True)
class EventLedgerEntry:
    event_id: str
    account_id: str
    external_trade_id: str
    type: str
    received_at: str

from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .errors import EventValidationError

EventType = Literal[
    "ORDER_PLACED",
    "TRADE_OPENED",
    "SLTP_UPDATED",
    "PARTIAL_CLOSED",
    "TRADE_CLOSED",
    "ORDER_CANCELED",
]
EVENT_TYPES: tuple[str, ...] = (
    "ORDER_PLACED",
    "TRADE_OPENED",
    "SLTP_UPDATED",
    "PARTIAL_CLOSED",
    "TRADE_CLOSED",
    "ORDER_CANCELED",
)

_DIRECTION_ALIASES = {"LONG": "LONG", "BUY": "LONG", "SHORT": "SHORT", "SELL": "SHORT"}
# upper bound for every numeric payload field, so amounts always quantize to cents
MAX_ABS_NUMBER = Decimal("1e12")


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @field_validator("*", mode="before")
    @classmethod
    def _blank_is_absent(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("*", mode="after")
    @classmethod
    def _bounded_number(cls, value: Any) -> Any:
        if isinstance(value, Decimal) and abs(value) >= MAX_ABS_NUMBER:
            raise ValueError(f"must be smaller than {MAX_ABS_NUMBER:f} in magnitude")
        return value


class _EntryPayload(_Payload):
    symbol: str | None = None
    direction: Literal["LONG", "SHORT"] | None = None
    orderType: str | None = None
    entryStopLoss: Decimal | None = None
    entryTakeProfit: Decimal | None = None
    quantity: Decimal | None = None
    tags: list[str] = Field(default_factory=list)
    technicalNotes: str | None = None

    @field_validator("direction", mode="before")
    @classmethod
    def _normalize_direction(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _DIRECTION_ALIASES.get(value.strip().upper(), value)
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_default(cls, value: Any) -> Any:
        return [] if value is None else value


class OrderPlacedPayload(_EntryPayload):
    plannedEntryPrice: Decimal | None = None
    orderPlacedTimeUtc: str | None = None


class TradeOpenedPayload(_EntryPayload):
    entryPrice: Decimal | None = None
    entryTimeUtc: str | None = None
    emotionalNotes: str | None = None
    pendingExternalTradeId: str | None = None


class SltpUpdatedPayload(_Payload):
    finalStopLoss: Decimal | None = None
    finalTakeProfit: Decimal | None = None


class PartialClosedPayload(_Payload):
    partialId: str = Field(min_length=1)
    closedVolume: Decimal | None = None
    closePrice: Decimal | None = None
    partialPnL: Decimal | None = None
    partialTimeUtc: str | None = None


class TradeClosedPayload(_Payload):
    exitPrice: Decimal | None = None
    exitTimeUtc: str | None = None
    totalPnL: Decimal | None = None
    feesUsd: Decimal | None = None
    finalStopLoss: Decimal | None = None
    finalTakeProfit: Decimal | None = None


class OrderCanceledPayload(_Payload):
    canceledTimeUtc: str | None = None


class _Envelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    eventId: str = Field(min_length=1, max_length=255)
    accountId: str = Field(min_length=1, max_length=255)
    externalTradeId: str = Field(min_length=1, max_length=255)


class OrderPlacedEvent(_Envelope):
    type: Literal["ORDER_PLACED"]
    payload: OrderPlacedPayload


class TradeOpenedEvent(_Envelope):
    type: Literal["TRADE_OPENED"]
    payload: TradeOpenedPayload


class SltpUpdatedEvent(_Envelope):
    type: Literal["SLTP_UPDATED"]
    payload: SltpUpdatedPayload


class PartialClosedEvent(_Envelope):
    type: Literal["PARTIAL_CLOSED"]
    payload: PartialClosedPayload


class TradeClosedEvent(_Envelope):
    type: Literal["TRADE_CLOSED"]
    payload: TradeClosedPayload


class OrderCanceledEvent(_Envelope):
    type: Literal["ORDER_CANCELED"]
    payload: OrderCanceledPayload


AgentEvent = Annotated[
    Union[
        OrderPlacedEvent,
        TradeOpenedEvent,
        SltpUpdatedEvent,
        PartialClosedEvent,
        TradeClosedEvent,
        OrderCanceledEvent,
    ],
    Field(discriminator="type"),
]

_AGENT_EVENT_ADAPTER: TypeAdapter[AgentEvent] = TypeAdapter(AgentEvent)

_ENVELOPE_FIELDS = ("eventId", "accountId", "externalTradeId", "type")


def _precheck(body: Any) -> None:
    if not isinstance(body, dict):
        raise EventValidationError("Event body must be a JSON object")
    for name in _ENVELOPE_FIELDS:
        value = body.get(name)
        if not isinstance(value, str) or not value:
            raise EventValidationError(
                f"Invalid or missing {name}",
                details=[{"field": name, "reason": "required non-empty string"}],
            )
    if not isinstance(body.get("payload"), dict):
        raise EventValidationError(
            "Invalid or missing payload",
            details=[{"field": "payload", "reason": "required object"}],
        )
    if body["type"] not in EVENT_TYPES:
        raise EventValidationError(
            f"Unsupported event type: {body['type']}",
            details=[{"field": "type", "reason": body["type"]}],
        )


def parse_agent_event(body: Any) -> AgentEvent:
    _precheck(body)
    try:
        return _AGENT_EVENT_ADAPTER.validate_python(body)
    except ValidationError as exc:
        details = [
            {"field": ".".join(str(part) for part in error["loc"]), "reason": error["msg"]}
            for error in exc.errors()
        ]
        raise EventValidationError("Event failed validation", details=details) from exc

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, TypeVar

ValueT = TypeVar("ValueT")


def is_missing(value: object) -> bool:
    """None and blank strings are missing; zero and False are real values."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def prefer_existing(current: ValueT | None, incoming: ValueT | None) -> ValueT | None:
    if not is_missing(current):
        return current
    return incoming


def merge_tags(current: Iterable[str], incoming: Iterable[str | None]) -> list[str]:
    merged = list(current)
    seen = {tag.strip().lower() for tag in merged}
    for tag in incoming:
        if tag is None:
            continue
        clean = tag.strip()
        if not clean or clean.lower() in seen:
            continue
        seen.add(clean.lower())
        merged.append(clean)
    return merged


def fallback_text(current: str | None, incoming: str | None) -> str:
    if current and current.strip():
        return current
    return incoming or ""


_ENTRY_FIELDS = (
    "raw_symbol",
    "direction",
    "order_type",
    "entry_price",
    "stop_loss",
    "take_profit",
    "quantity",
    "entry_date",
)
_EXIT_FIELDS = (
    "exit_price",
    "final_stop_loss",
    "final_take_profit",
    "exit_date",
    "main_pnl",
)


def balance_contribution(trade) -> Decimal:
    """Net P&L this row currently holds in its account balance."""
    if trade.balance_applied and not trade.is_deleted:
        return trade.net_pnl
    return Decimal("0")


def absorb_trade(target, source) -> Decimal:
    """Fold ``source`` into ``target`` when two rows turn out to be one economic trade.

    ``target`` keeps its entry-side values and its trash state, ``source`` wins on
    exit-side values. Returns the balance delta that keeps the account equal to
    one application of the merged row once ``source`` is gone.
    """
    held_before = balance_contribution(target) + balance_contribution(source)
    for name in _ENTRY_FIELDS:
        setattr(target, name, prefer_existing(getattr(target, name), getattr(source, name)))
    for name in _EXIT_FIELDS:
        setattr(target, name, prefer_existing(getattr(source, name), getattr(target, name)))

    known = {part.id for part in target.partials}
    target.partials = [*target.partials, *(part for part in source.partials if part.id not in known)]
    target.tags = merge_tags(target.tags, source.tags)
    target.screenshots = [*target.screenshots, *(ref for ref in source.screenshots if ref not in target.screenshots)]
    target.notes = fallback_text(target.notes, source.notes)
    target.emotional_notes = fallback_text(target.emotional_notes, source.emotional_notes)
    target.filled = target.filled or source.filled

    if source.outcome != "Open":
        target.status = source.status
        target.outcome = source.outcome
        target.pending = False
    if source.balance_applied and not target.balance_applied:
        target.balance_applied = True
        target.fees = source.fees
        target.net_pnl = source.net_pnl
    return balance_contribution(target) - held_before

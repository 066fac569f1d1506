from .bootstrap import JournalStore, get_connection, initialize_database, run_migrations, transaction
from .ledger import DuplicateEventError, EventLedger
from .merge import absorb_trade, balance_contribution, fallback_text, is_missing, merge_tags, prefer_existing
from .models import Account, EventLedgerEntry, Partial, Trade
from .repository import AccountRepository, TradeRepository, q_amount

__all__ = [
    "Account",
    "AccountRepository",
    "DuplicateEventError",
    "EventLedger",
    "EventLedgerEntry",
    "JournalStore",
    "Partial",
    "Trade",
    "TradeRepository",
    "absorb_trade",
    "balance_contribution",
    "fallback_text",
    "get_connection",
    "initialize_database",
    "is_missing",
    "merge_tags",
    "prefer_existing",
    "q_amount",
    "run_migrations",
    "transaction",
]

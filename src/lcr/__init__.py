from .errors import (
    AccountNotFoundError,
    AgentAuthorizationError,
    BatchConflictError,
    EventValidationError,
    JournalError,
    JournalErrorPayload,
    TransientStoreError,
    make_journal_error,
)
from .events import AgentEvent, EVENT_TYPES, parse_agent_event
from .lifecycle import TERMINAL_STATES, TRANSITIONS, next_state, trade_state
from .service import LifecycleReconciler, ReconcileOutcome

__all__ = [
    "AccountNotFoundError",
    "AgentAuthorizationError",
    "AgentEvent",
    "BatchConflictError",
    "EVENT_TYPES",
    "EventValidationError",
    "JournalError",
    "JournalErrorPayload",
    "LifecycleReconciler",
    "ReconcileOutcome",
    "TERMINAL_STATES",
    "TRANSITIONS",
    "TransientStoreError",
    "make_journal_error",
    "next_state",
    "parse_agent_event",
    "trade_state",
]

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class JournalErrorPayload:
    code: str
    message: str
    status_code: int
    retryable: bool
    source: str = "LCR"
    details: list[dict[str, Any]] | None = None


class JournalError(RuntimeError):
    def __init__(self, payload: JournalErrorPayload) -> None:
        super().__init__(f"{payload.code}: {payload.message}")
        self.payload = payload

    @property
    def code(self) -> str:
        return self.payload.code

    @property
    def status_code(self) -> int:
        return self.payload.status_code

    @property
    def retryable(self) -> bool:
        return self.payload.retryable


class EventValidationError(JournalError):
    def __init__(self, message: str, details: list[dict[str, Any]] | None = None) -> None:
        super().__init__(JournalErrorPayload("LCR_EVENT_INVALID", message, 400, False, details=details))


class AgentAuthorizationError(JournalError):
    def __init__(self) -> None:
        super().__init__(JournalErrorPayload("LCR_UNAUTHORIZED", "Unauthorized", 401, False))


class AccountNotFoundError(JournalError):
    def __init__(self, account_id: str) -> None:
        super().__init__(
            JournalErrorPayload(
                "LCR_ACCOUNT_NOT_FOUND",
                "Account not found",
                404,
                False,
                details=[{"field": "accountId", "reason": account_id}],
            )
        )


class BatchConflictError(JournalError):
    def __init__(self, account_ids: list[str]) -> None:
        super().__init__(
            JournalErrorPayload(
                "TRC_BATCH_SPANS_ACCOUNTS",
                "Selected trades span multiple accounts.",
                400,
                False,
                source="TRC",
                details=[{"field": "ids", "reason": ",".join(account_ids)}],
            )
        )


class TransientStoreError(JournalError):
    def __init__(self, message: str) -> None:
        super().__init__(JournalErrorPayload("LCR_STORE_UNAVAILABLE", message, 500, True))


def make_journal_error(
    code: str,
    message: str,
    status_code: int,
    *,
    retryable: bool = False,
    source: str = "LCR",
    details: list[dict[str, Any]] | None = None,
) -> JournalError:
    return JournalError(JournalErrorPayload(code, message, status_code, retryable, source, details))

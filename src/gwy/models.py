from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from lcr.events import MAX_ABS_NUMBER


class IdsRequest(BaseModel):
    ids: list[str] = Field(min_length=1, max_length=500)


class AdjustBalanceRequest(BaseModel):
    amount: Decimal = Field(gt=-MAX_ABS_NUMBER, lt=MAX_ABS_NUMBER)


def _meta() -> dict[str, str]:
    return {"timestamp": datetime.now().astimezone().isoformat()}


def build_success_envelope(*, request_id: str, data: dict[str, Any], message: str | None = None) -> dict[str, Any]:
    envelope: dict[str, Any] = {
        "success": True,
        "requestId": request_id,
        "data": data,
        "meta": _meta(),
    }
    if message:
        envelope["message"] = message
    return envelope


def build_error_envelope(
    *,
    request_id: str,
    code: str,
    message: str,
    details: list[dict[str, Any]] | None = None,
    retryable: bool = False,
    source: str = "GWY",
) -> dict[str, Any]:
    return {
        "success": False,
        "requestId": request_id,
        "error": {
            "code": code,
            "message": message,
            "retryable": retryable,
            "source": source,
            "details": details or [],
        },
        "meta": _meta(),
    }

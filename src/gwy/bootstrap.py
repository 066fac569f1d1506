from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable
from uuid import uuid4

from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from lcr import EventValidationError, JournalError
from rtp import AssetDeleter

from .models import AdjustBalanceRequest, IdsRequest, build_error_envelope, build_success_envelope
from .service import GatewayService
from .settings import GatewaySettings


def _request_id(request: Request) -> str:
    header_value = request.headers.get("X-Request-Id")
    if header_value:
        return header_value
    prior = getattr(request.state, "request_id", None)
    if prior:
        return prior
    request.state.request_id = f"req-{uuid4().hex[:12]}"
    return request.state.request_id


def _outcome_data(outcome) -> dict[str, Any]:
    return {
        "eventId": outcome.event_id,
        "applied": outcome.applied,
        "tradeId": outcome.trade_id,
        "balanceDelta": format(outcome.balance_delta, "f"),
    }


def create_app(
    settings: GatewaySettings | None = None,
    *,
    asset_deleter: AssetDeleter | None = None,
    clock: Callable[[], datetime] | None = None,
) -> FastAPI:
    app = FastAPI(title="Trade Journal Gateway", version="0.1.0")
    service = GatewayService(settings or GatewaySettings.from_env(), asset_deleter=asset_deleter, clock=clock)
    app.state.service = service

    @app.exception_handler(JournalError)
    async def _handle_journal_error(request: Request, exc: JournalError) -> JSONResponse:
        payload = build_error_envelope(
            request_id=_request_id(request),
            code=exc.code,
            message=exc.payload.message,
            details=exc.payload.details,
            retryable=exc.retryable,
            source=exc.payload.source,
        )
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.exception_handler(RequestValidationError)
    async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {"field": ".".join(str(part) for part in error["loc"]), "reason": error["msg"]}
            for error in exc.errors()
        ]
        payload = build_error_envelope(
            request_id=_request_id(request),
            code="GWY_REQUEST_INVALID",
            message="Request failed validation",
            details=details,
        )
        return JSONResponse(status_code=400, content=payload)

    @app.exception_handler(HTTPException)
    async def _handle_http_exception(request: Request, exc: HTTPException) -> JSONResponse:
        message = str(exc.detail) if exc.detail else "Request could not be processed"
        payload = build_error_envelope(request_id=_request_id(request), code="GWY_HTTP_ERROR", message=message)
        return JSONResponse(status_code=exc.status_code, content=payload)

    @app.on_event("shutdown")
    async def _on_shutdown() -> None:
        service.shutdown()

    @app.get("/api/ea/ping")
    async def ea_ping() -> dict:
        return {"ok": True, "timeUtc": datetime.now(timezone.utc).isoformat()}

    @app.post("/api/ea/events")
    async def ea_events(
        request: Request,
        x_ea_secret: str | None = Header(default=None, alias="X-EA-Secret"),
    ) -> dict:
        request_id = _request_id(request)
        service.authorize_agent(x_ea_secret, client_host=request.client.host if request.client else None)
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise EventValidationError("Event body must be valid JSON") from exc

        outcome = await run_in_threadpool(service.ingest_event, body)
        message = None if outcome.applied else "Event already processed"
        return build_success_envelope(request_id=request_id, data=_outcome_data(outcome), message=message)

    @app.post("/api/trades/trash")
    def trash_trades(body: IdsRequest, request: Request) -> dict:
        items = service.trash(body.ids)
        return build_success_envelope(request_id=_request_id(request), data={"items": items})

    @app.post("/api/trades/restore")
    def restore_trades(body: IdsRequest, request: Request) -> dict:
        items = service.restore(body.ids)
        return build_success_envelope(request_id=_request_id(request), data={"items": items})

    @app.get("/api/trades")
    def list_trades(request: Request, account_id: str = Query(alias="accountId", min_length=1)) -> dict:
        items = service.list_trades(account_id)
        return build_success_envelope(request_id=_request_id(request), data={"items": items})

    @app.get("/api/accounts/{account_id}")
    def get_account(account_id: str, request: Request) -> dict:
        data = service.get_account(account_id)
        return build_success_envelope(request_id=_request_id(request), data=data)

    @app.post("/api/accounts/{account_id}/adjust-balance")
    def adjust_balance(account_id: str, body: AdjustBalanceRequest, request: Request) -> dict:
        data = service.adjust_balance(account_id, body.amount)
        return build_success_envelope(request_id=_request_id(request), data=data)

    return app

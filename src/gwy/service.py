from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Iterator

from jst import Account, AccountRepository, JournalStore, TradeRepository, q_amount
from lcr import (
    AccountNotFoundError,
    AgentAuthorizationError,
    LifecycleReconciler,
    ReconcileOutcome,
    TransientStoreError,
    parse_agent_event,
)
from rtp import AssetDeleter, HttpAssetDeleter, LoggingAssetDeleter, RetentionPurger
from trc import TrashRestoreService

from .settings import GatewaySettings


def account_view(account: Account) -> dict[str, Any]:
    return {
        "id": account.id,
        "userId": account.user_id,
        "name": account.name,
        "currency": account.currency,
        "balance": format(account.balance, "f"),
    }


def build_asset_deleter(settings: GatewaySettings) -> AssetDeleter:
    if settings.asset_delete_url:
        return HttpAssetDeleter(settings.asset_delete_url, token=settings.asset_delete_token)
    return LoggingAssetDeleter()


class GatewayService:
    def __init__(
        self,
        settings: GatewaySettings,
        *,
        asset_deleter: AssetDeleter | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._logger = logging.getLogger("tradejournal.gwy")
        self.settings = settings
        self.store = JournalStore(settings.db_path, busy_timeout_seconds=settings.db_busy_timeout_seconds)
        self.reconciler = LifecycleReconciler(self.store, clock=clock)
        self.trash_restore = TrashRestoreService(self.store, clock=clock)
        self.purger = RetentionPurger(
            self.store,
            deleter=asset_deleter or build_asset_deleter(settings),
            retention=timedelta(days=settings.retention_days),
            interval=timedelta(hours=settings.purge_interval_hours),
            batch_limit=settings.purge_batch_limit,
            clock=clock,
            run_in_background=settings.purge_in_background,
        )
        if not settings.ea_shared_secret:
            self._logger.warning("EA_SHARED_SECRET is not set; agent events will be rejected")

    def authorize_agent(self, secret: str | None, *, client_host: str | None = None) -> None:
        expected = self.settings.ea_shared_secret
        if not expected or not secret or secret != expected:
            self._logger.warning("Unauthorized agent call rejected: client=%s", client_host or "-")
            raise AgentAuthorizationError()

    def ingest_event(self, body: Any) -> ReconcileOutcome:
        event = parse_agent_event(body)
        return self.reconciler.process(event, user_id=self.settings.agent_user_id)

    def trash(self, ids: list[str]) -> list[dict[str, Any]]:
        return [trade.to_dict() for trade in self.trash_restore.trash(ids)]

    def restore(self, ids: list[str]) -> list[dict[str, Any]]:
        return [trade.to_dict() for trade in self.trash_restore.restore(ids)]

    def list_trades(self, account_id: str) -> list[dict[str, Any]]:
        self.purger.maybe_purge()
        with self._unit_of_work() as conn:
            if AccountRepository(conn).get(account_id) is None:
                raise AccountNotFoundError(account_id)
            trades = TradeRepository(conn).list_for_account(account_id)
        return [trade.to_dict() for trade in trades]

    def get_account(self, account_id: str) -> dict[str, Any]:
        with self._unit_of_work() as conn:
            account = AccountRepository(conn).get(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account_view(account)

    def adjust_balance(self, account_id: str, amount: Decimal) -> dict[str, Any]:
        amount = q_amount(amount)
        with self._unit_of_work() as conn:
            accounts = AccountRepository(conn)
            if accounts.get(account_id) is None:
                raise AccountNotFoundError(account_id)
            accounts.add_to_balance(account_id, amount)
            account = accounts.get(account_id)
        self._logger.info("Balance adjusted: account_id=%s amount=%s", account_id, amount)
        return account_view(account)

    def shutdown(self) -> None:
        self.purger.join(timeout=5.0)

    @contextmanager
    def _unit_of_work(self) -> Iterator[sqlite3.Connection]:
        try:
            with self.store.unit_of_work() as conn:
                yield conn
        except sqlite3.Error as exc:
            self._logger.exception("Journal store call failed")
            raise TransientStoreError(f"Journal store unavailable: {exc}") from exc

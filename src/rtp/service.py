from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable

from jst import JournalStore, TradeRepository

from .assets import AssetDeleter, LoggingAssetDeleter, best_effort_delete

DEFAULT_RETENTION = timedelta(days=30)
DEFAULT_CHECK_INTERVAL = timedelta(hours=24)
DEFAULT_BATCH_LIMIT = 100


class RetentionPurger:
    """Permanently removes trashed trades once they outlive the retention window.

    ``maybe_purge`` is cheap to call on every read: it runs at most once per
    ``interval`` and, by default, does the work on a daemon thread.
    """

    def __init__(
        self,
        store: JournalStore,
        *,
        deleter: AssetDeleter | None = None,
        retention: timedelta = DEFAULT_RETENTION,
        interval: timedelta = DEFAULT_CHECK_INTERVAL,
        batch_limit: int = DEFAULT_BATCH_LIMIT,
        clock: Callable[[], datetime] | None = None,
        run_in_background: bool = True,
    ) -> None:
        self.store = store
        self.deleter = deleter or LoggingAssetDeleter()
        self.retention = retention
        self.interval = interval
        self.batch_limit = batch_limit
        self.run_in_background = run_in_background
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._logger = logging.getLogger("tradejournal.rtp")
        self._lock = threading.Lock()
        self._last_check: datetime | None = None
        self._running = False
        self._thread: threading.Thread | None = None

    @property
    def last_check(self) -> datetime | None:
        return self._last_check

    def maybe_purge(self) -> bool:
        now = self._clock()
        with self._lock:
            if self._running:
                return False
            if self._last_check is not None and now - self._last_check < self.interval:
                return False
            self._last_check = now
            self._running = True

        if not self.run_in_background:
            self._purge_worker()
            return True

        self._thread = threading.Thread(target=self._purge_worker, name="rtp-retention-purge", daemon=True)
        self._thread.start()
        return True

    def join(self, timeout: float | None = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def purge_now(self) -> int:
        cutoff = self._clock() - self.retention
        with self.store.unit_of_work() as conn:
            trades = TradeRepository(conn, clock=self._clock)
            expired = trades.list_purgeable(cutoff, self.batch_limit)
            deleted = trades.delete_many(trade.id for trade in expired)

        # rows are gone for good before any storage call is made
        refs = [ref for trade in expired for ref in trade.screenshots]
        best_effort_delete(self.deleter, refs)
        self._logger.info("Retention purge done: cutoff=%s deleted=%s assets=%s", cutoff.isoformat(), deleted, len(refs))
        return deleted

    def _purge_worker(self) -> None:
        try:
            self.purge_now()
        except Exception:
            self._logger.exception("Retention purge failed")
        finally:
            with self._lock:
                self._running = False

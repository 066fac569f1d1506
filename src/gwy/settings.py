from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

DEFAULT_DB_PATH = "runtime/state/journal.db"


def _text(environ: Mapping[str, str], name: str) -> str | None:
    value = environ.get(name, "").strip()
    return value or None


def _number(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = _text(environ, name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True)
class GatewaySettings:
    db_path: str = DEFAULT_DB_PATH
    ea_shared_secret: str | None = None
    agent_user_id: str | None = None
    retention_days: float = 30
    purge_interval_hours: float = 24
    purge_batch_limit: int = 100
    purge_in_background: bool = True
    asset_delete_url: str | None = None
    asset_delete_token: str | None = None
    db_busy_timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "GatewaySettings":
        env = os.environ if environ is None else environ
        return cls(
            db_path=_text(env, "JOURNAL_DB_PATH") or DEFAULT_DB_PATH,
            ea_shared_secret=_text(env, "EA_SHARED_SECRET"),
            agent_user_id=_text(env, "JOURNAL_AGENT_USER_ID"),
            retention_days=_number(env, "JOURNAL_RETENTION_DAYS", 30),
            purge_interval_hours=_number(env, "JOURNAL_PURGE_INTERVAL_HOURS", 24),
            purge_batch_limit=int(_number(env, "JOURNAL_PURGE_BATCH_LIMIT", 100)),
            asset_delete_url=_text(env, "JOURNAL_ASSET_DELETE_URL"),
            asset_delete_token=_text(env, "JOURNAL_ASSET_DELETE_TOKEN"),
            db_busy_timeout_seconds=_number(env, "JOURNAL_DB_BUSY_TIMEOUT_SECONDS", 10.0),
        )

SCHEMA_VERSION = 1

SCHEMA_SQL = """
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS schema_version (
  version INTEGER PRIMARY KEY,
  applied_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS users (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS accounts (
  id TEXT PRIMARY KEY,
  user_id TEXT NOT NULL REFERENCES users(id),
  name TEXT NOT NULL,
  currency TEXT NOT NULL DEFAULT 'USD',
  balance NUMERIC NOT NULL DEFAULT 0,
  created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_accounts_user ON accounts(user_id);

CREATE TABLE IF NOT EXISTS trades (
  id TEXT PRIMARY KEY,
  account_id TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
  external_trade_id TEXT NULL,
  raw_symbol TEXT NULL,
  symbol TEXT NOT NULL,
  direction TEXT NULL,
  order_type TEXT NULL,
  status TEXT NOT NULL,
  outcome TEXT NOT NULL,
  is_pending INTEGER NOT NULL DEFAULT 0,
  filled INTEGER NOT NULL DEFAULT 0,
  entry_price NUMERIC NULL,
  stop_loss NUMERIC NULL,
  take_profit NUMERIC NULL,
  final_stop_loss NUMERIC NULL,
  final_take_profit NUMERIC NULL,
  exit_price NUMERIC NULL,
  quantity NUMERIC NULL,
  partials_json TEXT NOT NULL DEFAULT '[]',
  main_pnl NUMERIC NULL,
  fees NUMERIC NOT NULL DEFAULT 0,
  pnl NUMERIC NOT NULL DEFAULT 0,
  balance_applied INTEGER NOT NULL DEFAULT 0,
  tags_json TEXT NOT NULL DEFAULT '[]',
  screenshots_json TEXT NOT NULL DEFAULT '[]',
  notes TEXT NOT NULL DEFAULT '',
  emotional_notes TEXT NOT NULL DEFAULT '',
  entry_date TEXT NULL,
  exit_date TEXT NULL,
  created_at TEXT NOT NULL,
  is_deleted INTEGER NOT NULL DEFAULT 0,
  deleted_at TEXT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS uq_trades_account_external
ON trades(account_id, external_trade_id) WHERE external_trade_id IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_trades_deleted_at
ON trades(is_deleted, deleted_at);

CREATE TABLE IF NOT EXISTS event_ledger (
  event_id TEXT PRIMARY KEY,
  account_id TEXT NOT NULL,
  external_trade_id TEXT NOT NULL,
  type TEXT NOT NULL,
  received_at TEXT NOT NULL
);
"""

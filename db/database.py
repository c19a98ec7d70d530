import logging
import os
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from services.balance import float_from_env
from services.errors import ConcurrencyConflict

logger = logging.getLogger("aura.db")

DB_PATH = Path(os.getenv("AURA_DB_PATH", "aura_zone.db"))
DB_TIMEOUT = float_from_env("AURA_DB_TIMEOUT", 5.0)

PathLike = Union[str, Path]


def db(path: Optional[PathLike] = None, timeout: Optional[float] = None) -> sqlite3.Connection:
    con = sqlite3.connect(path or DB_PATH, timeout=DB_TIMEOUT if timeout is None else timeout)
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA foreign_keys = ON")
    return con


def now_ts() -> int:
    return int(time.time())


def is_lock_error(exc: BaseException) -> bool:
    if not isinstance(exc, sqlite3.OperationalError):
        return False
    text = str(exc).lower()
    return "locked" in text or "busy" in text


@contextmanager
def transaction(con: sqlite3.Connection) -> Iterator[sqlite3.Cursor]:
    """Run a block under SQLite's write lock; commit on success, roll back otherwise.

    ``BEGIN IMMEDIATE`` takes the reserved lock up front, so every read made
    inside the block is already serialized against other writers.
    """
    try:
        con.execute("BEGIN IMMEDIATE")
    except sqlite3.OperationalError as ex:
        if is_lock_error(ex):
            logger.warning("Write lock not acquired: %s", ex)
            raise ConcurrencyConflict(str(ex)) from ex
        raise
    cur = con.cursor()
    try:
        yield cur
    except BaseException:
        con.rollback()
        raise
    try:
        con.commit()
    except sqlite3.OperationalError as ex:
        con.rollback()
        if is_lock_error(ex):
            raise ConcurrencyConflict(str(ex)) from ex
        raise


def init_db(path: Optional[PathLike] = None):
    con = db(path)
    cur = con.cursor()
    cur.executescript("""
    CREATE TABLE IF NOT EXISTS users (
        user_id INTEGER PRIMARY KEY,
        diamond_balance INTEGER NOT NULL DEFAULT 0 CHECK (diamond_balance >= 0),
        ticket_balance INTEGER NOT NULL DEFAULT 0 CHECK (ticket_balance >= 0),
        starter_claimed INTEGER NOT NULL DEFAULT 0,
        created_at INTEGER NOT NULL DEFAULT 0
    );
    CREATE TABLE IF NOT EXISTS prizes (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        rarity TEXT NOT NULL,
        value INTEGER NOT NULL DEFAULT 0,
        stock INTEGER CHECK (stock IS NULL OR stock >= 0)
    );
    CREATE TABLE IF NOT EXISTS banners (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        currency_type TEXT NOT NULL,
        cost_per_pull INTEGER NOT NULL CHECK (cost_per_pull > 0),
        start_date INTEGER NOT NULL DEFAULT 0,
        end_date INTEGER,
        is_active INTEGER NOT NULL DEFAULT 1,
        sort_order INTEGER NOT NULL DEFAULT 0
    );
    CREATE TABLE IF NOT EXISTS prize_pool_entries (
        banner_id TEXT NOT NULL,
        prize_id TEXT NOT NULL,
        weight REAL NOT NULL CHECK (weight > 0),
        is_active INTEGER NOT NULL DEFAULT 1,
        PRIMARY KEY (banner_id, prize_id),
        FOREIGN KEY(banner_id) REFERENCES banners(id),
        FOREIGN KEY(prize_id) REFERENCES prizes(id)
    );
    CREATE TABLE IF NOT EXISTS pity_counters (
        user_id INTEGER NOT NULL,
        banner_id TEXT NOT NULL,
        counter INTEGER NOT NULL DEFAULT 0 CHECK (counter >= 0),
        PRIMARY KEY (user_id, banner_id),
        FOREIGN KEY(user_id) REFERENCES users(user_id)
    );
    CREATE TABLE IF NOT EXISTS ledger_entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        currency TEXT NOT NULL,
        delta INTEGER NOT NULL,
        balance_after INTEGER NOT NULL,
        reason TEXT NOT NULL,
        reference TEXT,
        created_at INTEGER NOT NULL,
        FOREIGN KEY(user_id) REFERENCES users(user_id)
    );
    CREATE TABLE IF NOT EXISTS pull_records (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        banner_id TEXT NOT NULL,
        prize_id TEXT NOT NULL,
        rarity TEXT NOT NULL,
        currency TEXT NOT NULL,
        currency_spent INTEGER NOT NULL,
        batch_id TEXT NOT NULL,
        sequence_index INTEGER NOT NULL,
        was_forced INTEGER NOT NULL DEFAULT 0,
        created_at INTEGER NOT NULL,
        UNIQUE(batch_id, sequence_index),
        FOREIGN KEY(user_id) REFERENCES users(user_id)
    );
    CREATE TABLE IF NOT EXISTS user_prizes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id INTEGER NOT NULL,
        prize_id TEXT NOT NULL,
        source TEXT NOT NULL,
        batch_id TEXT,
        redeemed INTEGER NOT NULL DEFAULT 0,
        acquired_at INTEGER NOT NULL,
        FOREIGN KEY(user_id) REFERENCES users(user_id)
    );
    CREATE INDEX IF NOT EXISTS idx_ledger_user ON ledger_entries(user_id, currency);
    CREATE INDEX IF NOT EXISTS idx_pulls_user ON pull_records(user_id, created_at);
    """)
    # migrations (ignore if already applied)
    try:
        cur.execute("ALTER TABLE users ADD COLUMN has_completed_ten_draw INTEGER NOT NULL DEFAULT 0")
    except sqlite3.OperationalError:
        pass
    con.commit()
    con.close()


def ensure_user(user_id: int, path: Optional[PathLike] = None):
    con = db(path)
    cur = con.cursor()
    cur.execute("INSERT OR IGNORE INTO users(user_id, created_at) VALUES(?,?)", (user_id, now_ts()))
    con.commit()
    con.close()

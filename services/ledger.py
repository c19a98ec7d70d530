"""Append-only currency ledger backing the cached user balances.

Every balance change goes through :func:`debit` or :func:`credit`, which write
one ``ledger_entries`` row and adjust ``users.<currency>_balance`` in the same
statement batch. Neither commits: they run inside the caller's transaction, so
a failed draw leaves neither the entry nor the balance change behind.

The invariant ``balance == sum(deltas)`` is checked by :func:`replay_balance`.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import List, Optional, Union

from db.database import now_ts
from services.balance import Currency
from services.errors import InsufficientFunds, UnknownUser

logger = logging.getLogger("aura.ledger")

CurrencyLike = Union[Currency, str]


@dataclass(frozen=True)
class LedgerEntry:
    id: int
    user_id: int
    currency: Currency
    delta: int
    balance_after: int
    reason: str
    reference: Optional[str]
    created_at: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "LedgerEntry":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            currency=Currency(row["currency"]),
            delta=int(row["delta"]),
            balance_after=int(row["balance_after"]),
            reason=row["reason"],
            reference=row["reference"],
            created_at=int(row["created_at"]),
        )


def _check_amount(amount: int) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"Ledger amounts must be integers, got {type(amount).__name__}")
    if amount <= 0:
        raise ValueError(f"Ledger amounts must be positive, got {amount}")
    return amount


def get_balance(con: sqlite3.Connection, user_id: int, currency: CurrencyLike) -> int:
    currency = Currency.parse(currency)
    row = con.execute(
        f"SELECT {currency.column} AS balance FROM users WHERE user_id=?", (user_id,)
    ).fetchone()
    if row is None:
        raise UnknownUser(user_id)
    return int(row["balance"])


def _append(
    con: sqlite3.Connection,
    user_id: int,
    currency: Currency,
    delta: int,
    reason: str,
    reference: Optional[str],
) -> LedgerEntry:
    balance_after = get_balance(con, user_id, currency)
    created_at = now_ts()
    cur = con.execute(
        """
        INSERT INTO ledger_entries(user_id, currency, delta, balance_after, reason, reference, created_at)
        VALUES(?,?,?,?,?,?,?)
        """,
        (user_id, currency.value, delta, balance_after, reason, reference, created_at),
    )
    return LedgerEntry(
        id=cur.lastrowid,
        user_id=user_id,
        currency=currency,
        delta=delta,
        balance_after=balance_after,
        reason=reason,
        reference=reference,
        created_at=created_at,
    )


def debit(
    con: sqlite3.Connection,
    user_id: int,
    currency: CurrencyLike,
    amount: int,
    reason: str,
    reference: Optional[str] = None,
) -> LedgerEntry:
    """Take ``amount`` from the user's balance or raise :class:`InsufficientFunds`."""

    currency = Currency.parse(currency)
    amount = _check_amount(amount)
    cur = con.execute(
        f"UPDATE users SET {currency.column} = {currency.column} - ? "
        f"WHERE user_id=? AND {currency.column} >= ?",
        (amount, user_id, amount),
    )
    if cur.rowcount == 0:
        current = get_balance(con, user_id, currency)
        raise InsufficientFunds(currency.value, amount, current)
    entry = _append(con, user_id, currency, -amount, reason, reference)
    logger.debug("Debited %s %s from user %s (%s)", amount, currency.value, user_id, reason)
    return entry


def credit(
    con: sqlite3.Connection,
    user_id: int,
    currency: CurrencyLike,
    amount: int,
    reason: str,
    reference: Optional[str] = None,
) -> LedgerEntry:
    currency = Currency.parse(currency)
    amount = _check_amount(amount)
    cur = con.execute(
        f"UPDATE users SET {currency.column} = {currency.column} + ? WHERE user_id=?",
        (amount, user_id),
    )
    if cur.rowcount == 0:
        raise UnknownUser(user_id)
    entry = _append(con, user_id, currency, amount, reason, reference)
    logger.debug("Credited %s %s to user %s (%s)", amount, currency.value, user_id, reason)
    return entry


def replay_balance(con: sqlite3.Connection, user_id: int, currency: CurrencyLike) -> int:
    currency = Currency.parse(currency)
    row = con.execute(
        "SELECT COALESCE(SUM(delta), 0) AS total FROM ledger_entries WHERE user_id=? AND currency=?",
        (user_id, currency.value),
    ).fetchone()
    return int(row["total"])


def history(
    con: sqlite3.Connection,
    user_id: int,
    limit: int = 20,
    currency: Optional[CurrencyLike] = None,
) -> List[LedgerEntry]:
    """Most recent entries first."""

    if currency is None:
        rows = con.execute(
            "SELECT * FROM ledger_entries WHERE user_id=? ORDER BY id DESC LIMIT ?",
            (user_id, limit),
        ).fetchall()
    else:
        rows = con.execute(
            "SELECT * FROM ledger_entries WHERE user_id=? AND currency=? ORDER BY id DESC LIMIT ?",
            (user_id, Currency.parse(currency).value, limit),
        ).fetchall()
    return [LedgerEntry.from_row(r) for r in rows]

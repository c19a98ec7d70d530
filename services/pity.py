"""Pity (guarantee) bookkeeping.

The counter is the number of consecutive draws on a banner that did not land a
pity-target tier (SSR or better). Once it reaches the threshold, the next draw
is forced into the pity-target tiers. The counter lives per (user, banner) and
is only read and written inside the draw transaction.
"""

from __future__ import annotations

import sqlite3
from typing import Dict, Optional

from services.balance import PITY_THRESHOLD
from services.rarity import Rarity, min_pity_rank


class PityTracker:
    def __init__(self, threshold: Optional[int] = None) -> None:
        threshold = PITY_THRESHOLD if threshold is None else threshold
        if threshold < 1:
            raise ValueError("Pity threshold must be at least 1")
        self.threshold = threshold

    @property
    def forced_min_rank(self) -> int:
        return min_pity_rank()

    def is_forced(self, counter: int) -> bool:
        return counter >= self.threshold

    def advance(self, counter: int, rarity: Rarity) -> int:
        if rarity.is_pity_target:
            return 0
        return counter + 1

    def draws_until_guarantee(self, counter: int) -> int:
        """How many more misses are allowed before a draw is forced."""

        return max(0, self.threshold - counter)

    def load(self, con: sqlite3.Connection, user_id: int, banner_id: str) -> int:
        row = con.execute(
            "SELECT counter FROM pity_counters WHERE user_id=? AND banner_id=?",
            (user_id, banner_id),
        ).fetchone()
        return int(row["counter"]) if row else 0

    def save(self, con: sqlite3.Connection, user_id: int, banner_id: str, counter: int) -> None:
        con.execute(
            """
            INSERT INTO pity_counters(user_id, banner_id, counter) VALUES(?,?,?)
            ON CONFLICT(user_id, banner_id) DO UPDATE SET counter=excluded.counter
            """,
            (user_id, banner_id, counter),
        )

    def counters_for(self, con: sqlite3.Connection, user_id: int) -> Dict[str, int]:
        rows = con.execute(
            "SELECT banner_id, counter FROM pity_counters WHERE user_id=? ORDER BY banner_id",
            (user_id,),
        ).fetchall()
        return {r["banner_id"]: int(r["counter"]) for r in rows}


def mark_ten_draw_completed(con: sqlite3.Connection, user_id: int) -> bool:
    """Latch the ten-draw milestone; True only on the call that flips it."""

    cur = con.execute(
        "UPDATE users SET has_completed_ten_draw=1 WHERE user_id=? AND has_completed_ten_draw=0",
        (user_id,),
    )
    return cur.rowcount == 1


def has_completed_ten_draw(con: sqlite3.Connection, user_id: int) -> bool:
    row = con.execute(
        "SELECT has_completed_ten_draw FROM users WHERE user_id=?", (user_id,)
    ).fetchone()
    return bool(row and row["has_completed_ten_draw"])

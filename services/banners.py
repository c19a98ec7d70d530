"""Read-only view of the banners maintained by the catalog tooling."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import List, Optional

from db.database import now_ts
from services.balance import Currency
from services.errors import BannerNotFound


@dataclass(frozen=True)
class Banner:
    id: str
    name: str
    currency_type: Currency
    cost_per_pull: int
    start_date: int
    end_date: Optional[int]
    is_active: bool
    sort_order: int = 0
    description: str = ""

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Banner":
        return cls(
            id=row["id"],
            name=row["name"],
            currency_type=Currency(row["currency_type"]),
            cost_per_pull=int(row["cost_per_pull"]),
            start_date=int(row["start_date"]),
            end_date=None if row["end_date"] is None else int(row["end_date"]),
            is_active=bool(row["is_active"]),
            sort_order=int(row["sort_order"]),
            description=row["description"] or "",
        )

    def is_live(self, now: int) -> bool:
        """Active and inside the half-open window ``[start_date, end_date)``."""

        if not self.is_active or now < self.start_date:
            return False
        return self.end_date is None or now < self.end_date

    def batch_cost(self, pull_count: int) -> int:
        return self.cost_per_pull * pull_count


def list_active(con: sqlite3.Connection, now: Optional[int] = None) -> List[Banner]:
    now = now_ts() if now is None else now
    rows = con.execute(
        """
        SELECT * FROM banners
        WHERE is_active=1 AND start_date<=? AND (end_date IS NULL OR end_date>?)
        ORDER BY sort_order ASC, name ASC
        """,
        (now, now),
    ).fetchall()
    return [Banner.from_row(r) for r in rows]


def get_banner(con: sqlite3.Connection, banner_id: str) -> Banner:
    row = con.execute("SELECT * FROM banners WHERE id=?", (banner_id,)).fetchone()
    if row is None:
        raise BannerNotFound(banner_id)
    return Banner.from_row(row)

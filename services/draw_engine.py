"""Ten-draw orchestration for Aura Zone.

``perform_draw`` validates the request without writing anything, then runs the
whole batch under one write transaction: funds check, debit, ten sequential
draws with pity carried from one draw to the next, stock, inventory, pull
records, pity and milestone persistence. Any failure rolls all of it back.
"""

from __future__ import annotations

import logging
import random
import sqlite3
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple, Union

from db.database import db, is_lock_error, now_ts, transaction
from services import ledger
from services.balance import PULL_COUNT, REASON_GACHA_PULL, Currency
from services.banners import Banner, get_banner
from services.errors import (
    BannerUnavailable,
    ConcurrencyConflict,
    InvalidPaymentMethod,
    InvalidPullCount,
    MisconfiguredPrizePool,
)
from services.pity import PityTracker, mark_ten_draw_completed
from services.probability import (
    Distribution,
    Pick,
    PoolEntry,
    TOTAL,
    draw_one,
    draw_one_from_tier_subset,
    get_distribution,
    substitute,
)
from services.rarity import Rarity

logger = logging.getLogger("aura.draws")


@dataclass(frozen=True)
class PullOutcome:
    """One draw of a batch. ``sequence_index`` counts from 0 in draw order."""

    prize_id: str
    prize_name: str
    rarity: Rarity
    sequence_index: int
    was_forced: bool = False
    was_substituted: bool = False

    @property
    def display_metadata(self) -> Dict[str, object]:
        return {
            "name": self.prize_name,
            "rarity": self.rarity.display_name,
            "short": self.rarity.short_name,
            "color": self.rarity.color,
            "emoji": self.rarity.emoji,
        }


@dataclass(frozen=True)
class DrawResult:
    batch_id: str
    user_id: int
    banner_id: str
    currency: Currency
    cost: int
    pulls: Tuple[PullOutcome, ...]
    new_balance: int
    pity_counter: int
    completed_ten_draw_now: bool = False

    @property
    def best(self) -> Optional[PullOutcome]:
        if not self.pulls:
            return None
        return max(self.pulls, key=lambda p: (p.rarity.rank, -p.sequence_index))


@dataclass
class _StockBook:
    """Remaining stock of the limited prizes touched in this batch."""

    remaining: Dict[str, int] = field(default_factory=dict)

    def available(self, entry: PoolEntry) -> bool:
        if entry.stock is None:
            return True
        return self.remaining.get(entry.prize_id, entry.stock) > 0

    def take(self, entry: PoolEntry) -> None:
        self.remaining[entry.prize_id] = self.remaining.get(entry.prize_id, entry.stock) - 1


def parse_payment_method(value: object) -> Currency:
    try:
        return Currency.parse(value)
    except ValueError:
        raise InvalidPaymentMethod(value) from None


class DrawEngine:
    """Runs ten-draw batches against the SQLite store.

    ``rng`` only needs a ``random()`` method returning floats in ``[0, 1)``.
    """

    def __init__(
        self,
        db_path: Optional[Union[str, Path]] = None,
        rng=None,
        clock: Callable[[], int] = now_ts,
        pity: Optional[PityTracker] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.db_path = db_path
        self.rng = rng if rng is not None else random.Random()
        self.clock = clock
        self.pity = pity or PityTracker()
        self.timeout = timeout

    def connect(self) -> sqlite3.Connection:
        return db(self.db_path, timeout=self.timeout)

    def validate(
        self, con: sqlite3.Connection, banner_id: str, payment_method: object, pull_count: int
    ) -> Tuple[Banner, Currency]:
        if pull_count != PULL_COUNT:
            raise InvalidPullCount(pull_count, PULL_COUNT)
        banner = get_banner(con, banner_id)
        if not banner.is_live(self.clock()):
            raise BannerUnavailable(banner_id)
        currency = parse_payment_method(payment_method)
        if currency is not banner.currency_type:
            raise InvalidPaymentMethod(payment_method, banner.currency_type.value)
        return banner, currency

    def perform_draw(
        self,
        user_id: int,
        banner_id: str,
        payment_method: object,
        pull_count: int = PULL_COUNT,
    ) -> DrawResult:
        con = self.connect()
        try:
            banner, currency = self.validate(con, banner_id, payment_method, pull_count)
            try:
                return self._run_batch(con, user_id, banner, currency, pull_count)
            except MisconfiguredPrizePool as ex:
                logger.error("Draw aborted for user %s: %s", user_id, ex)
                raise
            except sqlite3.OperationalError as ex:
                if is_lock_error(ex):
                    logger.warning("Draw for user %s on %s hit a lock: %s", user_id, banner.id, ex)
                    raise ConcurrencyConflict(str(ex)) from ex
                raise
        finally:
            con.close()

    def _run_batch(
        self,
        con: sqlite3.Connection,
        user_id: int,
        banner: Banner,
        currency: Currency,
        pull_count: int,
    ) -> DrawResult:
        required = banner.batch_cost(pull_count)
        batch_id = uuid.uuid4().hex
        with transaction(con):
            # debit re-checks the balance under the write lock
            entry = ledger.debit(con, user_id, currency, required, REASON_GACHA_PULL, batch_id)
            distribution = get_distribution(con, banner.id)
            counter = self.pity.load(con, user_id, banner.id)
            stock = _StockBook()
            timestamp = self.clock()
            pulls: List[PullOutcome] = []

            for index in range(pull_count):
                forced = self.pity.is_forced(counter)
                pick = self._draw(distribution, forced)
                substituted = False
                if not stock.available(pick.entry):
                    min_rank = self.pity.forced_min_rank if forced else 1
                    replacement = substitute(distribution, pick.rarity, stock.available, self.rng, min_rank)
                    logger.warning(
                        "Banner %s: %s out of stock, substituted %s",
                        banner.id, pick.entry.prize_id, replacement.entry.prize_id,
                    )
                    pick = replacement
                    substituted = True
                if pick.entry.is_limited:
                    self._consume_stock(con, banner.id, pick.entry)
                    stock.take(pick.entry)

                self._grant(con, user_id, banner, currency, pick, batch_id, index, forced, timestamp)
                pulls.append(
                    PullOutcome(
                        prize_id=pick.entry.prize_id,
                        prize_name=pick.entry.name,
                        rarity=pick.rarity,
                        sequence_index=index,
                        was_forced=forced,
                        was_substituted=substituted,
                    )
                )
                counter = self.pity.advance(counter, pick.rarity)

            self.pity.save(con, user_id, banner.id, counter)
            flipped = mark_ten_draw_completed(con, user_id)

        logger.info(
            "User %s drew %s on %s for %s %s (pity now %s)",
            user_id, pull_count, banner.id, required, currency.value, counter,
        )
        return DrawResult(
            batch_id=batch_id,
            user_id=user_id,
            banner_id=banner.id,
            currency=currency,
            cost=required,
            pulls=tuple(pulls),
            new_balance=entry.balance_after,
            pity_counter=counter,
            completed_ten_draw_now=flipped,
        )

    def _draw(self, distribution: Distribution, forced: bool) -> Pick:
        roll = self.rng.random() * TOTAL
        if forced:
            return draw_one_from_tier_subset(distribution, self.pity.forced_min_rank, roll, self.rng)
        return draw_one(distribution, roll, self.rng)

    @staticmethod
    def _consume_stock(con: sqlite3.Connection, banner_id: str, entry: PoolEntry) -> None:
        cur = con.execute(
            "UPDATE prizes SET stock = stock - 1 WHERE id=? AND stock > 0", (entry.prize_id,)
        )
        if cur.rowcount != 1:
            raise MisconfiguredPrizePool(banner_id, f"stock for '{entry.prize_id}' changed mid-draw")

    @staticmethod
    def _grant(
        con: sqlite3.Connection,
        user_id: int,
        banner: Banner,
        currency: Currency,
        pick: Pick,
        batch_id: str,
        index: int,
        forced: bool,
        timestamp: int,
    ) -> None:
        con.execute(
            "INSERT INTO user_prizes(user_id, prize_id, source, batch_id, acquired_at) VALUES(?,?,?,?,?)",
            (user_id, pick.entry.prize_id, "GACHA", batch_id, timestamp),
        )
        con.execute(
            """
            INSERT INTO pull_records(
                user_id, banner_id, prize_id, rarity, currency, currency_spent,
                batch_id, sequence_index, was_forced, created_at
            )
            VALUES(?,?,?,?,?,?,?,?,?,?)
            """,
            (
                user_id,
                banner.id,
                pick.entry.prize_id,
                pick.rarity.name,
                currency.value,
                banner.cost_per_pull,
                batch_id,
                index,
                int(forced),
                timestamp,
            ),
        )


def recent_pulls(con: sqlite3.Connection, user_id: int, limit: int = 20) -> List[sqlite3.Row]:
    return con.execute(
        """
        SELECT r.*, p.name AS prize_name FROM pull_records r
        LEFT JOIN prizes p ON p.id = r.prize_id
        WHERE r.user_id=? ORDER BY r.id DESC LIMIT ?
        """,
        (user_id, limit),
    ).fetchall()

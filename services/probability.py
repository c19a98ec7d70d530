"""Per-banner probability tables and weighted draws.

A banner's distribution has one bucket per rarity tier, in ascending rank. Each
bucket's probability is the tier's global percentage from
:mod:`services.rarity`; the pool entries inside a tier share it in proportion
to their weights. Scans are over half-open intervals ``[previous, cumulative)``:
the first bucket whose cumulative value exceeds the roll wins.

Rolls are percentages in ``[0, 100)``. The item inside a tier is chosen with a
second, independent roll taken from ``rng.random()``.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from services.balance import PROBABILITY_EPSILON, PULL_COUNT
from services.errors import MisconfiguredPrizePool, PrizeOutOfStock
from services.rarity import Rarity, ordered

logger = logging.getLogger("aura.probability")

TOTAL = 100.0


@dataclass(frozen=True)
class PoolEntry:
    prize_id: str
    weight: float
    stock: Optional[int] = None
    name: str = ""

    @property
    def is_limited(self) -> bool:
        return self.stock is not None


@dataclass(frozen=True)
class TierBucket:
    rarity: Rarity
    probability: float
    cumulative: float
    entries: Tuple[PoolEntry, ...]

    @property
    def total_weight(self) -> float:
        return sum(e.weight for e in self.entries)


@dataclass(frozen=True)
class Distribution:
    banner_id: str
    buckets: Tuple[TierBucket, ...]

    @property
    def total(self) -> float:
        return self.buckets[-1].cumulative if self.buckets else 0.0

    def bucket(self, rarity: Rarity) -> Optional[TierBucket]:
        for b in self.buckets:
            if b.rarity is rarity:
                return b
        return None

    def probabilities(self) -> Dict[Rarity, float]:
        return {b.rarity: b.probability for b in self.buckets}

    def item_probability(self, prize_id: str) -> float:
        """Overall chance, in percent, of drawing ``prize_id`` on a natural draw."""

        for b in self.buckets:
            for e in b.entries:
                if e.prize_id == prize_id:
                    return b.probability * e.weight / b.total_weight
        return 0.0


@dataclass(frozen=True)
class Pick:
    rarity: Rarity
    entry: PoolEntry


def build_distribution(banner_id: str, rows: Iterable[Mapping[str, Any]]) -> Distribution:
    """Group pool rows (``prize_id, rarity, weight, stock, name``) into tier buckets."""

    grouped: Dict[Rarity, List[PoolEntry]] = {}
    for row in rows:
        prize_id = str(row["prize_id"])
        try:
            rarity = Rarity.parse(row["rarity"])
        except ValueError:
            raise MisconfiguredPrizePool(
                banner_id, f"prize '{prize_id}' has unknown rarity {row['rarity']!r}"
            ) from None
        weight = float(row["weight"])
        if weight <= 0:
            raise MisconfiguredPrizePool(banner_id, f"prize '{prize_id}' has weight {weight}")
        stock = row["stock"]
        grouped.setdefault(rarity, []).append(
            PoolEntry(
                prize_id=prize_id,
                weight=weight,
                stock=None if stock is None else int(stock),
                name=str(row["name"] or prize_id),
            )
        )

    if not grouped:
        raise MisconfiguredPrizePool(banner_id, "no active prize pool entries")

    buckets: List[TierBucket] = []
    cumulative = 0.0
    for rarity in ordered():
        entries = grouped.get(rarity)
        if rarity.percentage <= 0:
            if entries:
                logger.debug("Banner %s: ignoring %s entries, tier has no weight", banner_id, rarity.name)
            continue
        if not entries:
            raise MisconfiguredPrizePool(banner_id, f"no active {rarity.name} entries")
        cumulative += rarity.percentage
        buckets.append(TierBucket(rarity, rarity.percentage, cumulative, tuple(entries)))

    if abs(cumulative - TOTAL) > PROBABILITY_EPSILON:
        raise MisconfiguredPrizePool(banner_id, f"tier probabilities sum to {cumulative:.4f}")
    return Distribution(banner_id, tuple(buckets))


def get_distribution(con: sqlite3.Connection, banner_id: str) -> Distribution:
    rows = con.execute(
        """
        SELECT e.prize_id, p.name, p.rarity, e.weight, p.stock
        FROM prize_pool_entries e
        JOIN prizes p ON p.id = e.prize_id
        WHERE e.banner_id=? AND e.is_active=1
        ORDER BY e.prize_id
        """,
        (banner_id,),
    ).fetchall()
    return build_distribution(banner_id, rows)


def _check_roll(roll: float) -> float:
    if not 0 <= roll < TOTAL:
        raise ValueError(f"Roll must be within [0, {TOTAL:g}), got {roll}")
    return roll


def _scan(cumulatives: Sequence[float], target: float) -> int:
    for index, cum in enumerate(cumulatives):
        if target < cum:
            return index
    # float drift on the last boundary
    return len(cumulatives) - 1


def pick_entry(entries: Sequence[PoolEntry], roll: float) -> PoolEntry:
    """Weighted choice among ``entries`` for a roll in ``[0, 100)``."""

    _check_roll(roll)
    if not entries:
        raise ValueError("Cannot pick from an empty tier")
    cumulatives: List[float] = []
    acc = 0.0
    for e in entries:
        acc += e.weight
        cumulatives.append(acc)
    target = roll / TOTAL * acc
    return entries[_scan(cumulatives, target)]


def draw_one(distribution: Distribution, roll: float, rng) -> Pick:
    _check_roll(roll)
    if not distribution.buckets:
        raise MisconfiguredPrizePool(distribution.banner_id, "distribution is empty")
    index = _scan([b.cumulative for b in distribution.buckets], roll)
    bucket = distribution.buckets[index]
    return Pick(bucket.rarity, pick_entry(bucket.entries, rng.random() * TOTAL))


def restrict(distribution: Distribution, min_rank: int) -> Distribution:
    """Keep tiers with rank >= ``min_rank``, rescaled so they sum to 100."""

    subset = [b for b in distribution.buckets if b.rarity.rank >= min_rank]
    if not subset:
        raise MisconfiguredPrizePool(distribution.banner_id, f"no tiers at rank {min_rank} or above")
    subtotal = sum(b.probability for b in subset)
    rescaled: List[TierBucket] = []
    cumulative = 0.0
    for b in subset:
        share = b.probability / subtotal * TOTAL
        cumulative += share
        rescaled.append(replace(b, probability=share, cumulative=cumulative))
    rescaled[-1] = replace(rescaled[-1], cumulative=TOTAL)
    return Distribution(distribution.banner_id, tuple(rescaled))


def draw_one_from_tier_subset(distribution: Distribution, min_rank: int, roll: float, rng) -> Pick:
    return draw_one(restrict(distribution, min_rank), roll, rng)


def substitute(
    distribution: Distribution,
    rarity: Rarity,
    is_available: Callable[[PoolEntry], bool],
    rng,
    min_rank: int = 1,
) -> Pick:
    """Replacement for a pick whose prize ran out of stock.

    Same tier first; then the lowest tier at or above ``min_rank`` that still has
    stock; then the lowest tier overall.
    """
    bucket = distribution.bucket(rarity)
    if bucket is not None:
        candidates = [e for e in bucket.entries if is_available(e)]
        if candidates:
            return Pick(rarity, pick_entry(candidates, rng.random() * TOTAL))

    floors = [min_rank] if min_rank <= 1 else [min_rank, 1]
    for floor in floors:
        for b in distribution.buckets:
            if b.rarity.rank < floor:
                continue
            candidates = [e for e in b.entries if is_available(e)]
            if candidates:
                return Pick(b.rarity, pick_entry(candidates, rng.random() * TOTAL))
    raise PrizeOutOfStock(distribution.banner_id)


def expected_counts(distribution: Distribution, pulls: int = PULL_COUNT) -> Dict[Rarity, float]:
    """Expected number of each tier in ``pulls`` natural draws."""

    return {b.rarity: pulls * b.probability / TOTAL for b in distribution.buckets}

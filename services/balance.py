"""Centralised economy tuning for Aura Zone."""

from __future__ import annotations

import logging
import os
from enum import Enum

logger = logging.getLogger("aura.config")


def int_from_env(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("%s=%r is not an integer; using %s", name, raw, default)
        return default
    if value < minimum:
        logger.warning("%s=%s is below %s; using %s", name, value, minimum, default)
        return default
    return value


def float_from_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("%s=%r is not a number; using %s", name, raw, default)
        return default


class Currency(str, Enum):
    DIAMONDS = "DIAMONDS"
    TICKETS = "TICKETS"

    @property
    def column(self) -> str:
        """Cached balance column on the users table."""

        return {"DIAMONDS": "diamond_balance", "TICKETS": "ticket_balance"}[self.value]

    @property
    def symbol(self) -> str:
        return {"DIAMONDS": "💎", "TICKETS": "🎟️"}[self.value]

    @classmethod
    def parse(cls, value: object) -> "Currency":
        if isinstance(value, Currency):
            return value
        key = str(value or "").strip().upper()
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"Unknown currency {value!r}") from None


# Draws are sold only as a full batch.
PULL_COUNT: int = 10

# Consecutive misses (non SSR+) after which the next draw is forced.
PITY_THRESHOLD: int = int_from_env("AURA_PITY_THRESHOLD", 10, minimum=1)

# One-time grant credited by /start.
STARTER_DIAMONDS: int = int_from_env("AURA_STARTER_DIAMONDS", 3000)
STARTER_TICKETS: int = int_from_env("AURA_STARTER_TICKETS", 10)

# Ledger reasons.
REASON_GACHA_PULL = "gacha_pull"
REASON_STARTER = "starter_grant"
REASON_ADMIN_GRANT = "admin_grant"

# Distribution totals must land on 100 within this tolerance.
PROBABILITY_EPSILON: float = 0.01

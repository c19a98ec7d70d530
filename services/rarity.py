"""Rarity tiers shared by the draw engine and the command layer."""

from __future__ import annotations

from enum import Enum
from typing import Tuple


class Rarity(Enum):
    # name = (rank, global percentage, pity target, display name, short name, colour, emoji)
    COMMON = (1, 60.0, False, "Common", "COM", 0x9CA3AF, "⚪")
    RARE = (2, 25.0, False, "Rare", "R", 0x3B82F6, "💙")
    EPIC = (3, 10.0, False, "Epic", "EP", 0xA855F7, "💜")
    SSR = (4, 4.0, True, "Super Super Rare", "SSR", 0xF59E0B, "⭐")
    LEGENDARY = (5, 1.0, True, "Legendary", "LEG", 0xEF4444, "👑")

    def __init__(
        self,
        rank: int,
        percentage: float,
        is_pity_target: bool,
        display_name: str,
        short_name: str,
        color: int,
        emoji: str,
    ) -> None:
        self.rank = rank
        self.percentage = percentage
        self.is_pity_target = is_pity_target
        self.display_name = display_name
        self.short_name = short_name
        self.color = color
        self.emoji = emoji

    def __lt__(self, other: "Rarity") -> bool:
        if not isinstance(other, Rarity):
            return NotImplemented
        return self.rank < other.rank

    @classmethod
    def parse(cls, value: object) -> "Rarity":
        """Look a tier up by name, case-insensitively."""

        if isinstance(value, Rarity):
            return value
        key = str(value or "").strip().upper()
        try:
            return cls[key]
        except KeyError:
            raise ValueError(f"Unknown rarity {value!r}") from None

    @property
    def label(self) -> str:
        return f"{self.emoji} {self.short_name}"


def ordered() -> Tuple[Rarity, ...]:
    """All tiers, lowest rank first."""

    return tuple(sorted(Rarity, key=lambda r: r.rank))


def pity_targets() -> Tuple[Rarity, ...]:
    return tuple(r for r in ordered() if r.is_pity_target)


def min_pity_rank() -> int:
    """Rank of the weakest tier that satisfies the pity guarantee."""

    return min(r.rank for r in pity_targets())


def total_percentage() -> float:
    return sum(r.percentage for r in Rarity)

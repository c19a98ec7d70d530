from __future__ import annotations

from typing import Union

from services.balance import Currency
from services.rarity import Rarity

Number = Union[int, float]


def _format_compact(value: float) -> str:
    sign = "-" if value < 0 else ""
    absolute = abs(value)
    if absolute >= 1_000_000:
        scaled = absolute / 1_000_000
        suffix = "M"
    elif absolute >= 10_000:
        scaled = absolute / 1_000
        suffix = "K"
    else:
        return f"{sign}{int(absolute):,}"
    formatted = f"{scaled:.1f}".rstrip("0").rstrip(".")
    return f"{sign}{formatted}{suffix}"


def format_plain(value: Number) -> str:
    """Whole amounts below 10,000 stay exact; larger ones get a K/M suffix."""

    return _format_compact(float(value))


def format_currency(value: Number, currency: Union[Currency, str]) -> str:
    """Format a balance with the currency's symbol."""

    currency = Currency.parse(currency)
    return f"{format_plain(value)} {currency.symbol}"


def format_delta(value: Number, currency: Union[Currency, str]) -> str:
    sign = "+" if value > 0 else ""
    return f"{sign}{format_currency(value, currency)}"


def format_percent(value: float) -> str:
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text}%"


def rarity_badge(rarity: Union[Rarity, str]) -> str:
    return Rarity.parse(rarity).label


def pull_line(index: int, name: str, rarity: Union[Rarity, str], forced: bool = False) -> str:
    marker = " 🛡️" if forced else ""
    return f"`{index + 1:>2}` {rarity_badge(rarity)} **{name}**{marker}"

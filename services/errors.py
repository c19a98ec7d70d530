"""Typed failures raised by the Aura Zone draw engine.

Every error carries a ``user_message`` that the command layer can show as-is.
Nothing that raises one of these leaves partial state behind.
"""

from __future__ import annotations

from typing import Optional


class GachaError(Exception):
    """Base class for draw engine failures."""

    user_message: str = "Something went wrong. Please try again later."

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.user_message)


class BannerUnavailable(GachaError):
    user_message = "This banner is not available right now."

    def __init__(self, banner_id: str, message: Optional[str] = None) -> None:
        self.banner_id = banner_id
        super().__init__(message or f"Banner '{banner_id}' is not available")


class BannerNotFound(BannerUnavailable, LookupError):
    user_message = "That banner does not exist."

    def __init__(self, banner_id: str) -> None:
        super().__init__(banner_id, f"Banner '{banner_id}' not found")


class InvalidPaymentMethod(GachaError):
    def __init__(self, payment_method: object, expected: Optional[str] = None) -> None:
        self.payment_method = payment_method
        self.expected = expected
        if expected:
            self.user_message = f"This banner only accepts {expected.lower()}."
        else:
            self.user_message = "Unknown payment method. Use diamonds or tickets."
        super().__init__(f"Invalid payment method {payment_method!r} (expected {expected})")


class InvalidPullCount(GachaError):
    def __init__(self, pull_count: int, allowed: int) -> None:
        self.pull_count = pull_count
        self.allowed = allowed
        self.user_message = f"Draws are sold in batches of {allowed}."
        super().__init__(f"Pull count {pull_count} is not the batch size {allowed}")


class InsufficientFunds(GachaError):
    def __init__(self, currency: str, required: int, current: int) -> None:
        self.currency = currency
        self.required = required
        self.current = current
        self.user_message = (
            f"Not enough {currency.lower()}: need {required}, you have {current}."
        )
        super().__init__(f"Insufficient {currency}: required {required}, current {current}")


class MisconfiguredPrizePool(GachaError):
    """The banner's pool cannot produce a valid distribution."""

    user_message = "This banner is temporarily unavailable. Please try again later."

    def __init__(self, banner_id: str, reason: str) -> None:
        self.banner_id = banner_id
        self.reason = reason
        super().__init__(f"Banner '{banner_id}' prize pool misconfigured: {reason}")


class PrizeOutOfStock(GachaError):
    user_message = "Every prize on this banner is out of stock."

    def __init__(self, banner_id: str) -> None:
        self.banner_id = banner_id
        super().__init__(f"No prize with remaining stock on banner '{banner_id}'")


class ConcurrencyConflict(GachaError):
    """Another write held the user's rows for too long; retry the whole draw."""

    user_message = "Your account is busy with another draw. Please try again."


class UnknownUser(GachaError, LookupError):
    user_message = "Use /start to create your account first."

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(f"User {user_id} does not exist")

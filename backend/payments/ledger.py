"""
Balance arithmetic for bookings.

Everything here works on plain integers in minor currency units and has no
database access, so the same rules apply to staff payments and webhooks.
"""
from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal

from bookings.models import Booking

from .results import Rejected, Rejection

BLOCKED_STATUSES = frozenset({Booking.CANCELLED, Booking.NO_SHOW})

MINOR_UNITS_PER_MAJOR = 100

_MAJOR_AMOUNT = re.compile(r"-?\d{1,16}(?:\.\d{1,6})?")


def remaining_balance(total_amount: int, paid_amount: int) -> int:
    return total_amount - paid_amount


def is_valid_amount(amount) -> bool:
    return isinstance(amount, int) and not isinstance(amount, bool) and amount > 0


def evaluate_capture(*, status: str, total_amount: int, paid_amount: int, amount) -> Rejected | None:
    """Return the reason a capture must be refused, or None when it may proceed."""

    if not is_valid_amount(amount):
        return Rejected(
            Rejection.INVALID_AMOUNT,
            "Payment amount must be a positive integer",
            {"payment_amount": amount},
        )

    if status in BLOCKED_STATUSES:
        return Rejected(
            Rejection.BOOKING_CANCELLED,
            f"Cannot add payment to booking with status '{status}'",
            {"status": status},
        )

    remaining = remaining_balance(total_amount, paid_amount)
    if amount > remaining:
        return Rejected(
            Rejection.OVERPAYMENT,
            f"Payment of {amount} tiyin exceeds remaining balance of {remaining} tiyin",
            {
                "total_amount": total_amount,
                "paid_amount": paid_amount,
                "payment_amount": amount,
                "remaining": remaining,
            },
        )
    return None


def major_to_minor(value) -> int | None:
    """
    Convert a major-unit amount (``"50000"``, ``"50000.5"``, ``50000``) to minor units.

    Returns None for anything but a plain decimal literal (no exponent, at most
    16 integer and 6 fractional digits).
    """

    if value is None or isinstance(value, bool):
        return None
    # str() keeps float inputs out of binary arithmetic
    text = str(value).strip()
    if not _MAJOR_AMOUNT.fullmatch(text):
        return None
    amount = Decimal(text)
    minor = (amount * MINOR_UNITS_PER_MAJOR).to_integral_value(rounding=ROUND_HALF_UP)
    return int(minor)

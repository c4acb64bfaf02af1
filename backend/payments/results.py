from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from payments.models import Payment


class Rejection:
    NOT_FOUND = "NOT_FOUND"
    BOOKING_CANCELLED = "BOOKING_CANCELLED"
    OVERPAYMENT = "OVERPAYMENT"
    INVALID_AMOUNT = "INVALID_AMOUNT"


@dataclass(frozen=True)
class Actor:
    """Who recorded a payment: a staff user or the system acting for a gateway."""

    kind: str
    user: Any = None
    gateway: str = ""

    @classmethod
    def for_user(cls, user) -> "Actor":
        return cls(kind=Payment.ACTOR_USER, user=user)

    @classmethod
    def system(cls, gateway: str) -> "Actor":
        return cls(kind=Payment.ACTOR_SYSTEM, gateway=gateway)

    @property
    def is_system(self) -> bool:
        return self.kind == Payment.ACTOR_SYSTEM

    @property
    def user_id(self) -> Optional[int]:
        return None if self.user is None else self.user.pk

    def __str__(self):
        if self.is_system:
            return f"system:{self.gateway}"
        return f"user:{self.user_id}"


@dataclass(frozen=True)
class Captured:
    payment: Payment
    paid_amount: int
    total_amount: int


@dataclass(frozen=True)
class Rejected:
    reason: str
    message: str
    meta: dict = field(default_factory=dict)


CaptureResult = Union[Captured, Rejected]

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from django.db import transaction
from django.dispatch import Signal

logger = logging.getLogger(__name__)

payment_created = Signal()
payment_reversal_required = Signal()


@dataclass(frozen=True)
class PaymentCreatedEvent:
    name = "payment.created"

    payment_id: int
    booking_id: int
    property_id: int
    amount: int
    method: str
    paid_amount: int
    total_amount: int
    created_by: Optional[int]


@dataclass(frozen=True)
class PaymentReversalRequiredEvent:
    """A gateway cancelled a transaction after money was captured."""

    name = "payment.reversal_required"

    gateway: str
    transaction_id: str
    booking_id: int
    payment_id: Optional[int]
    amount: int
    reason: Optional[int]


_SIGNALS = {
    PaymentCreatedEvent.name: payment_created,
    PaymentReversalRequiredEvent.name: payment_reversal_required,
}


def publish(event) -> None:
    """Send the event's signal once the surrounding transaction commits."""

    signal = _SIGNALS[event.name]

    def _send():
        logger.debug("Publishing %s: %s", event.name, event)
        signal.send(sender=type(event), event=event)

    transaction.on_commit(_send)

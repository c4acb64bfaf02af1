from .results import Rejected, Rejection


class PaymentRejected(Exception):
    """Raised on the staff-facing path when the ledger refuses a payment."""

    def __init__(self, rejection: Rejected):
        super().__init__(rejection.message)
        self.rejection = rejection

    @property
    def code(self) -> str:
        return self.rejection.reason

    @property
    def meta(self) -> dict:
        return self.rejection.meta


class PaymentNotFound(PaymentRejected):
    def __init__(self, payment_id):
        super().__init__(
            Rejected(Rejection.NOT_FOUND, "Payment not found", {"resource": "payment", "id": payment_id})
        )

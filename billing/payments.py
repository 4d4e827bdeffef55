from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable

from billing.errors import InvalidPaymentDetails
from billing.identifiers import TokenGenerator
from billing.logger import log_billing_event
from billing.pricing import ZERO, to_money

logger = logging.getLogger(__name__)

CARD_REQUIRED_FIELDS = ("number", "expiry", "cvv")
OUTCOME_APPROVED = "approved"


@dataclass(frozen=True)
class CardDetails:
    number: str | None = None
    expiry: str | None = None
    cvv: str | None = None

    def missing_fields(self) -> list[str]:
        return [name for name in CARD_REQUIRED_FIELDS if not (getattr(self, name) or "").strip()]


@dataclass(frozen=True)
class PaymentReceipt:
    transaction_id: str
    method: str
    amount: Decimal
    timestamp: datetime
    bill_id: int | None = None
    outcome: str = OUTCOME_APPROVED
    card_last4: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "transactionId": self.transaction_id,
            "billId": self.bill_id,
            "method": self.method,
            "amount": f"{self.amount:.2f}",
            "timestamp": self.timestamp.isoformat(),
            "outcome": self.outcome,
            "cardLast4": self.card_last4,
        }


class PaymentProcessor:
    """Validates payment details and issues receipts.

    No funds move. Receipts are not linked back to the ledger and the
    referenced bill is not looked up.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] | None = None,
        transaction_ids: TokenGenerator | None = None,
    ) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._transaction_ids = transaction_ids or TokenGenerator("TXN")

    def process_payment(
        self,
        method: str,
        amount: Decimal,
        *,
        bill_id: int | None = None,
        card_details: CardDetails | None = None,
    ) -> PaymentReceipt:
        method_norm = method.strip().lower()
        if amount < ZERO:
            raise InvalidPaymentDetails("Payment amount must not be negative")

        card_last4 = None
        if method_norm == "card":
            if card_details is None:
                raise InvalidPaymentDetails("Invalid card details: cardDetails is required for card payments")
            missing = card_details.missing_fields()
            if missing:
                raise InvalidPaymentDetails(f"Invalid card details: missing {', '.join(missing)}")
            assert card_details.number is not None
            card_last4 = card_details.number.strip()[-4:]

        try:
            settled = to_money(amount)
        except InvalidOperation as exc:
            raise InvalidPaymentDetails("Payment amount is too large") from exc

        receipt = PaymentReceipt(
            transaction_id=self._transaction_ids.next(),
            method=method_norm,
            amount=settled,
            timestamp=self._clock(),
            bill_id=bill_id,
            card_last4=card_last4,
        )
        log_billing_event(
            logger,
            logging.INFO,
            "Payment approved",
            operation="process_payment",
            bill_id=bill_id,
            transaction_id=receipt.transaction_id,
            outcome=receipt.outcome,
        )
        return receipt

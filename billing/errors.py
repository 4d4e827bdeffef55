from __future__ import annotations


class BillingValidationError(ValueError):
    pass


class InvalidLineItem(BillingValidationError):
    pass


class InvalidDiscountPolicy(BillingValidationError):
    pass


class InvalidPaymentDetails(BillingValidationError):
    pass


class BillNotFoundError(LookupError):
    def __init__(self, bill_id: int) -> None:
        super().__init__(f"Bill not found: {bill_id}")
        self.bill_id = bill_id

from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from billing.ledger import Customer, InsuranceInfo
from billing.payments import CardDetails
from billing.pricing import DiscountPolicy, LineItem

DiscountType = Literal["none", "percentage", "fixed", "senior_citizen"]

MAX_QUANTITY = 1_000_000
MONEY_DIGITS = 14
MONEY_PLACES = 4


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)


class LineItemIn(WireModel):
    medicine_id: str = Field(min_length=1)
    name: str = ""
    quantity: int = Field(gt=0, le=MAX_QUANTITY)
    price: Decimal = Field(ge=0, max_digits=MONEY_DIGITS, decimal_places=MONEY_PLACES)

    def to_line_item(self) -> LineItem:
        return LineItem(
            medicine_id=self.medicine_id,
            name=self.name,
            quantity=self.quantity,
            unit_price=self.price,
        )


class InsuranceIn(WireModel):
    provider: str = Field(min_length=1)
    policy_number: str = Field(min_length=1)
    copay: Decimal | None = Field(default=None, ge=0, max_digits=MONEY_DIGITS, decimal_places=MONEY_PLACES)

    def to_insurance(self) -> InsuranceInfo:
        return InsuranceInfo(provider=self.provider, policy_number=self.policy_number, copay=self.copay)


class PricingInput(WireModel):
    items: list[LineItemIn] = Field(default_factory=list)
    discount_type: DiscountType | None = None
    discount_value: Decimal | None = None

    def line_items(self) -> list[LineItem]:
        return [item.to_line_item() for item in self.items]

    def discount_policy(self) -> DiscountPolicy:
        return DiscountPolicy.from_wire(self.discount_type, self.discount_value)


class CalculateTotalRequest(PricingInput):
    pass


class CreateBillRequest(PricingInput):
    customer_name: str = Field(min_length=1)
    customer_phone: str = Field(min_length=1)
    payment_method: str = Field(min_length=1)
    insurance_info: InsuranceIn | None = None

    def customer(self) -> Customer:
        return Customer(name=self.customer_name.strip(), phone=self.customer_phone.strip())


class CardDetailsIn(WireModel):
    number: str | None = None
    expiry: str | None = None
    cvv: str | None = None

    def to_card_details(self) -> CardDetails:
        return CardDetails(number=self.number, expiry=self.expiry, cvv=self.cvv)


class PaymentRequest(WireModel):
    bill_id: int | None = None
    payment_method: str = Field(min_length=1)
    amount: Decimal = Field(ge=0, max_digits=MONEY_DIGITS, decimal_places=MONEY_PLACES)
    card_details: CardDetailsIn | None = None

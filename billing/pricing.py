from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Final, Iterable

from billing.errors import InvalidDiscountPolicy, InvalidLineItem

CENT: Final[Decimal] = Decimal("0.01")
ZERO: Final[Decimal] = Decimal("0")
DEFAULT_TAX_RATE: Final[Decimal] = Decimal("0.05")
SENIOR_CITIZEN_PERCENT: Final[Decimal] = Decimal("10")

DISCOUNT_KINDS: Final[set[str]] = {"none", "percentage", "fixed", "senior_citizen"}


def to_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LineItem:
    medicine_id: str
    name: str
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class DiscountPolicy:
    """Exclusive discount rule applied to a subtotal before tax.

    Only one policy applies per bill. ``value`` is the percentage for
    ``percentage`` and the currency amount for ``fixed``; it is ignored for
    ``none`` and ``senior_citizen``.
    """

    kind: str = "none"
    value: Decimal = ZERO

    def __post_init__(self) -> None:
        if self.kind not in DISCOUNT_KINDS:
            raise InvalidDiscountPolicy(f"Unknown discount type: {self.kind}")
        if self.kind == "percentage" and not (ZERO <= self.value <= Decimal("100")):
            raise InvalidDiscountPolicy("Percentage discount must be between 0 and 100")
        if self.kind == "fixed" and self.value < ZERO:
            raise InvalidDiscountPolicy("Fixed discount must not be negative")

    @classmethod
    def none(cls) -> "DiscountPolicy":
        return cls()

    @classmethod
    def percentage(cls, percent: Decimal | int | str) -> "DiscountPolicy":
        return cls(kind="percentage", value=Decimal(percent))

    @classmethod
    def fixed(cls, amount: Decimal | int | str) -> "DiscountPolicy":
        return cls(kind="fixed", value=Decimal(amount))

    @classmethod
    def senior_citizen(cls) -> "DiscountPolicy":
        return cls(kind="senior_citizen")

    @classmethod
    def from_wire(cls, discount_type: str | None, discount_value: Decimal | None) -> "DiscountPolicy":
        kind = (discount_type or "none").strip().lower()
        if kind in {"percentage", "fixed"}:
            return cls(kind=kind, value=discount_value if discount_value is not None else ZERO)
        return cls(kind=kind)


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal

    def as_dict(self) -> dict[str, str]:
        return {
            "subtotal": f"{self.subtotal:.2f}",
            "discountAmount": f"{self.discount_amount:.2f}",
            "taxAmount": f"{self.tax_amount:.2f}",
            "totalAmount": f"{self.total_amount:.2f}",
        }


def _check_item(item: LineItem) -> None:
    if item.quantity < 0:
        raise InvalidLineItem(f"Quantity must not be negative for {item.medicine_id}")
    if item.unit_price < ZERO:
        raise InvalidLineItem(f"Unit price must not be negative for {item.medicine_id}")


def _discount_for(subtotal: Decimal, policy: DiscountPolicy) -> Decimal:
    if policy.kind == "percentage":
        raw = subtotal * policy.value / 100
    elif policy.kind == "fixed":
        raw = policy.value
    elif policy.kind == "senior_citizen":
        raw = subtotal * SENIOR_CITIZEN_PERCENT / 100
    else:
        raw = ZERO
    return min(raw, subtotal)


def compute_totals(
    items: Iterable[LineItem],
    policy: DiscountPolicy | None = None,
    tax_rate: Decimal = DEFAULT_TAX_RATE,
) -> PriceBreakdown:
    """Price a set of line items.

    Arithmetic stays in full Decimal precision; each figure is rounded
    half-up to cents once, where it becomes an output. Tax is taken on the
    rounded subtotal minus the rounded discount so the emitted figures
    satisfy ``total == subtotal - discount + tax`` exactly.
    """
    active = policy or DiscountPolicy.none()
    gross = ZERO
    for item in items:
        _check_item(item)
        gross += item.line_total

    try:
        subtotal = to_money(gross)
        discount = to_money(_discount_for(subtotal, active))
        tax = to_money((subtotal - discount) * tax_rate)
    except InvalidOperation as exc:
        raise InvalidLineItem("Line item amounts are too large to price") from exc
    return PriceBreakdown(
        subtotal=subtotal,
        discount_amount=discount,
        tax_amount=tax,
        total_amount=subtotal - discount + tax,
    )

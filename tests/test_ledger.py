from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from billing.errors import BillingValidationError, BillNotFoundError
from billing.identifiers import TokenGenerator
from billing.ledger import (
    Bill,
    BillLedger,
    Customer,
    InMemoryBillLedger,
    InsuranceInfo,
    SqliteBillLedger,
)
from billing.pricing import DiscountPolicy, LineItem, compute_totals

_ITEMS = (
    LineItem(medicine_id="med-1", name="Amoxicillin 250mg", quantity=2, unit_price=Decimal("10.00")),
    LineItem(medicine_id="med-2", name="Cetirizine 10mg", quantity=1, unit_price=Decimal("5.00")),
)


@pytest.fixture(params=["memory", "sqlite"])
def ledger(request: pytest.FixtureRequest, tmp_path: Path) -> BillLedger:
    if request.param == "sqlite":
        return SqliteBillLedger(db_path=tmp_path / "ledger.db")
    return InMemoryBillLedger()


def _create(ledger: BillLedger, phone: str = "555-0100") -> Bill:
    return ledger.create(
        customer=Customer(name="Asha", phone=phone),
        items=_ITEMS,
        policy=DiscountPolicy.percentage(10),
        payment_method="cash",
    )


def test_create_assigns_sequential_ids_and_prices_bill(ledger: BillLedger) -> None:
    first = _create(ledger)
    second = _create(ledger)

    assert (first.id, second.id) == (1, 2)
    assert first.bill_number != second.bill_number
    assert first.totals == compute_totals(_ITEMS, DiscountPolicy.percentage(10))
    assert first.as_dict()["totalAmount"] == "23.63"
    assert first.status == "completed"
    assert len(ledger) == 2


def test_get_returns_stored_bill(ledger: BillLedger) -> None:
    created = ledger.create(
        customer=Customer(name="Ravi", phone="555-0199"),
        items=_ITEMS,
        policy=DiscountPolicy.senior_citizen(),
        payment_method="card",
        insurance=InsuranceInfo(provider="MediCare", policy_number="POL-9", copay=Decimal("15")),
    )

    fetched = ledger.get(created.id)
    assert fetched.bill_number == created.bill_number
    assert fetched.items == created.items
    assert fetched.totals == created.totals
    assert fetched.insurance == created.insurance
    assert fetched.as_dict() == created.as_dict()


def test_get_unknown_id_raises(ledger: BillLedger) -> None:
    with pytest.raises(BillNotFoundError):
        ledger.get(404)


@pytest.mark.parametrize(("n", "limit", "page"), [(0, 10, 1), (7, 3, 1), (7, 3, 3), (7, 3, 4), (10, 5, 2)])
def test_list_pagination_counts(ledger: BillLedger, n: int, limit: int, page: int) -> None:
    for _ in range(n):
        _create(ledger)

    result = ledger.list(page=page, limit=limit)

    assert result.count == max(0, min(n - (page - 1) * limit, limit))
    assert result.total == n
    assert result.total_pages == math.ceil(n / limit)
    assert result.current_page == page
    assert [b.id for b in result.items] == list(range((page - 1) * limit + 1, (page - 1) * limit + 1 + result.count))


def test_list_filters_by_exact_phone(ledger: BillLedger) -> None:
    _create(ledger, phone="555-0100")
    _create(ledger, phone="555-0200")
    _create(ledger, phone="555-0100")

    result = ledger.list(customer_phone="555-0100", page=1, limit=10)
    assert result.total == 2
    assert all(b.customer.phone == "555-0100" for b in result.items)
    assert ledger.list(customer_phone="555-010", page=1, limit=10).total == 0


@pytest.mark.parametrize(("page", "limit"), [(0, 10), (1, 0)])
def test_list_rejects_invalid_paging(ledger: BillLedger, page: int, limit: int) -> None:
    with pytest.raises(BillingValidationError):
        ledger.list(page=page, limit=limit)


def test_concurrent_creates_never_collide(ledger: BillLedger) -> None:
    with ThreadPoolExecutor(max_workers=8) as pool:
        bills = list(pool.map(lambda i: _create(ledger, phone=f"555-{i:04d}"), range(40)))

    assert len(ledger) == 40
    assert len({b.id for b in bills}) == 40
    assert len({b.bill_number for b in bills}) == 40
    assert [b.id for b in ledger.snapshot()] == list(range(1, 41))


def test_two_concurrent_creates_grow_ledger_by_two(ledger: BillLedger) -> None:
    before = len(ledger)
    with ThreadPoolExecutor(max_workers=2) as pool:
        first, second = pool.map(lambda _: _create(ledger), range(2))

    assert len(ledger) == before + 2
    assert first.id != second.id
    assert first.bill_number != second.bill_number


def test_issued_at_comes_from_clock() -> None:
    fixed = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)
    ledger = InMemoryBillLedger(clock=lambda: fixed)
    assert _create(ledger).issued_at == fixed


def test_sqlite_ledger_survives_reopen(tmp_path: Path) -> None:
    db_path = tmp_path / "ledger.db"
    first = SqliteBillLedger(db_path=db_path)
    created = _create(first)

    reopened = SqliteBillLedger(db_path=db_path)
    assert reopened.get(created.id).bill_number == created.bill_number
    assert _create(reopened).id == created.id + 1


def test_sqlite_ledgers_sharing_a_file_never_repeat_bill_numbers(tmp_path: Path) -> None:
    db_path = tmp_path / "ledger.db"
    first = SqliteBillLedger(db_path=db_path, bill_numbers=TokenGenerator("BILL", clock_ms=lambda: 1))
    second = SqliteBillLedger(db_path=db_path, bill_numbers=TokenGenerator("BILL", clock_ms=lambda: 1))

    a = _create(first)
    b = _create(second)
    c = _create(first)

    assert [a.id, b.id, c.id] == [1, 2, 3]
    assert len({a.bill_number, b.bill_number, c.bill_number}) == 3
    assert second.get(c.id).bill_number == c.bill_number


def test_bill_number_carries_bill_id(ledger: BillLedger) -> None:
    bill = _create(ledger)
    assert bill.bill_number.endswith(f"-{bill.id:06d}")

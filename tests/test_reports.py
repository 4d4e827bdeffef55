from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from zoneinfo import ZoneInfo

from billing.ledger import Customer, InMemoryBillLedger
from billing.pricing import DiscountPolicy, LineItem
from billing.reports import daily_report


class _StepClock:
    def __init__(self, *moments: datetime) -> None:
        self._moments = list(moments)

    def __call__(self) -> datetime:
        return self._moments.pop(0)


def _bill(ledger: InMemoryBillLedger, price: str) -> None:
    ledger.create(
        customer=Customer(name="Meera", phone="555-0300"),
        items=[LineItem(medicine_id="med-1", name="ORS", quantity=1, unit_price=Decimal(price))],
        policy=DiscountPolicy.none(),
        payment_method="cash",
    )


def test_empty_ledger_gives_zero_report() -> None:
    report = daily_report(InMemoryBillLedger(), date(2026, 4, 1))
    payload = report.as_dict()

    assert payload["date"] == "2026-04-01"
    assert payload["totalSales"] == "0.00"
    assert payload["totalTransactions"] == 0
    assert payload["averageTransaction"] == "0.00"
    assert payload["bills"] == []


def test_report_selects_only_bills_of_the_day() -> None:
    clock = _StepClock(
        datetime(2026, 4, 1, 8, 0, tzinfo=timezone.utc),
        datetime(2026, 4, 1, 23, 59, tzinfo=timezone.utc),
        datetime(2026, 4, 2, 0, 1, tzinfo=timezone.utc),
    )
    ledger = InMemoryBillLedger(clock=clock)
    _bill(ledger, "10.00")
    _bill(ledger, "20.00")
    _bill(ledger, "40.00")

    report = daily_report(ledger, date(2026, 4, 1))

    assert report.total_transactions == 2
    assert report.total_sales == Decimal("31.50")
    assert report.average_transaction == Decimal("15.75")
    assert [b.id for b in report.bills] == [1, 2]


def test_non_matching_day_gives_zero_report() -> None:
    ledger = InMemoryBillLedger(clock=lambda: datetime(2026, 4, 1, 8, 0, tzinfo=timezone.utc))
    _bill(ledger, "10.00")

    report = daily_report(ledger, date(2025, 12, 31))
    assert report.total_transactions == 0
    assert report.total_sales == Decimal("0")
    assert report.as_dict()["averageTransaction"] == "0.00"


def test_day_boundary_follows_ledger_timezone() -> None:
    kolkata = ZoneInfo("Asia/Kolkata")
    ledger = InMemoryBillLedger(clock=lambda: datetime(2026, 4, 1, 20, 0, tzinfo=timezone.utc))
    _bill(ledger, "10.00")

    assert daily_report(ledger, date(2026, 4, 2), tz=kolkata).total_transactions == 1
    assert daily_report(ledger, date(2026, 4, 1), tz=kolkata).total_transactions == 0


def test_default_day_is_today_in_timezone() -> None:
    moment = datetime(2026, 4, 1, 12, 0, tzinfo=timezone.utc)
    ledger = InMemoryBillLedger(clock=lambda: moment)
    _bill(ledger, "3.00")

    report = daily_report(ledger, now=moment)
    assert report.date == date(2026, 4, 1)
    assert report.total_transactions == 1


def test_average_rounds_half_up() -> None:
    ledger = InMemoryBillLedger(clock=lambda: datetime(2026, 4, 1, 8, 0, tzinfo=timezone.utc), tax_rate=Decimal("0"))
    for price in ("0.02", "0.03"):
        _bill(ledger, price)

    report = daily_report(ledger, date(2026, 4, 1))
    assert report.total_sales == Decimal("0.05")
    assert report.average_transaction == Decimal("0.03")

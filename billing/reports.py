from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone, tzinfo
from decimal import Decimal
from typing import Any

from billing.ledger import Bill, BillLedger
from billing.pricing import ZERO, to_money


@dataclass(frozen=True)
class DailyReport:
    date: date
    total_sales: Decimal = ZERO
    total_transactions: int = 0
    average_transaction: Decimal = ZERO
    bills: list[Bill] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "totalSales": f"{self.total_sales:.2f}",
            "totalTransactions": self.total_transactions,
            "averageTransaction": f"{self.average_transaction:.2f}",
            "bills": [bill.as_dict() for bill in self.bills],
        }


def daily_report(
    ledger: BillLedger,
    day: date | None = None,
    *,
    tz: tzinfo = timezone.utc,
    now: datetime | None = None,
) -> DailyReport:
    """Summarize the bills issued on one calendar day in ``tz``.

    ``day`` defaults to today in ``tz``. Bills are read from a single ledger
    snapshot, so a concurrent create is either fully counted or not at all.
    """
    target = day or (now or datetime.now(timezone.utc)).astimezone(tz).date()
    selected = [bill for bill in ledger.snapshot() if bill.issued_at.astimezone(tz).date() == target]

    total_sales = sum((bill.total_amount for bill in selected), ZERO)
    count = len(selected)
    average = to_money(total_sales / count) if count else ZERO
    return DailyReport(
        date=target,
        total_sales=to_money(total_sales),
        total_transactions=count,
        average_transaction=average,
        bills=selected,
    )

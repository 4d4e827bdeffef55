from __future__ import annotations

import json
import math
import sqlite3
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Protocol, Sequence

from billing.config import Settings
from billing.errors import BillingValidationError, BillNotFoundError
from billing.identifiers import SequenceGenerator, TokenGenerator
from billing.pricing import DEFAULT_TAX_RATE, DiscountPolicy, LineItem, PriceBreakdown, compute_totals

BILL_STATUS_COMPLETED = "completed"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Customer:
    name: str
    phone: str


@dataclass(frozen=True)
class InsuranceInfo:
    provider: str
    policy_number: str
    copay: Decimal | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "policyNumber": self.policy_number,
            "copay": None if self.copay is None else f"{self.copay:.2f}",
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "InsuranceInfo":
        copay = data.get("copay")
        return cls(
            provider=data["provider"],
            policy_number=data["policyNumber"],
            copay=None if copay is None else Decimal(copay),
        )


@dataclass(frozen=True)
class Bill:
    id: int
    bill_number: str
    issued_at: datetime
    customer: Customer
    items: tuple[LineItem, ...]
    totals: PriceBreakdown
    payment_method: str
    insurance: InsuranceInfo | None = None
    status: str = BILL_STATUS_COMPLETED

    @property
    def total_amount(self) -> Decimal:
        return self.totals.total_amount

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "billNumber": self.bill_number,
            "date": self.issued_at.isoformat(),
            "customer": {"name": self.customer.name, "phone": self.customer.phone},
            "items": [_item_as_dict(item) for item in self.items],
            **self.totals.as_dict(),
            "paymentMethod": self.payment_method,
            "insuranceInfo": self.insurance.as_dict() if self.insurance else None,
            "status": self.status,
        }


def _item_as_dict(item: LineItem) -> dict[str, Any]:
    return {
        "medicineId": item.medicine_id,
        "name": item.name,
        "quantity": item.quantity,
        "price": f"{item.unit_price:.2f}",
        "lineTotal": f"{item.line_total:.2f}",
    }


@dataclass(frozen=True)
class BillPage:
    items: list[Bill] = field(default_factory=list)
    total: int = 0
    current_page: int = 1
    total_pages: int = 0

    @property
    def count(self) -> int:
        return len(self.items)

    def as_dict(self) -> dict[str, Any]:
        return {
            "items": [bill.as_dict() for bill in self.items],
            "count": self.count,
            "total": self.total,
            "currentPage": self.current_page,
            "totalPages": self.total_pages,
        }


class BillLedger(Protocol):
    def create(
        self,
        customer: Customer,
        items: Sequence[LineItem],
        policy: DiscountPolicy,
        payment_method: str,
        insurance: InsuranceInfo | None = None,
    ) -> Bill:
        """Price and append a new bill atomically."""

    def get(self, bill_id: int) -> Bill:
        """Return the bill or raise BillNotFoundError."""

    def list(self, customer_phone: str | None = None, page: int = 1, limit: int = 10) -> BillPage:
        """Return one page of bills in insertion order."""

    def snapshot(self) -> tuple[Bill, ...]:
        """Return every bill as of a single consistent point."""

    def __len__(self) -> int: ...


def _check_paging(page: int, limit: int) -> None:
    if page < 1:
        raise BillingValidationError("page must be >= 1")
    if limit < 1:
        raise BillingValidationError("limit must be > 0")


def _total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit)


class InMemoryBillLedger:
    def __init__(
        self,
        *,
        tax_rate: Decimal = DEFAULT_TAX_RATE,
        clock: Callable[[], datetime] = _utc_now,
        bill_numbers: TokenGenerator | None = None,
    ) -> None:
        self._tax_rate = tax_rate
        self._clock = clock
        self._bill_numbers = bill_numbers or TokenGenerator("BILL")
        self._ids = SequenceGenerator()
        self._bills: list[Bill] = []
        self._by_id: dict[int, Bill] = {}
        self._lock = threading.RLock()

    def create(
        self,
        customer: Customer,
        items: Sequence[LineItem],
        policy: DiscountPolicy,
        payment_method: str,
        insurance: InsuranceInfo | None = None,
    ) -> Bill:
        frozen_items = tuple(items)
        totals = compute_totals(frozen_items, policy, self._tax_rate)
        with self._lock:
            bill_id = self._ids.next()
            bill = Bill(
                id=bill_id,
                bill_number=self._bill_numbers.token_for(bill_id),
                issued_at=self._clock(),
                customer=customer,
                items=frozen_items,
                totals=totals,
                payment_method=payment_method,
                insurance=insurance,
            )
            self._bills.append(bill)
            self._by_id[bill.id] = bill
        return bill

    def get(self, bill_id: int) -> Bill:
        with self._lock:
            bill = self._by_id.get(bill_id)
        if bill is None:
            raise BillNotFoundError(bill_id)
        return bill

    def list(self, customer_phone: str | None = None, page: int = 1, limit: int = 10) -> BillPage:
        _check_paging(page, limit)
        bills = self.snapshot()
        if customer_phone:
            bills = tuple(b for b in bills if b.customer.phone == customer_phone)
        start = (page - 1) * limit
        return BillPage(
            items=list(bills[start : start + limit]),
            total=len(bills),
            current_page=page,
            total_pages=_total_pages(len(bills), limit),
        )

    def snapshot(self) -> tuple[Bill, ...]:
        with self._lock:
            return tuple(self._bills)

    def __len__(self) -> int:
        with self._lock:
            return len(self._bills)


class SqliteBillLedger:
    """Bill ledger persisted in a local SQLite file.

    Writes run inside ``BEGIN IMMEDIATE`` so id assignment and the append are
    one step across threads and connections. Bill numbers are built from
    the id taken under that lock, so separate ledger instances on one file
    never mint the same number. Reads use a single transaction in WAL mode
    and therefore see a consistent snapshot.
    """

    def __init__(
        self,
        db_path: str | Path = "data/ledger.db",
        *,
        tax_rate: Decimal = DEFAULT_TAX_RATE,
        clock: Callable[[], datetime] = _utc_now,
        bill_numbers: TokenGenerator | None = None,
    ) -> None:
        self._db_path = str(db_path)
        Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._tax_rate = tax_rate
        self._clock = clock
        self._bill_numbers = bill_numbers or TokenGenerator("BILL")
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=10, isolation_level=None)
        conn.execute("PRAGMA journal_mode=WAL;")
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS bills (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    bill_number TEXT NOT NULL UNIQUE,
                    issued_at_utc TEXT NOT NULL,
                    customer_name TEXT NOT NULL,
                    customer_phone TEXT NOT NULL,
                    items_json TEXT NOT NULL,
                    subtotal TEXT NOT NULL,
                    discount_amount TEXT NOT NULL,
                    tax_amount TEXT NOT NULL,
                    total_amount TEXT NOT NULL,
                    payment_method TEXT NOT NULL,
                    insurance_json TEXT,
                    status TEXT NOT NULL
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_bills_customer_phone ON bills (customer_phone)"
            )

    def create(
        self,
        customer: Customer,
        items: Sequence[LineItem],
        policy: DiscountPolicy,
        payment_method: str,
        insurance: InsuranceInfo | None = None,
    ) -> Bill:
        frozen_items = tuple(items)
        totals = compute_totals(frozen_items, policy, self._tax_rate)
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                bill_id = _next_bill_id(conn)
                bill_number = self._bill_numbers.token_for(bill_id)
                issued_at = self._clock()
                conn.execute(
                    """
                    INSERT INTO bills
                    (id, bill_number, issued_at_utc, customer_name, customer_phone, items_json,
                     subtotal, discount_amount, tax_amount, total_amount,
                     payment_method, insurance_json, status)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        bill_id,
                        bill_number,
                        issued_at.isoformat(),
                        customer.name,
                        customer.phone,
                        json.dumps([_item_to_row(item) for item in frozen_items]),
                        str(totals.subtotal),
                        str(totals.discount_amount),
                        str(totals.tax_amount),
                        str(totals.total_amount),
                        payment_method,
                        json.dumps(insurance.as_dict()) if insurance else None,
                        BILL_STATUS_COMPLETED,
                    ),
                )
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise
        return Bill(
            id=bill_id,
            bill_number=bill_number,
            issued_at=issued_at,
            customer=customer,
            items=frozen_items,
            totals=totals,
            payment_method=payment_method,
            insurance=insurance,
        )

    def get(self, bill_id: int) -> Bill:
        with self._connect() as conn:
            row = conn.execute(f"SELECT {_COLUMNS} FROM bills WHERE id = ?", (bill_id,)).fetchone()
        if row is None:
            raise BillNotFoundError(bill_id)
        return _row_to_bill(row)

    def list(self, customer_phone: str | None = None, page: int = 1, limit: int = 10) -> BillPage:
        _check_paging(page, limit)
        where = "WHERE customer_phone = ?" if customer_phone else ""
        params: tuple[Any, ...] = (customer_phone,) if customer_phone else ()
        with self._connect() as conn:
            conn.execute("BEGIN")
            total = conn.execute(f"SELECT COUNT(*) FROM bills {where}", params).fetchone()[0]
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM bills {where} ORDER BY id LIMIT ? OFFSET ?",
                (*params, limit, (page - 1) * limit),
            ).fetchall()
            conn.execute("COMMIT")
        return BillPage(
            items=[_row_to_bill(row) for row in rows],
            total=total,
            current_page=page,
            total_pages=_total_pages(total, limit),
        )

    def snapshot(self) -> tuple[Bill, ...]:
        with self._connect() as conn:
            rows = conn.execute(f"SELECT {_COLUMNS} FROM bills ORDER BY id").fetchall()
        return tuple(_row_to_bill(row) for row in rows)

    def __len__(self) -> int:
        with self._connect() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM bills").fetchone()[0])


def _next_bill_id(conn: sqlite3.Connection) -> int:
    # AUTOINCREMENT high-water mark; deleted ids are never handed out again.
    row = conn.execute("SELECT seq FROM sqlite_sequence WHERE name = 'bills'").fetchone()
    return (row[0] if row else 0) + 1


_COLUMNS = (
    "id, bill_number, issued_at_utc, customer_name, customer_phone, items_json, "
    "subtotal, discount_amount, tax_amount, total_amount, payment_method, insurance_json, status"
)


def _item_to_row(item: LineItem) -> dict[str, Any]:
    return {
        "medicine_id": item.medicine_id,
        "name": item.name,
        "quantity": item.quantity,
        "unit_price": str(item.unit_price),
    }


def _row_to_bill(row: Sequence[Any]) -> Bill:
    (
        bill_id,
        bill_number,
        issued_at,
        customer_name,
        customer_phone,
        items_json,
        subtotal,
        discount_amount,
        tax_amount,
        total_amount,
        payment_method,
        insurance_json,
        status,
    ) = row
    items = tuple(
        LineItem(
            medicine_id=entry["medicine_id"],
            name=entry["name"],
            quantity=int(entry["quantity"]),
            unit_price=Decimal(entry["unit_price"]),
        )
        for entry in json.loads(items_json)
    )
    return Bill(
        id=int(bill_id),
        bill_number=bill_number,
        issued_at=datetime.fromisoformat(issued_at),
        customer=Customer(name=customer_name, phone=customer_phone),
        items=items,
        totals=PriceBreakdown(
            subtotal=Decimal(subtotal),
            discount_amount=Decimal(discount_amount),
            tax_amount=Decimal(tax_amount),
            total_amount=Decimal(total_amount),
        ),
        payment_method=payment_method,
        insurance=InsuranceInfo.from_dict(json.loads(insurance_json)) if insurance_json else None,
        status=status,
    )


def ledger_from_settings(settings: Settings) -> BillLedger:
    if settings.ledger_backend == "sqlite":
        return SqliteBillLedger(db_path=settings.ledger_db_path, tax_rate=settings.tax_rate)
    return InMemoryBillLedger(tax_rate=settings.tax_rate)

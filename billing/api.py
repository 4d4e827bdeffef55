from __future__ import annotations

import logging
import time
from datetime import date
from typing import Any

from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from billing.config import Settings
from billing.errors import BillingValidationError, BillNotFoundError, InvalidPaymentDetails
from billing.ledger import BillLedger, ledger_from_settings
from billing.logger import log_billing_event
from billing.metrics import MetricsCollector
from billing.payments import PaymentProcessor
from billing.pricing import compute_totals
from billing.reports import daily_report
from schemas.bill_schema import CalculateTotalRequest, CreateBillRequest, PaymentRequest

logger = logging.getLogger(__name__)


def _ok(data: Any, message: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    body["data"] = data
    return body


def _fail(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def _describe_validation_error(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    return f"{location}: {first.get('msg', 'invalid value')}" if location else str(first.get("msg"))


def create_billing_app(
    *,
    settings: Settings | None = None,
    ledger: BillLedger | None = None,
    payments: PaymentProcessor | None = None,
    metrics: MetricsCollector | None = None,
) -> FastAPI:
    active = settings or Settings()
    bill_ledger = ledger if ledger is not None else ledger_from_settings(active)
    processor = payments or PaymentProcessor()
    collector = metrics or MetricsCollector()

    app = FastAPI(title="Pharmacy Billing API", version="1.0.0")
    app.state.ledger = bill_ledger
    app.state.metrics = collector
    router = APIRouter(prefix="/api/billing")

    @router.post("/create")
    def create_bill(payload: CreateBillRequest) -> dict[str, Any]:
        started = time.perf_counter()
        bill = bill_ledger.create(
            customer=payload.customer(),
            items=payload.line_items(),
            policy=payload.discount_policy(),
            payment_method=payload.payment_method,
            insurance=payload.insurance_info.to_insurance() if payload.insurance_info else None,
        )
        latency_ms = int((time.perf_counter() - started) * 1000)
        collector.increment("bills_created_total")
        collector.observe_latency(latency_ms)
        log_billing_event(
            logger,
            logging.INFO,
            "Bill created",
            operation="create_bill",
            bill_id=bill.id,
            bill_number=bill.bill_number,
            outcome="created",
            latency_ms=latency_ms,
        )
        return _ok(bill.as_dict(), "Bill created successfully")

    @router.post("/calculate-total")
    def calculate_total(payload: CalculateTotalRequest) -> dict[str, Any]:
        breakdown = compute_totals(payload.line_items(), payload.discount_policy(), active.tax_rate)
        return _ok(breakdown.as_dict())

    @router.post("/process-payment")
    def process_payment(payload: PaymentRequest) -> dict[str, Any]:
        try:
            receipt = processor.process_payment(
                payload.payment_method,
                payload.amount,
                bill_id=payload.bill_id,
                card_details=payload.card_details.to_card_details() if payload.card_details else None,
            )
        except InvalidPaymentDetails:
            collector.increment("payments_rejected_total")
            raise
        collector.increment("payments_approved_total")
        return _ok(receipt.as_dict(), "Payment processed successfully")

    @router.get("/reports/daily")
    def report_daily(day: date | None = Query(default=None, alias="date")) -> dict[str, Any]:
        report = daily_report(bill_ledger, day, tz=active.tzinfo)
        return _ok(report.as_dict())

    @router.get("/")
    def list_bills(
        page: int = Query(default=1),
        limit: int | None = Query(default=None),
        customer_phone: str | None = Query(default=None, alias="customerPhone"),
    ) -> dict[str, Any]:
        effective_limit = active.default_page_limit if limit is None else min(limit, active.max_page_limit)
        result = bill_ledger.list(customer_phone=customer_phone, page=page, limit=effective_limit)
        return _ok(result.as_dict())

    @router.get("/{bill_id}")
    def get_bill(bill_id: int) -> dict[str, Any]:
        return _ok(bill_ledger.get(bill_id).as_dict())

    app.include_router(router)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/metrics")
    def metrics_snapshot() -> dict[str, Any]:
        return collector.snapshot()

    @app.exception_handler(RequestValidationError)
    async def _on_request_validation(_: Request, exc: RequestValidationError) -> JSONResponse:
        collector.increment("validation_failures_total")
        return _fail(400, _describe_validation_error(exc))

    @app.exception_handler(BillingValidationError)
    async def _on_billing_validation(_: Request, exc: BillingValidationError) -> JSONResponse:
        collector.increment("validation_failures_total")
        return _fail(400, str(exc))

    @app.exception_handler(BillNotFoundError)
    async def _on_not_found(_: Request, exc: BillNotFoundError) -> JSONResponse:
        collector.increment("not_found_total")
        return _fail(404, "Bill not found")

    @app.exception_handler(Exception)
    async def _on_unexpected(request: Request, exc: Exception) -> JSONResponse:
        collector.increment("internal_errors_total")
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        message = str(exc) if active.is_development else "Internal server error"
        return _fail(500, message)

    return app

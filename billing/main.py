from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

import uvicorn
from pydantic import ValidationError

from billing.api import create_billing_app
from billing.config import Settings, load_dotenv
from billing.errors import BillingValidationError
from billing.logger import configure_logging
from billing.pricing import compute_totals
from schemas.bill_schema import CalculateTotalRequest


def run_serve(settings: Settings) -> int:
    app = create_billing_app(settings=settings)
    logging.getLogger(__name__).info(
        "Starting billing API on %s:%d (env=%s, ledger=%s)",
        settings.host,
        settings.port,
        settings.environment,
        settings.ledger_backend,
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)
    return 0


def run_calculate_total(
    settings: Settings,
    *,
    items_file: str | Path,
    discount_type: str | None,
    discount_value: str | None,
) -> dict[str, str]:
    items = json.loads(Path(items_file).read_text(encoding="utf-8"))
    request = CalculateTotalRequest.model_validate(
        {"items": items, "discountType": discount_type, "discountValue": discount_value}
    )
    breakdown = compute_totals(request.line_items(), request.discount_policy(), settings.tax_rate)
    return breakdown.as_dict()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Pharmacy POS Billing")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the billing HTTP API")
    _ = serve

    calc = subparsers.add_parser("calculate-total", help="Preview bill totals for a list of items")
    calc.add_argument("--items-file", required=True, help="JSON array of {medicineId, name, quantity, price}")
    calc.add_argument(
        "--discount-type",
        default=None,
        choices=["none", "percentage", "fixed", "senior_citizen"],
    )
    calc.add_argument("--discount-value", default=None)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    load_dotenv()
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    if args.command == "serve":
        return run_serve(settings)
    if args.command == "calculate-total":
        try:
            result = run_calculate_total(
                settings,
                items_file=args.items_file,
                discount_type=args.discount_type,
                discount_value=args.discount_value,
            )
        except (ValidationError, BillingValidationError) as exc:
            print(f"Invalid input: {exc}", file=sys.stderr)
            return 2
        print(json.dumps(result, indent=2))
        return 0
    return 1


if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timezone as dt_timezone
from datetime import tzinfo as TzInfo
from decimal import Decimal, InvalidOperation
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def _parse_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _parse_tax_rate(raw: str) -> Decimal:
    try:
        rate = Decimal(raw.strip())
    except InvalidOperation as exc:
        raise ValueError(f"BILLING_TAX_RATE must be a decimal fraction, got {raw!r}") from exc
    if not (Decimal("0") <= rate <= Decimal("1")):
        raise ValueError("BILLING_TAX_RATE must be between 0 and 1")
    return rate


@dataclass(frozen=True)
class Settings:
    environment: str = "production"
    log_level: str = "INFO"
    tax_rate: Decimal = Decimal("0.05")
    timezone: str = "UTC"
    ledger_backend: str = "memory"
    ledger_db_path: str = "data/ledger.db"
    default_page_limit: int = 10
    max_page_limit: int = 100
    host: str = "0.0.0.0"
    port: int = 5000

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def tzinfo(self) -> TzInfo:
        if self.timezone.upper() == "UTC":
            return dt_timezone.utc
        return ZoneInfo(self.timezone)

    @classmethod
    def from_env(cls) -> "Settings":
        environment = os.getenv("BILLING_ENV", "production").strip().lower()
        if environment not in {"production", "development"}:
            raise ValueError("BILLING_ENV must be one of: production, development")

        tz_name = os.getenv("BILLING_TIMEZONE", "UTC").strip()
        try:
            if tz_name.upper() != "UTC":
                ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"BILLING_TIMEZONE is not a known timezone: {tz_name}") from exc

        ledger_backend = os.getenv("LEDGER_BACKEND", "memory").strip().lower()
        if ledger_backend not in {"memory", "sqlite"}:
            raise ValueError("LEDGER_BACKEND must be one of: memory, sqlite")

        ledger_db_path = os.getenv("LEDGER_DB_PATH", "data/ledger.db").strip()
        if ledger_backend == "sqlite" and not ledger_db_path:
            raise ValueError("LEDGER_DB_PATH is required when LEDGER_BACKEND=sqlite")

        default_limit = _parse_int("DEFAULT_PAGE_LIMIT", 10)
        max_limit = _parse_int("MAX_PAGE_LIMIT", 100)
        if default_limit < 1 or max_limit < default_limit:
            raise ValueError("DEFAULT_PAGE_LIMIT must be >= 1 and <= MAX_PAGE_LIMIT")

        return cls(
            environment=environment,
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            tax_rate=_parse_tax_rate(os.getenv("BILLING_TAX_RATE", "0.05")),
            timezone=tz_name,
            ledger_backend=ledger_backend,
            ledger_db_path=ledger_db_path,
            default_page_limit=default_limit,
            max_page_limit=max_limit,
            host=os.getenv("HOST", "0.0.0.0"),
            port=_parse_int("PORT", 5000),
        )


def load_dotenv(path: str | Path = ".env") -> None:
    env_path = Path(path)
    if not env_path.exists():
        return
    for line in env_path.read_text(encoding="utf-8").splitlines():
        entry = line.strip()
        if not entry or entry.startswith("#") or "=" not in entry:
            continue
        key, value = entry.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        os.environ.setdefault(key, value)

"""Configuration management for the lending ledger."""

import os
from dataclasses import dataclass
from decimal import Decimal

from .utils import CURRENCY_FORMATS, decimal_from_str


@dataclass
class LedgerConfig:
    """Settings shared by the command-line interface and the web service."""

    database_url: str = "sqlite:///ledger_data.sqlite3"
    secret_key: str = "dev-secret-key"
    currency: str = "BRL"
    late_fee_percent: Decimal = Decimal("0")
    log_level: str = "INFO"
    log_format: str = "standard"

    def __post_init__(self) -> None:
        self.currency = self.currency.upper()
        if self.currency not in CURRENCY_FORMATS:
            raise ValueError(f"Unsupported currency: {self.currency}")
        if self.late_fee_percent < 0:
            raise ValueError("Late fee percent must not be negative")

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        """Create config from environment variables."""
        return cls(
            database_url=os.getenv("LEDGER_DATABASE_URL", "sqlite:///ledger_data.sqlite3"),
            secret_key=os.getenv("FLASK_SECRET_KEY", "dev-secret-key"),
            currency=os.getenv("LEDGER_CURRENCY", "BRL"),
            late_fee_percent=decimal_from_str(os.getenv("LEDGER_LATE_FEE_PERCENT", "0")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "standard"),
        )

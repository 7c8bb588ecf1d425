"""Money and date helpers for the lending ledger.

Every amount handled by the ledger is a ``Decimal`` rounded to cents with
ROUND_HALF_UP. This module converts user and wire input into such values,
formats them for display and provides the calendar arithmetic used by the
schedule generator (adding days and months).
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, getcontext
from typing import Union

from .exceptions import InvalidAmount

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

MoneyInput = Union[Decimal, int, float, str]

CURRENCY_FORMATS = {
    "BRL": {"prefix": "R$ ", "thousands": ".", "decimal": ","},
    "USD": {"prefix": "$", "thousands": ",", "decimal": "."},
    "EUR": {"prefix": "€", "thousands": ",", "decimal": "."},
    "GBP": {"prefix": "£", "thousands": ",", "decimal": "."},
}


def round_money(value: Decimal) -> Decimal:
    """Quantize ``value`` to cents using round-half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_money(value: MoneyInput) -> Decimal:
    """Convert ``value`` into a cent-rounded ``Decimal``.

    Floats are converted through their string representation so that ``0.1``
    becomes ``Decimal("0.10")`` rather than its binary expansion.

    Raises
    ------
    InvalidAmount
        If the value is not numeric or is NaN / infinite.
    """
    if isinstance(value, bool):
        raise InvalidAmount(f"Invalid money value: {value!r}")
    if isinstance(value, Decimal):
        amount = value
    else:
        if isinstance(value, float):
            value = str(value)
        try:
            amount = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as exc:
            raise InvalidAmount(f"Invalid money value: {value!r}") from exc
    if not amount.is_finite():
        raise InvalidAmount(f"Money value must be finite; got {value!r}")
    return round_money(amount)


def to_percent(value: MoneyInput, name: str = "rate") -> Decimal:
    """Convert a percentage into an unrounded, non-negative ``Decimal``.

    Raises
    ------
    InvalidAmount
        If the value is not numeric, not finite or negative.
    """
    if isinstance(value, bool):
        raise InvalidAmount(f"Invalid {name}: {value!r}")
    if isinstance(value, float):
        value = str(value)
    try:
        rate = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmount(f"Invalid {name}: {value!r}") from exc
    if not rate.is_finite() or rate < 0:
        raise InvalidAmount(f"{name} must be a non-negative number; got {value!r}")
    return rate


def decimal_from_str(value: str) -> Decimal:
    """Convert a numeric string into a ``Decimal``.

    The function strips any commas and handles both integer and float-like
    strings. It raises ``ValueError`` if conversion fails.
    """
    try:
        cleaned = value.replace(",", "")
        return Decimal(cleaned)
    except Exception as exc:
        raise ValueError(f"Invalid numeric value: {value}") from exc


def parse_currency(text: str) -> Decimal:
    """Parse a currency string typed by a user.

    Both Brazilian (``"R$ 1.234,56"``) and English (``"$1,234.56"``) notations
    are accepted. When both separators appear, the right-most one is taken as
    the decimal separator; a lone comma is treated as decimal separator.
    """
    cleaned = "".join(ch for ch in text if ch.isdigit() or ch in ",.-")
    if not cleaned or cleaned in {"-", ".", ","}:
        raise InvalidAmount(f"Invalid currency value: {text!r}")
    if "," in cleaned and "." in cleaned:
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif "," in cleaned:
        cleaned = cleaned.replace(",", ".")
    elif cleaned.count(".") > 1:
        cleaned = cleaned.replace(".", "")
    return to_money(cleaned)


def format_currency(value: Decimal, code: str = "BRL") -> str:
    """Render ``value`` as a currency string, e.g. ``R$ 1.234,56``."""
    meta = CURRENCY_FORMATS.get(code.upper(), CURRENCY_FORMATS["BRL"])
    amount = round_money(Decimal(value))
    sign = "-" if amount < 0 else ""
    # English grouping first, then swap separators for the target locale
    grouped = f"{abs(amount):,.2f}"
    grouped = (
        grouped.replace(",", "\0")
        .replace(".", meta["decimal"])
        .replace("\0", meta["thousands"])
    )
    return f"{sign}{meta['prefix']}{grouped}"


def add_days(dt: date, days: int) -> date:
    return dt + timedelta(days=days)


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def parse_date(value: str) -> date:
    """Parse ``YYYY-MM-DD`` or an ISO timestamp into a ``date``.

    Raises
    ------
    ValueError
        If the string is not a valid date.
    """
    try:
        return date.fromisoformat(value[:10])
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid date string: {value}") from exc


def parse_datetime(value: str) -> datetime:
    """Parse an ISO timestamp; a trailing ``Z`` is read as UTC."""
    try:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return datetime.fromisoformat(text)
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid timestamp: {value}") from exc

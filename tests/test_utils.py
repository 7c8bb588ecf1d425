"""Tests for money and date helpers."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from lend_ledger.exceptions import InvalidAmount
from lend_ledger.utils import (
    add_months,
    format_currency,
    parse_currency,
    parse_date,
    parse_datetime,
    round_money,
    to_money,
    to_percent,
)


class TestToMoney:
    """Tests for money conversion."""

    def test_rounds_half_up(self) -> None:
        assert to_money("10.005") == Decimal("10.01")
        assert to_money("0.125") == Decimal("0.13")

    def test_float_goes_through_its_string_form(self) -> None:
        assert to_money(0.1) == Decimal("0.10")

    def test_int_and_decimal(self) -> None:
        assert to_money(5) == Decimal("5.00")
        assert to_money(Decimal("7.1")) == Decimal("7.10")

    @pytest.mark.parametrize("value", ["abc", "", "NaN", "Infinity", float("inf"), True])
    def test_rejects_non_numeric(self, value) -> None:
        with pytest.raises(InvalidAmount):
            to_money(value)

    def test_round_money_keeps_cents(self) -> None:
        assert round_money(Decimal("2.345")) == Decimal("2.35")


class TestToPercent:
    """Tests for percentage conversion."""

    def test_keeps_precision(self) -> None:
        assert to_percent("0.125") == Decimal("0.125")
        assert to_percent(2.5) == Decimal("2.5")

    @pytest.mark.parametrize("value", ["ten", "", "NaN", "-1", True])
    def test_rejects_invalid(self, value) -> None:
        with pytest.raises(InvalidAmount):
            to_percent(value, "interest rate")


class TestParseCurrency:
    """Tests for user-typed currency strings."""

    def test_brazilian_notation(self) -> None:
        assert parse_currency("R$ 1.234,56") == Decimal("1234.56")

    def test_english_notation(self) -> None:
        assert parse_currency("$1,234.56") == Decimal("1234.56")

    def test_lone_comma_is_decimal_separator(self) -> None:
        assert parse_currency("12,5") == Decimal("12.50")

    def test_repeated_dots_are_thousands(self) -> None:
        assert parse_currency("1.234.567") == Decimal("1234567.00")

    def test_plain_number(self) -> None:
        assert parse_currency("150") == Decimal("150.00")

    def test_rejects_text_without_digits(self) -> None:
        with pytest.raises(InvalidAmount):
            parse_currency("R$")


class TestFormatCurrency:
    """Tests for currency rendering."""

    def test_brl(self) -> None:
        assert format_currency(Decimal("1234.56")) == "R$ 1.234,56"

    def test_usd(self) -> None:
        assert format_currency(Decimal("1234.56"), "USD") == "$1,234.56"

    def test_negative(self) -> None:
        assert format_currency(Decimal("-5"), "BRL") == "-R$ 5,00"

    def test_unknown_code_falls_back_to_brl(self) -> None:
        assert format_currency(Decimal("1"), "XYZ") == "R$ 1,00"


class TestDates:
    """Tests for calendar helpers."""

    def test_add_months_clamps_day(self) -> None:
        assert add_months(date(2024, 1, 31), 1) == date(2024, 2, 29)
        assert add_months(date(2023, 1, 31), 1) == date(2023, 2, 28)

    def test_add_months_crosses_year(self) -> None:
        assert add_months(date(2024, 12, 15), 1) == date(2025, 1, 15)

    def test_parse_date_accepts_timestamps(self) -> None:
        assert parse_date("2024-03-05T10:00:00Z") == date(2024, 3, 5)

    def test_parse_date_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            parse_date("nope")

    def test_parse_datetime_reads_z_as_utc(self) -> None:
        assert parse_datetime("2024-03-05T10:00:00Z") == datetime(2024, 3, 5, 10, 0, tzinfo=timezone.utc)

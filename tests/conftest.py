"""Pytest configuration and fixtures."""

import logging
from datetime import date, datetime
from decimal import Decimal

import pytest

from lend_ledger.data_models import (
    Contract,
    InstallmentStatus,
    Payment,
    PaymentKind,
    Periodicity,
)
from lend_ledger.engine import create_contract


@pytest.fixture(autouse=True)
def restore_root_logging():
    """Commands reconfigure the root logger; put it back after each test."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def start_date() -> date:
    return date(2024, 3, 1)


@pytest.fixture
def monthly_contract(start_date) -> Contract:
    """MONTHLY contract of 1000 at 10 % per cycle."""
    return create_contract(
        Decimal("1000"),
        Decimal("10"),
        Periodicity.MONTHLY,
        start_date,
        contract_id="contract-monthly",
        client_name="Maria Souza",
    )


@pytest.fixture
def daily_contract(start_date) -> Contract:
    """DAILY contract of 1000 split into 20 installments of 50."""
    return create_contract(
        Decimal("1000"),
        Decimal("20"),
        Periodicity.DAILY,
        start_date,
        contract_id="contract-daily",
        client_name="João Lima",
    )


def make_payment(
    created_at: datetime,
    amount: str,
    fee: str = "0",
    interest: str = "0",
    principal: str = "0",
    kind: PaymentKind = PaymentKind.MIXED,
    note: str = "",
    contract_id: str = None,
    periodicity: Periodicity = None,
) -> Payment:
    return Payment(
        amount_paid=Decimal(amount),
        allocated_fee=Decimal(fee),
        allocated_interest=Decimal(interest),
        allocated_principal=Decimal(principal),
        kind=kind,
        created_at=created_at,
        note=note,
        contract_id=contract_id,
        periodicity=periodicity,
    )


@pytest.fixture
def payment_history():
    """Three payments against a 1000 contract that leave 600 open."""
    return [
        make_payment(datetime(2024, 3, 10, 9, 0), "100", interest="100", kind=PaymentKind.INTEREST, note="Interest March"),
        make_payment(datetime(2024, 4, 10, 9, 0), "200", principal="200", kind=PaymentKind.PRINCIPAL, note="Partial principal"),
        make_payment(datetime(2024, 4, 20, 15, 30), "300", interest="100", principal="200", note="Interest and principal"),
    ]


@pytest.fixture
def paid_installments_contract(daily_contract) -> Contract:
    """The daily contract after its first two installments were paid."""
    for inst in daily_contract.installments[:2]:
        inst.status = InstallmentStatus.PAID
    daily_contract.open_principal = Decimal("900.00")
    return daily_contract

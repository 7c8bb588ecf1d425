"""Persistence layer for contracts, payments and cash entries.

This module stores the ledger in a relational database through SQLAlchemy so
the web app can fetch a contract with its installments and payment history
and persist the outcome of a payment. It defaults to SQLite for local
development, but accepts any SQLAlchemy-compatible URL (e.g.
PostgreSQL/MySQL).

Recording a payment reads the contract, runs the allocator and writes the new
balances together with the payment row inside one transaction. The contract
row is locked with ``SELECT ... FOR UPDATE`` on backends that support it, so
two payments against the same contract are applied one after the other.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, List, Optional
from uuid import uuid4

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    create_engine,
    select,
)
from sqlalchemy.orm import declarative_base, relationship, selectinload, sessionmaker

from lend_ledger.data_models import (
    CashEntry,
    CashEntryKind,
    CashEntryStatus,
    CashFlow,
    Contract,
    ContractStatus,
    DateRange,
    Installment,
    InstallmentStatus,
    Payment,
    PaymentKind,
    Periodicity,
)
from lend_ledger.engine import (
    accrue_installment_fees,
    allocate,
    apply_allocation,
    build_payment,
    contract_state,
    create_contract,
    derive_status,
    pay_installments,
    payoff,
)
from lend_ledger.exceptions import ContractNotFound, InvalidState
from lend_ledger.utils import MoneyInput

logger = logging.getLogger(__name__)

Base = declarative_base()

MONEY = Numeric(14, 2)


class ContractModel(Base):
    __tablename__ = "contracts"

    id = Column(String(64), primary_key=True)
    owner_token = Column(String(64), index=True, nullable=False)
    client_name = Column(String(255), nullable=False, default="")
    notes = Column(Text, nullable=False, default="")
    principal = Column(MONEY, nullable=False)
    open_principal = Column(MONEY, nullable=False)
    interest_rate_percent = Column(Numeric(9, 4), nullable=False)
    accrued_fee = Column(MONEY, nullable=False, default=Decimal("0"))
    periodicity = Column(String(16), nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(String(32), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    installments = relationship(
        "InstallmentModel",
        order_by="InstallmentModel.sequence_number",
        cascade="all, delete-orphan",
    )
    payments = relationship(
        "PaymentModel",
        order_by="PaymentModel.created_at",
        cascade="all, delete-orphan",
    )


class InstallmentModel(Base):
    __tablename__ = "installments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    contract_id = Column(String(64), ForeignKey("contracts.id"), index=True, nullable=False)
    sequence_number = Column(Integer, nullable=False)
    amount = Column(MONEY, nullable=False)
    fee = Column(MONEY, nullable=False, default=Decimal("0"))
    fee_paid = Column(MONEY, nullable=False, default=Decimal("0"))
    due_date = Column(Date, nullable=False)
    status = Column(String(16), nullable=False)


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(String(64), primary_key=True)
    contract_id = Column(String(64), ForeignKey("contracts.id"), index=True, nullable=False)
    amount_paid = Column(MONEY, nullable=False)
    allocated_fee = Column(MONEY, nullable=False)
    allocated_interest = Column(MONEY, nullable=False)
    allocated_principal = Column(MONEY, nullable=False)
    kind = Column(String(16), nullable=False)
    note = Column(Text, nullable=False, default="")
    recorded_by = Column(String(64))
    created_at = Column(DateTime, nullable=False, index=True)


class CashEntryModel(Base):
    __tablename__ = "cash_entries"

    id = Column(String(64), primary_key=True)
    owner_token = Column(String(64), index=True, nullable=False)
    description = Column(String(255), nullable=False)
    amount = Column(MONEY, nullable=False)
    entry_date = Column(Date, nullable=False)
    flow = Column(String(8), nullable=False)
    kind = Column(String(16), nullable=False)
    status = Column(String(16), nullable=False)
    category = Column(String(64))


def _money(value) -> Decimal:
    # some drivers hand back floats or unquantized decimals for NUMERIC columns
    return Decimal(str(value)).quantize(Decimal("0.01"))


def _rate(value) -> Decimal:
    rate = Decimal(str(value))
    if rate == rate.to_integral_value():
        return rate.quantize(Decimal(1))
    return rate.normalize()


class LedgerStore:
    """Database-backed contract ledger."""

    def __init__(self, url: str, *, late_fee_percent: Decimal = Decimal("0")) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)
        self._late_fee_percent = late_fee_percent

    # -- contracts ---------------------------------------------------------

    def create_contract(
        self,
        owner_token: str,
        principal: MoneyInput,
        interest_rate_percent: MoneyInput,
        periodicity: Periodicity,
        start_date: date,
        *,
        client_name: str = "",
        notes: str = "",
    ) -> Contract:
        contract = create_contract(
            principal,
            interest_rate_percent,
            periodicity,
            start_date,
            contract_id=uuid4().hex,
            client_name=client_name,
            notes=notes,
            created_at=datetime.utcnow(),
        )
        row = ContractModel(
            id=contract.id,
            owner_token=owner_token,
            client_name=contract.client_name,
            notes=contract.notes,
            principal=contract.principal,
            open_principal=contract.open_principal,
            interest_rate_percent=contract.interest_rate_percent,
            accrued_fee=contract.accrued_fee,
            periodicity=contract.periodicity.value,
            due_date=contract.due_date,
            status=contract.status.value,
            created_at=contract.created_at,
        )
        row.installments = [
            InstallmentModel(
                sequence_number=i.sequence_number,
                amount=i.amount,
                fee=i.fee,
                fee_paid=i.fee_paid,
                due_date=i.due_date,
                status=i.status.value,
            )
            for i in contract.installments
        ]
        with self._session_factory() as session:
            session.add(row)
            session.commit()
        logger.info(
            "Created %s contract %s",
            contract.periodicity.value,
            contract.id,
            extra={"contract_id": contract.id, "owner": owner_token, "amount": str(contract.principal)},
        )
        return contract

    def get_contract(self, owner_token: str, contract_id: str, today: Optional[date] = None) -> Contract:
        """Fetch a contract with installments and payment history.

        Late fees and status are brought up to date as of ``today`` on read.
        """
        today = today or date.today()
        with self._session_factory() as session:
            row = self._load(session, owner_token, contract_id)
            contract = self._to_contract(row)
            refreshed = self._refresh(contract, today)
            if refreshed != contract:
                self._write_back(row, refreshed)
                session.commit()
            return refreshed

    def list_contracts(self, owner_token: str, today: Optional[date] = None) -> List[Contract]:
        today = today or date.today()
        with self._session_factory() as session:
            rows = session.execute(
                select(ContractModel)
                .where(ContractModel.owner_token == owner_token)
                .options(selectinload(ContractModel.installments), selectinload(ContractModel.payments))
                .order_by(ContractModel.created_at.asc())
            ).scalars().all()
            contracts = []
            dirty = False
            for row in rows:
                contract = self._to_contract(row)
                refreshed = self._refresh(contract, today)
                if refreshed != contract:
                    self._write_back(row, refreshed)
                    dirty = True
                contracts.append(refreshed)
            if dirty:
                session.commit()
            return contracts

    def set_personal_collection(self, owner_token: str, contract_id: str, today: Optional[date] = None) -> Contract:
        """Hand a contract over to personal collection."""
        today = today or date.today()
        with self._session_factory() as session:
            row = self._load(session, owner_token, contract_id, for_update=True)
            contract = self._to_contract(row)
            if contract.status is ContractStatus.SETTLED:
                raise InvalidState("A settled contract cannot go to personal collection")
            contract.status = ContractStatus.PERSONAL_COLLECTION
            self._write_back(row, contract)
            session.commit()
            return contract

    # -- payments ----------------------------------------------------------

    def record_payment(
        self,
        owner_token: str,
        contract_id: str,
        amount: MoneyInput,
        *,
        kind: Optional[PaymentKind] = None,
        note: str = "",
        today: Optional[date] = None,
    ) -> tuple[Payment, Contract]:
        """Allocate ``amount`` against a contract and persist the result."""
        today = today or date.today()
        with self._session_factory() as session:
            row = self._load(session, owner_token, contract_id, for_update=True)
            contract = self._refresh(self._to_contract(row), today)
            self._ensure_open(contract)
            allocation = allocate(amount, contract_state(contract))
            payment = build_payment(
                allocation,
                datetime.utcnow(),
                contract=contract,
                kind=kind,
                note=note,
                payment_id=uuid4().hex,
                recorded_by=owner_token,
            )
            updated = apply_allocation(contract, allocation, today, payment=payment)
            self._persist_payment(session, row, updated, payment)
            session.commit()
        logger.info(
            "Recorded payment %s on contract %s",
            payment.amount_paid,
            contract_id,
            extra={"contract_id": contract_id, "owner": owner_token, "amount": str(payment.amount_paid)},
        )
        return payment, updated

    def pay_full(
        self,
        owner_token: str,
        contract_id: str,
        *,
        note: str = "",
        today: Optional[date] = None,
    ) -> tuple[Payment, Contract]:
        """Settle a contract: principal, accrued fee and current interest."""
        today = today or date.today()
        with self._session_factory() as session:
            row = self._load(session, owner_token, contract_id, for_update=True)
            contract = self._refresh(self._to_contract(row), today)
            self._ensure_open(contract)
            allocation = payoff(contract_state(contract))
            payment = build_payment(
                allocation,
                datetime.utcnow(),
                contract=contract,
                kind=PaymentKind.MIXED,
                note=note or "Full payoff",
                payment_id=uuid4().hex,
                recorded_by=owner_token,
            )
            updated = apply_allocation(contract, allocation, today, payment=payment)
            self._persist_payment(session, row, updated, payment)
            session.commit()
        logger.info("Contract %s paid off", contract_id, extra={"contract_id": contract_id, "owner": owner_token})
        return payment, updated

    def pay_installments(
        self,
        owner_token: str,
        contract_id: str,
        sequence_numbers: Iterable[int],
        *,
        note: str = "",
        today: Optional[date] = None,
    ) -> tuple[Payment, Contract]:
        """Pay a selection of pending installments in one payment."""
        today = today or date.today()
        with self._session_factory() as session:
            row = self._load(session, owner_token, contract_id, for_update=True)
            contract = self._refresh(self._to_contract(row), today)
            self._ensure_open(contract)
            result = pay_installments(contract, sequence_numbers)
            numbers = ", ".join(str(n) for n in result.paid_sequence_numbers)
            payment = build_payment(
                result.allocation,
                datetime.utcnow(),
                contract=contract,
                note=note or f"Installments {numbers}",
                payment_id=uuid4().hex,
                recorded_by=owner_token,
            )
            updated = apply_allocation(
                contract,
                result.allocation,
                today,
                installments=result.installments,
                payment=payment,
            )
            self._persist_payment(session, row, updated, payment)
            session.commit()
        logger.info(
            "Paid installments %s on contract %s",
            numbers,
            contract_id,
            extra={"contract_id": contract_id, "owner": owner_token, "amount": str(payment.amount_paid)},
        )
        return payment, updated

    def list_payments(self, owner_token: str, date_range: Optional[DateRange] = None) -> List[Payment]:
        with self._session_factory() as session:
            query = (
                select(PaymentModel, ContractModel.periodicity)
                .join(ContractModel, ContractModel.id == PaymentModel.contract_id)
                .where(ContractModel.owner_token == owner_token)
                .order_by(PaymentModel.created_at.asc())
            )
            if date_range is not None:
                query = query.where(
                    PaymentModel.created_at >= datetime.combine(date_range.start, datetime.min.time()),
                    PaymentModel.created_at <= datetime.combine(date_range.end, datetime.max.time()),
                )
            return [
                self._to_payment(row, Periodicity(periodicity))
                for row, periodicity in session.execute(query).all()
            ]

    # -- cash entries ------------------------------------------------------

    def add_cash_entry(self, owner_token: str, entry: CashEntry) -> CashEntry:
        entry_id = entry.id or uuid4().hex
        with self._session_factory() as session:
            session.add(
                CashEntryModel(
                    id=entry_id,
                    owner_token=owner_token,
                    description=entry.description,
                    amount=entry.amount,
                    entry_date=entry.entry_date,
                    flow=entry.flow.value,
                    kind=entry.kind.value,
                    status=entry.status.value,
                    category=entry.category,
                )
            )
            session.commit()
        return CashEntry(
            description=entry.description,
            amount=entry.amount,
            entry_date=entry.entry_date,
            flow=entry.flow,
            kind=entry.kind,
            status=entry.status,
            category=entry.category,
            id=entry_id,
        )

    def list_cash_entries(self, owner_token: str) -> List[CashEntry]:
        with self._session_factory() as session:
            rows = session.execute(
                select(CashEntryModel)
                .where(CashEntryModel.owner_token == owner_token)
                .order_by(CashEntryModel.entry_date.asc())
            ).scalars()
            return [
                CashEntry(
                    description=row.description,
                    amount=_money(row.amount),
                    entry_date=row.entry_date,
                    flow=CashFlow(row.flow),
                    kind=CashEntryKind(row.kind),
                    status=CashEntryStatus(row.status),
                    category=row.category,
                    id=row.id,
                )
                for row in rows
            ]

    # -- helpers -----------------------------------------------------------

    def _load(self, session, owner_token: str, contract_id: str, for_update: bool = False) -> ContractModel:
        query = select(ContractModel).where(
            ContractModel.id == contract_id,
            ContractModel.owner_token == owner_token,
        )
        if for_update:
            query = query.with_for_update()
        row = session.execute(query).scalars().first()
        if row is None:
            raise ContractNotFound(f"Contract {contract_id} not found")
        return row

    def _refresh(self, contract: Contract, today: date) -> Contract:
        if contract.status is ContractStatus.SETTLED:
            return contract
        if self._late_fee_percent:
            contract = accrue_installment_fees(contract, today, self._late_fee_percent)
        status = derive_status(contract, today)
        if status is contract.status:
            return contract
        return replace(contract, status=status)

    @staticmethod
    def _ensure_open(contract: Contract) -> None:
        if contract.status is ContractStatus.SETTLED:
            raise InvalidState(f"Contract {contract.id} is already settled")

    def _persist_payment(self, session, row: ContractModel, contract: Contract, payment: Payment) -> None:
        self._write_back(row, contract)
        session.add(
            PaymentModel(
                id=payment.id,
                contract_id=row.id,
                amount_paid=payment.amount_paid,
                allocated_fee=payment.allocated_fee,
                allocated_interest=payment.allocated_interest,
                allocated_principal=payment.allocated_principal,
                kind=payment.kind.value,
                note=payment.note,
                recorded_by=payment.recorded_by,
                created_at=payment.created_at,
            )
        )

    @staticmethod
    def _write_back(row: ContractModel, contract: Contract) -> None:
        row.open_principal = contract.open_principal
        row.accrued_fee = contract.accrued_fee
        row.due_date = contract.due_date
        row.status = contract.status.value
        by_number = {i.sequence_number: i for i in contract.installments}
        for inst_row in row.installments:
            inst = by_number.get(inst_row.sequence_number)
            if inst is not None:
                inst_row.amount = inst.amount
                inst_row.fee = inst.fee
                inst_row.fee_paid = inst.fee_paid
                inst_row.status = inst.status.value

    @staticmethod
    def _to_payment(row: PaymentModel, periodicity: Periodicity) -> Payment:
        return Payment(
            amount_paid=_money(row.amount_paid),
            allocated_fee=_money(row.allocated_fee),
            allocated_interest=_money(row.allocated_interest),
            allocated_principal=_money(row.allocated_principal),
            kind=PaymentKind(row.kind),
            created_at=row.created_at,
            note=row.note or "",
            id=row.id,
            contract_id=row.contract_id,
            periodicity=periodicity,
            recorded_by=row.recorded_by,
        )

    def _to_contract(self, row: ContractModel) -> Contract:
        periodicity = Periodicity(row.periodicity)
        return Contract(
            principal=_money(row.principal),
            open_principal=_money(row.open_principal),
            interest_rate_percent=_rate(row.interest_rate_percent),
            periodicity=periodicity,
            due_date=row.due_date,
            accrued_fee=_money(row.accrued_fee),
            status=ContractStatus(row.status),
            installments=[
                Installment(
                    sequence_number=i.sequence_number,
                    amount=_money(i.amount),
                    fee=_money(i.fee),
                    due_date=i.due_date,
                    status=InstallmentStatus(i.status),
                    fee_paid=_money(i.fee_paid),
                )
                for i in row.installments
            ],
            payments=[self._to_payment(p, periodicity) for p in row.payments],
            id=row.id,
            client_name=row.client_name or "",
            notes=row.notes or "",
            created_at=row.created_at,
        )


def create_store_from_env(url: str | None, late_fee_percent: Decimal = Decimal("0")) -> LedgerStore:
    return LedgerStore(url or "sqlite:///ledger_data.sqlite3", late_fee_percent=late_fee_percent)

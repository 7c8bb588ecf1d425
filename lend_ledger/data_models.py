"""Data models for the lending ledger.

This module defines dataclasses representing the entities the ledger works
with: contracts, their installments, historical payments and manual cash-flow
entries, along with the value objects produced by the computation functions
(allocation results, balance rows and dashboard summaries). All money fields
are ``Decimal`` values rounded to cents.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from .utils import ZERO


class Periodicity(str, Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"

    @property
    def is_installment_based(self) -> bool:
        return self is not Periodicity.MONTHLY


class ContractStatus(str, Enum):
    OPEN = "OPEN"
    OVERDUE = "OVERDUE"
    SETTLED = "SETTLED"
    PERSONAL_COLLECTION = "PERSONAL_COLLECTION"


class InstallmentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class PaymentKind(str, Enum):
    INTEREST = "INTEREST"
    PRINCIPAL = "PRINCIPAL"
    MIXED = "MIXED"


class CashEntryKind(str, Enum):
    FIXED = "FIXED"
    INSTALLMENT = "INSTALLMENT"
    VARIABLE = "VARIABLE"


class CashFlow(str, Enum):
    IN = "IN"
    OUT = "OUT"


class CashEntryStatus(str, Enum):
    PENDING = "PENDING"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


@dataclass
class Installment:
    """One scheduled slice of principal for a DAILY or WEEKLY contract.

    Attributes
    ----------
    sequence_number: int
        1-based ordinal, unique within the contract.
    amount: Decimal
        The principal due with this installment.
    fee: Decimal
        Penalty still owed on this installment.
    fee_paid: Decimal
        Penalty already paid off by free-amount payments; late-fee accrual
        counts it as charged.
    """

    sequence_number: int
    amount: Decimal
    due_date: date
    fee: Decimal = ZERO
    status: InstallmentStatus = InstallmentStatus.PENDING
    fee_paid: Decimal = ZERO

    @property
    def total_due(self) -> Decimal:
        return self.amount + self.fee


@dataclass
class Payment:
    """An immutable receipt of money paid against a contract.

    ``allocated_fee + allocated_interest + allocated_principal`` always equals
    ``amount_paid``. ``kind`` is a label only and plays no part in the
    allocation math.
    """

    amount_paid: Decimal
    allocated_fee: Decimal
    allocated_interest: Decimal
    allocated_principal: Decimal
    kind: PaymentKind
    created_at: datetime
    note: str = ""
    id: Optional[str] = None
    contract_id: Optional[str] = None
    periodicity: Optional[Periodicity] = None  # of the owning contract
    recorded_by: Optional[str] = None


@dataclass
class Contract:
    """One loan extended to a client.

    ``principal`` never changes after creation. ``open_principal`` only
    decreases through allocated principal payments and ``accrued_fee`` grows
    while the contract is late.
    """

    principal: Decimal
    open_principal: Decimal
    interest_rate_percent: Decimal
    periodicity: Periodicity
    due_date: date
    accrued_fee: Decimal = ZERO
    status: ContractStatus = ContractStatus.OPEN
    installments: List[Installment] = field(default_factory=list)
    payments: List[Payment] = field(default_factory=list)
    id: Optional[str] = None
    client_name: str = ""
    notes: str = ""
    created_at: Optional[datetime] = None

    @property
    def pending_installments(self) -> List[Installment]:
        return [i for i in self.installments if i.status is InstallmentStatus.PENDING]

    @property
    def is_settled(self) -> bool:
        return self.status is ContractStatus.SETTLED


@dataclass(frozen=True)
class AllocationState:
    """Outstanding balances a payment is allocated against."""

    open_principal: Decimal
    accrued_fee: Decimal
    interest_due: Decimal

    @property
    def total(self) -> Decimal:
        return self.accrued_fee + self.interest_due + self.open_principal


@dataclass(frozen=True)
class Allocation:
    """The split of one payment across fee, interest and principal."""

    amount_paid: Decimal
    fee_paid: Decimal
    interest_paid: Decimal
    principal_paid: Decimal
    new_state: AllocationState

    @property
    def settled(self) -> bool:
        return self.new_state.open_principal == 0 and self.new_state.accrued_fee == 0


@dataclass(frozen=True)
class InstallmentPayment:
    """Result of paying a batch of selected installments."""

    allocation: Allocation
    installments: List[Installment]
    paid_sequence_numbers: List[int]


@dataclass(frozen=True)
class BalanceRow:
    """A historical payment together with the principal balance around it."""

    payment: Payment
    balance_before: Decimal
    balance_after: Decimal


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of calendar dates."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"Date range start {self.start} is after end {self.end}")

    def contains(self, value) -> bool:
        if isinstance(value, datetime):
            value = value.date()
        return self.start <= value <= self.end


@dataclass
class SummaryBucket:
    """Dashboard figures for one periodicity.

    ``installments_receivable`` is the principal still owed on pending
    installments; their fees are part of ``fees_receivable``.
    """

    periodicity: Periodicity
    lent: Decimal = ZERO
    interest_receivable: Decimal = ZERO
    installments_receivable: Decimal = ZERO
    fees_receivable: Decimal = ZERO
    expected: Decimal = ZERO
    received: Decimal = ZERO
    active_contracts: int = 0

    def __add__(self, other: "SummaryBucket") -> "SummaryBucket":
        if other.periodicity is not self.periodicity:
            raise ValueError("Cannot add buckets of different periodicity")
        return SummaryBucket(
            periodicity=self.periodicity,
            lent=self.lent + other.lent,
            interest_receivable=self.interest_receivable + other.interest_receivable,
            installments_receivable=self.installments_receivable + other.installments_receivable,
            fees_receivable=self.fees_receivable + other.fees_receivable,
            expected=self.expected + other.expected,
            received=self.received + other.received,
            active_contracts=self.active_contracts + other.active_contracts,
        )


@dataclass
class Summary:
    """Dashboard totals over a date range, split by periodicity bucket.

    The top-level figures are derived from the buckets plus the fee portion of
    the payments received, so two summaries over disjoint contract sets can be
    added together.
    """

    date_range: DateRange
    buckets: Dict[Periodicity, SummaryBucket]
    received_fees: Decimal = ZERO

    @property
    def total_lent(self) -> Decimal:
        return sum((b.lent for b in self.buckets.values()), ZERO)

    @property
    def interest_receivable(self) -> Decimal:
        return sum((b.interest_receivable for b in self.buckets.values()), ZERO)

    @property
    def installments_receivable(self) -> Decimal:
        return sum((b.installments_receivable for b in self.buckets.values()), ZERO)

    @property
    def fees_receivable(self) -> Decimal:
        return sum((b.fees_receivable for b in self.buckets.values()), ZERO)

    @property
    def interest_and_fees_receivable(self) -> Decimal:
        return self.interest_receivable + self.installments_receivable + self.fees_receivable

    @property
    def expected_installments(self) -> Decimal:
        return sum(
            (b.expected for p, b in self.buckets.items() if p.is_installment_based),
            ZERO,
        )

    @property
    def expected_monthly(self) -> Decimal:
        return self.buckets[Periodicity.MONTHLY].expected

    @property
    def total_expected(self) -> Decimal:
        return self.expected_installments + self.expected_monthly

    @property
    def received_installments(self) -> Decimal:
        return sum(
            (b.received for p, b in self.buckets.items() if p.is_installment_based),
            ZERO,
        )

    @property
    def received_monthly(self) -> Decimal:
        return self.buckets[Periodicity.MONTHLY].received

    @property
    def total_received(self) -> Decimal:
        return self.received_installments + self.received_monthly + self.received_fees

    def __add__(self, other: "Summary") -> "Summary":
        if other.date_range != self.date_range:
            raise ValueError("Cannot add summaries over different date ranges")
        return Summary(
            date_range=self.date_range,
            buckets={p: self.buckets[p] + other.buckets[p] for p in Periodicity},
            received_fees=self.received_fees + other.received_fees,
        )


@dataclass
class CashEntry:
    """A manual cash-flow entry: an expense or an income outside contracts."""

    description: str
    amount: Decimal
    entry_date: date
    flow: CashFlow = CashFlow.OUT
    kind: CashEntryKind = CashEntryKind.VARIABLE
    status: CashEntryStatus = CashEntryStatus.DONE
    category: Optional[str] = None
    id: Optional[str] = None


@dataclass(frozen=True)
class CashFlowSummary:
    """Cash in and out for a period, contract receipts included."""

    total_in: Decimal
    total_out: Decimal
    balance: Decimal
    cumulative_balance: Decimal
    manual_in: Decimal
    received_installments: Decimal
    received_monthly: Decimal
    received_fees: Decimal
    entry_count: int

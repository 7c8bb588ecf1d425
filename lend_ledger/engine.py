"""Core calculation engine for the lending ledger.

This module holds the money math that every presentation surface relies on:
the per-cycle interest and late-fee calculator, the installment schedule
generator used when a contract is created, and the payment allocator that
splits a payment across fee, interest and principal. All functions are pure;
they return new values and never mutate the contracts passed in, leaving
persistence to the caller.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from .data_models import (
    Allocation,
    AllocationState,
    Contract,
    ContractStatus,
    Installment,
    InstallmentPayment,
    InstallmentStatus,
    Payment,
    PaymentKind,
    Periodicity,
)
from .exceptions import InvalidAmount, InvalidState, RoundingInvariantViolation
from .utils import ZERO, MoneyInput, add_days, add_months, round_money, to_money, to_percent

# installment count and cycle length in days
SCHEDULE_RULES: Dict[Periodicity, Tuple[int, int]] = {
    Periodicity.DAILY: (20, 1),
    Periodicity.WEEKLY: (4, 7),
}


def _non_negative(value: MoneyInput, name: str) -> Decimal:
    amount = to_money(value)
    if amount < 0:
        raise InvalidAmount(f"{name} must not be negative; got {amount}")
    return amount


def _check_state(state: AllocationState) -> None:
    for name in ("open_principal", "accrued_fee", "interest_due"):
        if getattr(state, name) < 0:
            raise InvalidState(f"{name} must not be negative; got {getattr(state, name)}")


# ---------------------------------------------------------------------------
# Interest & fee calculator
# ---------------------------------------------------------------------------


def cycle_interest_due(principal: MoneyInput, interest_rate_percent: MoneyInput) -> Decimal:
    """Return the interest owed for one cycle.

    Interest is always charged on the original ``principal``, not on the
    declining balance. For MONTHLY contracts this is the renewal amount.
    """
    base = _non_negative(principal, "principal")
    rate = to_percent(interest_rate_percent, "interest rate")
    return round_money(base * rate / Decimal(100))


def late_fee(base_amount: MoneyInput, fee_rate_percent: MoneyInput, days_late: int) -> Decimal:
    """Return the penalty accrued on ``base_amount`` after ``days_late`` days.

    The penalty is simple daily interest: ``base × rate / 100 × days``.
    """
    base = _non_negative(base_amount, "base amount")
    rate = to_percent(fee_rate_percent, "fee rate")
    if days_late <= 0:
        return ZERO
    return round_money(base * rate / Decimal(100) * days_late)


def days_overdue(due_date: date, today: date) -> int:
    """Number of whole days ``today`` is past ``due_date`` (never negative)."""
    return max((today - due_date).days, 0)


def next_due_date(due_date: date, periodicity: Periodicity) -> date:
    """Return the due date one cycle after ``due_date``."""
    periodicity = Periodicity(periodicity)
    if periodicity is Periodicity.MONTHLY:
        return add_months(due_date, 1)
    return add_days(due_date, SCHEDULE_RULES[periodicity][1])


def contract_state(contract: Contract) -> AllocationState:
    """Return the balances a payment against ``contract`` is allocated over.

    MONTHLY contracts owe a full cycle of interest until it is paid and the
    cycle renews. Installment contracts owe the same interest once over their
    whole life, less what earlier payments already allocated to interest.
    """
    if contract.open_principal == 0:
        interest = ZERO
    elif contract.periodicity.is_installment_based:
        charged = cycle_interest_due(contract.principal, contract.interest_rate_percent)
        paid = sum((p.allocated_interest for p in contract.payments), ZERO)
        interest = max(charged - paid, ZERO)
    else:
        interest = cycle_interest_due(contract.principal, contract.interest_rate_percent)
    return AllocationState(
        open_principal=contract.open_principal,
        accrued_fee=contract.accrued_fee,
        interest_due=interest,
    )


def cycle_amount(contract: Contract) -> Decimal:
    """Amount that renews a cycle: current interest plus accrued fee."""
    state = contract_state(contract)
    return state.interest_due + state.accrued_fee


def quote(contract: Contract) -> Dict[str, Decimal]:
    """Amounts offered to the user before a payment is submitted."""
    state = contract_state(contract)
    return {
        "open_principal": state.open_principal,
        "interest_due": state.interest_due,
        "accrued_fee": state.accrued_fee,
        "cycle_amount": state.interest_due + state.accrued_fee,
        "payoff_amount": payoff_amount(state),
    }


def derive_status(contract: Contract, today: date) -> ContractStatus:
    """Derive a contract's status from its balances and due dates."""
    if contract.open_principal == 0 and contract.accrued_fee == 0:
        return ContractStatus.SETTLED
    if contract.status is ContractStatus.PERSONAL_COLLECTION:
        return ContractStatus.PERSONAL_COLLECTION
    if contract.due_date < today:
        return ContractStatus.OVERDUE
    if any(i.due_date < today for i in contract.pending_installments):
        return ContractStatus.OVERDUE
    return ContractStatus.OPEN


def accrue_installment_fees(contract: Contract, today: date, fee_rate_percent: MoneyInput) -> Contract:
    """Bring the late fees of overdue installments up to date.

    Each PENDING installment past its due date is charged
    ``late_fee(amount, rate, days_overdue)`` in total, counting fees already
    paid off; only the part not yet charged is added to the installment and
    to the contract's accrued fee, so calling this repeatedly on the same day
    is harmless.
    """
    if not contract.periodicity.is_installment_based:
        return contract
    increments = ZERO
    installments: List[Installment] = []
    for inst in contract.installments:
        if inst.status is InstallmentStatus.PENDING:
            target = late_fee(inst.amount, fee_rate_percent, days_overdue(inst.due_date, today))
            charged = inst.fee + inst.fee_paid
            if target > charged:
                increments += target - charged
                inst = replace(inst, fee=inst.fee + target - charged)
        installments.append(inst)
    updated = replace(
        contract,
        installments=installments,
        accrued_fee=contract.accrued_fee + increments,
    )
    return replace(updated, status=derive_status(updated, today))


# ---------------------------------------------------------------------------
# Installment schedule generator
# ---------------------------------------------------------------------------


def generate_schedule(principal: MoneyInput, periodicity: Periodicity, start_date: date) -> List[Installment]:
    """Split ``principal`` into the installments of a new contract.

    DAILY contracts get 20 daily installments and WEEKLY contracts 4 weekly
    ones, the first falling one cycle after ``start_date``. MONTHLY contracts
    renew instead of amortizing and get no installments. Any rounding
    remainder goes to the last installment so the amounts add up to
    ``principal`` exactly.
    """
    amount = to_money(principal)
    if amount <= 0:
        raise InvalidAmount(f"Principal must be positive; got {amount}")
    periodicity = Periodicity(periodicity)
    if periodicity not in SCHEDULE_RULES:
        return []

    count, cycle_days = SCHEDULE_RULES[periodicity]
    slice_amount = round_money(amount / Decimal(count))
    installments = [
        Installment(
            sequence_number=seq,
            amount=slice_amount,
            due_date=add_days(start_date, seq * cycle_days),
        )
        for seq in range(1, count + 1)
    ]
    remainder = amount - slice_amount * count
    if remainder:
        last = installments[-1]
        installments[-1] = replace(last, amount=last.amount + remainder)

    total = sum((i.amount for i in installments), ZERO)
    if total != amount:
        raise RoundingInvariantViolation(f"Schedule sums to {total}, expected {amount}")
    return installments


def create_contract(
    principal: MoneyInput,
    interest_rate_percent: MoneyInput,
    periodicity: Periodicity,
    start_date: date,
    *,
    contract_id: Optional[str] = None,
    client_name: str = "",
    notes: str = "",
    created_at: Optional[datetime] = None,
) -> Contract:
    """Build a new contract with its full installment schedule."""
    periodicity = Periodicity(periodicity)
    amount = to_money(principal)
    rate = to_percent(interest_rate_percent, "interest rate")
    installments = generate_schedule(amount, periodicity, start_date)
    if installments:
        due_date = installments[0].due_date
    else:
        due_date = next_due_date(start_date, periodicity)
    return Contract(
        principal=amount,
        open_principal=amount,
        interest_rate_percent=rate,
        periodicity=periodicity,
        due_date=due_date,
        installments=installments,
        id=contract_id,
        client_name=client_name,
        notes=notes,
        created_at=created_at,
    )


# ---------------------------------------------------------------------------
# Payment allocator
# ---------------------------------------------------------------------------


def allocate(amount_paid: MoneyInput, state: AllocationState) -> Allocation:
    """Split ``amount_paid`` over the balances in ``state``.

    The precedence is fixed: accrued fee first, then the current cycle's
    interest, then open principal. Each step is capped by what is left of the
    payment and by the balance it pays down.

    Raises
    ------
    InvalidAmount
        If the amount is not positive or exceeds everything outstanding.
    InvalidState
        If any balance in ``state`` is negative.
    """
    amount = to_money(amount_paid)
    if amount <= 0:
        raise InvalidAmount(f"Payment amount must be positive; got {amount}")
    _check_state(state)
    if amount > state.total:
        raise InvalidAmount(f"Payment of {amount} exceeds the outstanding {state.total}")

    remaining = amount
    fee_paid = min(remaining, state.accrued_fee)
    remaining -= fee_paid
    interest_paid = min(remaining, state.interest_due)
    remaining -= interest_paid
    principal_paid = min(remaining, state.open_principal)

    return Allocation(
        amount_paid=amount,
        fee_paid=fee_paid,
        interest_paid=interest_paid,
        principal_paid=principal_paid,
        new_state=AllocationState(
            open_principal=state.open_principal - principal_paid,
            accrued_fee=state.accrued_fee - fee_paid,
            interest_due=state.interest_due - interest_paid,
        ),
    )


def payoff_amount(state: AllocationState) -> Decimal:
    """The exact amount that clears fee, interest and principal at once."""
    return state.accrued_fee + state.interest_due + state.open_principal


def payoff(state: AllocationState) -> Allocation:
    """Allocate the payoff amount and check that nothing is left over."""
    allocation = allocate(payoff_amount(state), state)
    residual = allocation.new_state
    if residual.open_principal or residual.accrued_fee or residual.interest_due:
        raise RoundingInvariantViolation(f"Payoff left a residual balance: {residual}")
    return allocation


def pay_installments(contract: Contract, sequence_numbers: Iterable[int]) -> InstallmentPayment:
    """Pay any subset of a contract's pending installments in one batch.

    The amount paid is the sum of ``amount + fee`` of the selected
    installments. Fees are cleared first and the principal falls by exactly
    the selected installments' amounts. A batch that clears the remaining
    principal also carries the interest still owed on the contract.
    """
    if not contract.periodicity.is_installment_based:
        raise InvalidState(f"{contract.periodicity.value} contracts have no installments")
    selected = sorted(set(sequence_numbers))
    if not selected:
        raise InvalidAmount("No installments selected for payment")

    by_number = {i.sequence_number: i for i in contract.installments}
    chosen: List[Installment] = []
    for number in selected:
        inst = by_number.get(number)
        if inst is None:
            raise InvalidState(f"Installment {number} does not exist")
        if inst.status is InstallmentStatus.PAID:
            raise InvalidState(f"Installment {number} is already paid")
        chosen.append(inst)

    principal_due = sum((i.amount for i in chosen), ZERO)
    fees_due = sum((i.fee for i in chosen), ZERO)
    if principal_due > contract.open_principal:
        raise InvalidState(
            f"Selected installments ({principal_due}) exceed open principal ({contract.open_principal})"
        )
    if fees_due > contract.accrued_fee:
        raise InvalidState(
            f"Selected installment fees ({fees_due}) exceed accrued fee ({contract.accrued_fee})"
        )

    interest_due = contract_state(contract).interest_due
    interest = interest_due if principal_due == contract.open_principal else ZERO
    batch = allocate(
        principal_due + fees_due + interest,
        AllocationState(open_principal=contract.open_principal, accrued_fee=fees_due, interest_due=interest),
    )
    allocation = Allocation(
        amount_paid=batch.amount_paid,
        fee_paid=batch.fee_paid,
        interest_paid=batch.interest_paid,
        principal_paid=batch.principal_paid,
        new_state=AllocationState(
            open_principal=contract.open_principal - batch.principal_paid,
            accrued_fee=contract.accrued_fee - batch.fee_paid,
            interest_due=interest_due - batch.interest_paid,
        ),
    )
    installments = [
        replace(i, status=InstallmentStatus.PAID) if i.sequence_number in selected else i
        for i in contract.installments
    ]
    return InstallmentPayment(
        allocation=allocation,
        installments=installments,
        paid_sequence_numbers=selected,
    )


def spread_payment(
    installments: Iterable[Installment], fee_paid: Decimal, principal_paid: Decimal
) -> List[Installment]:
    """Apply a free-amount payment to pending installments.

    Fees are paid down first, then amounts, both in ascending sequence
    number. An installment whose fee and amount are both covered is marked
    PAID and keeps its amount; a partly covered one has its ``fee`` and
    ``amount`` lowered to what is still owed. Afterwards the pending
    installments add up to the contract's remaining principal and fee.
    """
    ordered = sorted(installments, key=lambda i: i.sequence_number)
    fee_left = fee_paid
    principal_left = principal_paid
    reduced: Dict[int, Tuple[Decimal, Decimal]] = {}
    for inst in ordered:
        if inst.status is InstallmentStatus.PENDING:
            cut = min(fee_left, inst.fee)
            fee_left -= cut
            reduced[inst.sequence_number] = (inst.amount, inst.fee - cut)
    for inst in ordered:
        if inst.sequence_number in reduced:
            amount, fee = reduced[inst.sequence_number]
            cut = min(principal_left, amount)
            principal_left -= cut
            reduced[inst.sequence_number] = (amount - cut, fee)

    result: List[Installment] = []
    for inst in ordered:
        if inst.sequence_number not in reduced:
            result.append(inst)
            continue
        amount, fee = reduced[inst.sequence_number]
        if amount == 0 and fee == 0:
            result.append(replace(inst, status=InstallmentStatus.PAID))
        else:
            result.append(replace(inst, amount=amount, fee=fee, fee_paid=inst.fee_paid + inst.fee - fee))
    return result


def classify_payment(allocation: Allocation) -> PaymentKind:
    """Label a payment by what it paid down."""
    if allocation.principal_paid == 0:
        return PaymentKind.INTEREST
    if allocation.fee_paid == 0 and allocation.interest_paid == 0:
        return PaymentKind.PRINCIPAL
    return PaymentKind.MIXED


def build_payment(
    allocation: Allocation,
    created_at: datetime,
    *,
    contract: Optional[Contract] = None,
    kind: Optional[PaymentKind] = None,
    note: str = "",
    payment_id: Optional[str] = None,
    recorded_by: Optional[str] = None,
) -> Payment:
    """Turn an allocation into the payment record that gets persisted."""
    return Payment(
        amount_paid=allocation.amount_paid,
        allocated_fee=allocation.fee_paid,
        allocated_interest=allocation.interest_paid,
        allocated_principal=allocation.principal_paid,
        kind=kind or classify_payment(allocation),
        created_at=created_at,
        note=note,
        id=payment_id,
        contract_id=contract.id if contract else None,
        periodicity=contract.periodicity if contract else None,
        recorded_by=recorded_by,
    )


def apply_allocation(
    contract: Contract,
    allocation: Allocation,
    today: date,
    *,
    installments: Optional[List[Installment]] = None,
    payment: Optional[Payment] = None,
) -> Contract:
    """Return ``contract`` as it stands after ``allocation`` is applied.

    A MONTHLY payment that clears the cycle interest renews the due date by
    one month. On installment contracts a free-amount payment (no
    ``installments`` given) is spread over the pending installments; the due
    date moves to the earliest pending installment, and a settling payment
    marks every remaining installment as paid.
    """
    new_state = allocation.new_state
    if installments is not None:
        items = list(installments)
    elif contract.periodicity.is_installment_based:
        items = spread_payment(contract.installments, allocation.fee_paid, allocation.principal_paid)
    else:
        items = list(contract.installments)
    if allocation.settled:
        items = [replace(i, status=InstallmentStatus.PAID) for i in items]

    due_date = contract.due_date
    if contract.periodicity.is_installment_based:
        pending = [i.due_date for i in items if i.status is InstallmentStatus.PENDING]
        if pending:
            due_date = min(pending)
    elif allocation.interest_paid > 0 and new_state.interest_due == 0 and not allocation.settled:
        due_date = next_due_date(contract.due_date, contract.periodicity)

    payments = list(contract.payments)
    if payment is not None:
        payments.append(payment)

    updated = replace(
        contract,
        open_principal=new_state.open_principal,
        accrued_fee=new_state.accrued_fee,
        due_date=due_date,
        installments=items,
        payments=payments,
    )
    return replace(updated, status=derive_status(updated, today))

"""Dashboard aggregation.

Folds contracts and the payments received over a period into the dashboard
totals (capital lent, interest and fees receivable, amount expected and amount
received) split by periodicity, and combines contract receipts with manual
cash-flow entries into the period's cash-flow summary. Each contract and each
payment contributes independently, so the order of the inputs is irrelevant.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, Optional

from .data_models import (
    CashEntry,
    CashEntryStatus,
    CashFlow,
    CashFlowSummary,
    Contract,
    ContractStatus,
    DateRange,
    Payment,
    Periodicity,
    Summary,
    SummaryBucket,
)
from .engine import contract_state
from .utils import ZERO


def _empty_buckets() -> Dict[Periodicity, SummaryBucket]:
    return {p: SummaryBucket(periodicity=p) for p in Periodicity}


def _payment_periodicity(payment: Payment, periodicity_by_contract: Dict[str, Periodicity]) -> Periodicity:
    if payment.contract_id and payment.contract_id in periodicity_by_contract:
        return periodicity_by_contract[payment.contract_id]
    return payment.periodicity or Periodicity.MONTHLY


def summarize(
    contracts: Iterable[Contract],
    payments_in_range: Iterable[Payment],
    date_range: DateRange,
) -> Summary:
    """Aggregate the dashboard totals for ``date_range``.

    Parameters
    ----------
    contracts: Iterable[Contract]
        Contracts to aggregate. Settled contracts add no receivables but
        still tell which bucket their payments belong to.
    payments_in_range: Iterable[Payment]
        Payments received. Payments dated outside ``date_range`` are ignored.
    date_range: DateRange
        The period obligations and receipts are restricted to.

    Returns
    -------
    Summary
        One bucket per periodicity plus the fee portion of the receipts.
    """
    buckets = _empty_buckets()
    periodicity_by_contract: Dict[str, Periodicity] = {}

    for contract in contracts:
        if contract.id:
            periodicity_by_contract[contract.id] = contract.periodicity
        if contract.status is ContractStatus.SETTLED:
            continue
        bucket = buckets[contract.periodicity]
        state = contract_state(contract)
        bucket.active_contracts += 1
        bucket.lent += contract.open_principal
        bucket.interest_receivable += state.interest_due
        bucket.fees_receivable += contract.accrued_fee

        if contract.periodicity.is_installment_based:
            pending = contract.pending_installments
            bucket.installments_receivable += sum((i.amount for i in pending), ZERO)
            bucket.expected += sum(
                (i.amount + i.fee for i in pending if date_range.contains(i.due_date)),
                ZERO,
            )
            # remaining interest is collected with the last installment
            if pending and date_range.contains(max(i.due_date for i in pending)):
                bucket.expected += state.interest_due
        elif date_range.contains(contract.due_date):
            bucket.expected += state.interest_due + contract.accrued_fee

    received_fees = ZERO
    for payment in payments_in_range:
        if not date_range.contains(payment.created_at):
            continue
        periodicity = _payment_periodicity(payment, periodicity_by_contract)
        buckets[periodicity].received += payment.amount_paid - payment.allocated_fee
        received_fees += payment.allocated_fee

    return Summary(date_range=date_range, buckets=buckets, received_fees=received_fees)


def cash_flow_summary(
    entries: Iterable[CashEntry],
    payments: Iterable[Payment],
    date_range: DateRange,
    contracts: Optional[Iterable[Contract]] = None,
) -> CashFlowSummary:
    """Combine manual cash entries with contract receipts for a period.

    Only entries marked DONE move money. ``cumulative_balance`` covers all
    history up to the end of the range, not just the range itself.
    """
    periodicity_by_contract = {c.id: c.periodicity for c in (contracts or []) if c.id}

    manual_in = manual_out = ZERO
    cumulative = ZERO
    entry_count = 0
    for entry in entries:
        if entry.status is not CashEntryStatus.DONE:
            continue
        signed = entry.amount if entry.flow is CashFlow.IN else -entry.amount
        if entry.entry_date <= date_range.end:
            cumulative += signed
        if not date_range.contains(entry.entry_date):
            continue
        entry_count += 1
        if entry.flow is CashFlow.IN:
            manual_in += entry.amount
        else:
            manual_out += entry.amount

    via_installments = via_monthly = via_fees = ZERO
    for payment in payments:
        paid_on: date = payment.created_at.date()
        if paid_on <= date_range.end:
            cumulative += payment.amount_paid
        if not date_range.contains(paid_on):
            continue
        net = payment.amount_paid - payment.allocated_fee
        if _payment_periodicity(payment, periodicity_by_contract).is_installment_based:
            via_installments += net
        else:
            via_monthly += net
        via_fees += payment.allocated_fee

    total_in = manual_in + via_installments + via_monthly + via_fees
    return CashFlowSummary(
        total_in=total_in,
        total_out=manual_out,
        balance=total_in - manual_out,
        cumulative_balance=cumulative,
        manual_in=manual_in,
        received_installments=via_installments,
        received_monthly=via_monthly,
        received_fees=via_fees,
        entry_count=entry_count,
    )

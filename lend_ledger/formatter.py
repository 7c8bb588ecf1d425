"""Output helpers for the lending ledger.

This module renders installment schedules, payment quotes, allocations,
payment timelines and dashboard summaries in a tabular text format for the
command-line interface. Amounts are formatted with ``format_currency`` in the
configured currency.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, List

from .data_models import Allocation, BalanceRow, CashFlowSummary, Contract, Installment, Summary
from .history import group_by_month
from .utils import format_currency


def print_schedule(installments: Iterable[Installment], currency: str = "BRL") -> None:
    """Print an installment schedule as a simple table."""
    rows = list(installments)
    if not rows:
        print("No installments: the contract renews monthly.")
        return
    print("\t".join(["#", "Due", "Amount", "Fee", "Status"]))
    for inst in rows:
        print(
            "\t".join(
                [
                    str(inst.sequence_number),
                    inst.due_date.isoformat(),
                    format_currency(inst.amount, currency),
                    format_currency(inst.fee, currency),
                    inst.status.value,
                ]
            )
        )
    total = sum((i.amount for i in rows), Decimal("0"))
    print(f"Total principal    : {format_currency(total, currency)}")


def print_quote(contract: Contract, quote: Dict[str, Decimal], currency: str = "BRL") -> None:
    """Print what is owed on a contract right now."""
    print("Contract")
    print("-" * 72)
    if contract.client_name:
        print(f"Client             : {contract.client_name}")
    print(f"Periodicity        : {contract.periodicity.value}")
    print(f"Status             : {contract.status.value}")
    print(f"Due date           : {contract.due_date.isoformat()}")
    print(f"Principal          : {format_currency(contract.principal, currency)}")
    print(f"Open principal     : {format_currency(contract.open_principal, currency)}")
    print(f"Cycle interest     : {format_currency(quote['interest_due'], currency)}")
    # Fee line only when something has accrued
    if quote["accrued_fee"]:
        print(f"Accrued fee        : {format_currency(quote['accrued_fee'], currency)}")
    print(f"Cycle amount       : {format_currency(quote['cycle_amount'], currency)}")
    print(f"Payoff amount      : {format_currency(quote['payoff_amount'], currency)}")
    print("-" * 72)


def print_allocation(allocation: Allocation, currency: str = "BRL") -> None:
    """Print how a payment splits across fee, interest and principal."""
    state = allocation.new_state
    print("Allocation")
    print("-" * 72)
    print(f"Amount paid        : {format_currency(allocation.amount_paid, currency)}")
    print(f"Fee paid           : {format_currency(allocation.fee_paid, currency)}")
    print(f"Interest paid      : {format_currency(allocation.interest_paid, currency)}")
    print(f"Principal paid     : {format_currency(allocation.principal_paid, currency)}")
    print(f"Open principal     : {format_currency(state.open_principal, currency)}")
    print(f"Accrued fee        : {format_currency(state.accrued_fee, currency)}")
    print(f"Interest due       : {format_currency(state.interest_due, currency)}")
    print(f"Settled            : {'Yes' if allocation.settled else 'No'}")
    print("-" * 72)


def print_history(
    rows: List[BalanceRow],
    totals: Dict[str, object],
    currency: str = "BRL",
) -> None:
    """Print a payment timeline with the balance before and after each row.

    Rows are printed in the order given; callers pass them newest first.
    """
    print(f"Payments           : {totals['count']}")
    print(f"Total paid         : {format_currency(totals['total_paid'], currency)}")
    print(f"Total interest     : {format_currency(totals['total_interest'], currency)}")
    print(f"Total principal    : {format_currency(totals['total_principal'], currency)}")
    print(f"Total fee          : {format_currency(totals['total_fee'], currency)}")
    if not rows:
        return
    print("\t".join(["Date", "Kind", "Paid", "Fee", "Interest", "Principal", "Before", "After", "Note"]))
    for month, month_rows in group_by_month(rows).items():
        print(f"-- {month}")
        for row in month_rows:
            p = row.payment
            print(
                "\t".join(
                    [
                        p.created_at.strftime("%Y-%m-%d %H:%M"),
                        p.kind.value,
                        format_currency(p.amount_paid, currency),
                        format_currency(p.allocated_fee, currency),
                        format_currency(p.allocated_interest, currency),
                        format_currency(p.allocated_principal, currency),
                        format_currency(row.balance_before, currency),
                        format_currency(row.balance_after, currency),
                        p.note,
                    ]
                )
            )


def print_summary(summary: Summary, currency: str = "BRL") -> None:
    """Print the dashboard totals in a human-readable format."""
    def fmt(value: Decimal) -> str:
        return format_currency(value, currency)

    buckets = summary.buckets
    print(f"Summary {summary.date_range.start.isoformat()} .. {summary.date_range.end.isoformat()}")
    print("-" * 72)
    print(f"Total lent         : {fmt(summary.total_lent)}")
    for periodicity, bucket in buckets.items():
        print(f"  {periodicity.value.lower():<17}: {fmt(bucket.lent)}")
    print(f"Interest and fees  : {fmt(summary.interest_and_fees_receivable)}")
    print(f"  interest         : {fmt(summary.interest_receivable)}")
    print(f"  installments     : {fmt(summary.installments_receivable)}")
    print(f"  fees             : {fmt(summary.fees_receivable)}")
    print(f"Total expected     : {fmt(summary.total_expected)}")
    print(f"  installments     : {fmt(summary.expected_installments)}")
    print(f"  monthly          : {fmt(summary.expected_monthly)}")
    print(f"Total received     : {fmt(summary.total_received)}")
    print(f"  installments     : {fmt(summary.received_installments)}")
    print(f"  monthly          : {fmt(summary.received_monthly)}")
    print(f"  fees             : {fmt(summary.received_fees)}")
    print("-" * 72)


def print_cash_flow(summary: CashFlowSummary, currency: str = "BRL") -> None:
    """Print the period's cash flow."""
    print("Cash flow")
    print("=" * 72)
    print(f"Total in           : {format_currency(summary.total_in, currency)}")
    print(f"  manual entries   : {format_currency(summary.manual_in, currency)}")
    print(f"  installments     : {format_currency(summary.received_installments, currency)}")
    print(f"  monthly          : {format_currency(summary.received_monthly, currency)}")
    print(f"  fees             : {format_currency(summary.received_fees, currency)}")
    print(f"Total out          : {format_currency(summary.total_out, currency)}")
    print(f"Balance            : {format_currency(summary.balance, currency)}")
    print(f"Cumulative balance : {format_currency(summary.cumulative_balance, currency)}")
    print(f"Manual entries     : {summary.entry_count}")
    print("=" * 72)

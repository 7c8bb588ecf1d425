"""Payment history helpers.

Rebuilds the principal balance before and after every historical payment of a
contract, and computes the filters, totals and month grouping shown next to
the payment timeline.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .data_models import BalanceRow, Payment, PaymentKind
from .exceptions import RoundingInvariantViolation
from .utils import ZERO


def reconstruct_balances(current_open_principal: Decimal, payments: Iterable[Payment]) -> List[BalanceRow]:
    """Return each payment with the open principal just before and after it.

    Payments are walked oldest to newest by ``created_at``. The walk starts
    from the current balance with every historical principal reduction added
    back, and must land on ``current_open_principal`` after the most recent
    payment.
    """
    ordered = sorted(payments, key=lambda p: p.created_at)
    if not ordered:
        return []

    running = current_open_principal + sum((p.allocated_principal for p in ordered), ZERO)
    rows: List[BalanceRow] = []
    for payment in ordered:
        before = running
        running -= payment.allocated_principal
        rows.append(BalanceRow(payment=payment, balance_before=before, balance_after=running))

    if running != current_open_principal:
        raise RoundingInvariantViolation(
            f"Balance walk ended at {running}, expected {current_open_principal}"
        )
    return rows


def newest_first(rows: Iterable[BalanceRow]) -> List[BalanceRow]:
    """Display order; balances are carried over, not recomputed."""
    return sorted(rows, key=lambda r: r.payment.created_at, reverse=True)


def filter_payments(
    payments: Iterable[Payment],
    kind: Optional[PaymentKind] = None,
    search: Optional[str] = None,
) -> List[Payment]:
    """Filter payments by kind and by a case-insensitive note search."""
    result = list(payments)
    if kind is not None:
        kind = PaymentKind(kind)
        result = [p for p in result if p.kind is kind]
    if search and search.strip():
        needle = search.strip().lower()
        result = [p for p in result if needle in (p.note or "").lower()]
    return result


def history_totals(payments: Iterable[Payment]) -> Dict[str, object]:
    """Totals shown above a payment timeline."""
    items = list(payments)
    return {
        "total_paid": sum((p.amount_paid for p in items), ZERO),
        "total_interest": sum((p.allocated_interest for p in items), ZERO),
        "total_principal": sum((p.allocated_principal for p in items), ZERO),
        "total_fee": sum((p.allocated_fee for p in items), ZERO),
        "count": len(items),
    }


def group_by_month(rows: Iterable[BalanceRow]) -> Dict[str, List[BalanceRow]]:
    """Group rows under ``YYYY-MM`` keys, keeping the order they come in."""
    groups: Dict[str, List[BalanceRow]] = {}
    for row in rows:
        groups.setdefault(row.payment.created_at.strftime("%Y-%m"), []).append(row)
    return groups


def payment_timeline(
    current_open_principal: Decimal,
    payments: Iterable[Payment],
    kind: Optional[PaymentKind] = None,
    search: Optional[str] = None,
) -> List[BalanceRow]:
    """Newest-first timeline, optionally filtered.

    Balances are reconstructed over the full history before filtering, so a
    filtered row still shows the balance the contract really had.
    """
    items = list(payments)
    visible = {id(p) for p in filter_payments(items, kind, search)}
    rows = newest_first(reconstruct_balances(current_open_principal, items))
    return [r for r in rows if id(r.payment) in visible]

"""Conversion between wire records and ledger models.

Records arrive from the backend (or from JSON files given to the CLI) as plain
dictionaries whose money values are decimal strings. Keys follow the models'
snake_case names; the camelCase spellings used by the original API are
accepted as well. Encoding goes the other way and always emits money as
strings so no value passes through a binary float.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .data_models import (
    Allocation,
    BalanceRow,
    CashEntry,
    CashEntryKind,
    CashEntryStatus,
    CashFlow,
    CashFlowSummary,
    Contract,
    ContractStatus,
    Installment,
    InstallmentStatus,
    Payment,
    PaymentKind,
    Periodicity,
    Summary,
)
from .utils import ZERO, parse_date, parse_datetime, to_money, to_percent

ALIASES = {
    "open_principal": "openPrincipal",
    "interest_rate_percent": "interestRatePercent",
    "accrued_fee": "accruedFee",
    "due_date": "dueDate",
    "client_name": "clientName",
    "created_at": "createdAt",
    "sequence_number": "sequenceNumber",
    "fee_paid": "feePaid",
    "amount_paid": "amountPaid",
    "allocated_fee": "allocatedFee",
    "allocated_interest": "allocatedInterest",
    "allocated_principal": "allocatedPrincipal",
    "contract_id": "contractId",
    "recorded_by": "recordedBy",
    "entry_date": "entryDate",
}


def _get(data: Mapping[str, Any], key: str, default: Any = None) -> Any:
    if key in data:
        return data[key]
    return data.get(ALIASES.get(key, key), default)


def _require(data: Mapping[str, Any], key: str) -> Any:
    value = _get(data, key)
    if value is None:
        raise ValueError(f"Missing required field: {key}")
    return value


def _money(data: Mapping[str, Any], key: str, default: Optional[Decimal] = None) -> Decimal:
    value = _get(data, key)
    if value is None:
        if default is None:
            raise ValueError(f"Missing required field: {key}")
        return default
    return to_money(value)


def _date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_date(str(value))


def _datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return parse_datetime(str(value))


def installment_from_dict(data: Mapping[str, Any]) -> Installment:
    return Installment(
        sequence_number=int(_require(data, "sequence_number")),
        amount=_money(data, "amount"),
        due_date=_date(_require(data, "due_date")),
        fee=_money(data, "fee", ZERO),
        status=InstallmentStatus(_get(data, "status", InstallmentStatus.PENDING.value)),
        fee_paid=_money(data, "fee_paid", ZERO),
    )


def payment_from_dict(data: Mapping[str, Any]) -> Payment:
    periodicity = _get(data, "periodicity")
    return Payment(
        amount_paid=_money(data, "amount_paid"),
        allocated_fee=_money(data, "allocated_fee", ZERO),
        allocated_interest=_money(data, "allocated_interest", ZERO),
        allocated_principal=_money(data, "allocated_principal", ZERO),
        kind=PaymentKind(_get(data, "kind", PaymentKind.MIXED.value)),
        created_at=_datetime(_require(data, "created_at")),
        note=_get(data, "note") or "",
        id=_get(data, "id"),
        contract_id=_get(data, "contract_id"),
        periodicity=Periodicity(periodicity) if periodicity else None,
        recorded_by=_get(data, "recorded_by"),
    )


def contract_from_dict(data: Mapping[str, Any]) -> Contract:
    """Decode a contract record, including its installments and payments."""
    principal = _money(data, "principal")
    periodicity = Periodicity(_require(data, "periodicity"))
    contract_id = _get(data, "id")
    payments = []
    for item in _get(data, "payments") or []:
        payment = payment_from_dict(item)
        if payment.contract_id is None:
            payment.contract_id = contract_id
        if payment.periodicity is None:
            payment.periodicity = periodicity
        payments.append(payment)
    created_at = _get(data, "created_at")
    return Contract(
        principal=principal,
        open_principal=_money(data, "open_principal", principal),
        interest_rate_percent=to_percent(_require(data, "interest_rate_percent"), "interest rate"),
        periodicity=periodicity,
        due_date=_date(_require(data, "due_date")),
        accrued_fee=_money(data, "accrued_fee", ZERO),
        status=ContractStatus(_get(data, "status", ContractStatus.OPEN.value)),
        installments=[installment_from_dict(i) for i in _get(data, "installments") or []],
        payments=payments,
        id=contract_id,
        client_name=_get(data, "client_name") or "",
        notes=_get(data, "notes") or "",
        created_at=_datetime(created_at) if created_at else None,
    )


def cash_entry_from_dict(data: Mapping[str, Any]) -> CashEntry:
    return CashEntry(
        description=str(_require(data, "description")),
        amount=_money(data, "amount"),
        entry_date=_date(_require(data, "entry_date")),
        flow=CashFlow(_get(data, "flow", CashFlow.OUT.value)),
        kind=CashEntryKind(_get(data, "kind", CashEntryKind.VARIABLE.value)),
        status=CashEntryStatus(_get(data, "status", CashEntryStatus.DONE.value)),
        category=_get(data, "category"),
        id=_get(data, "id"),
    )


def contracts_from_list(items: Iterable[Mapping[str, Any]]) -> List[Contract]:
    return [contract_from_dict(item) for item in items]


def installment_to_dict(inst: Installment) -> Dict[str, Any]:
    return {
        "sequence_number": inst.sequence_number,
        "amount": str(inst.amount),
        "fee": str(inst.fee),
        "fee_paid": str(inst.fee_paid),
        "due_date": inst.due_date.isoformat(),
        "status": inst.status.value,
    }


def payment_to_dict(payment: Payment) -> Dict[str, Any]:
    return {
        "id": payment.id,
        "contract_id": payment.contract_id,
        "amount_paid": str(payment.amount_paid),
        "allocated_fee": str(payment.allocated_fee),
        "allocated_interest": str(payment.allocated_interest),
        "allocated_principal": str(payment.allocated_principal),
        "kind": payment.kind.value,
        "note": payment.note,
        "created_at": payment.created_at.isoformat(),
        "periodicity": payment.periodicity.value if payment.periodicity else None,
        "recorded_by": payment.recorded_by,
    }


def contract_to_dict(contract: Contract, include_payments: bool = True) -> Dict[str, Any]:
    data = {
        "id": contract.id,
        "client_name": contract.client_name,
        "notes": contract.notes,
        "principal": str(contract.principal),
        "open_principal": str(contract.open_principal),
        "interest_rate_percent": str(contract.interest_rate_percent),
        "accrued_fee": str(contract.accrued_fee),
        "periodicity": contract.periodicity.value,
        "due_date": contract.due_date.isoformat(),
        "status": contract.status.value,
        "created_at": contract.created_at.isoformat() if contract.created_at else None,
        "installments": [installment_to_dict(i) for i in contract.installments],
    }
    if include_payments:
        data["payments"] = [payment_to_dict(p) for p in contract.payments]
    return data


def allocation_to_dict(allocation: Allocation) -> Dict[str, Any]:
    state = allocation.new_state
    return {
        "amount_paid": str(allocation.amount_paid),
        "fee_paid": str(allocation.fee_paid),
        "interest_paid": str(allocation.interest_paid),
        "principal_paid": str(allocation.principal_paid),
        "settled": allocation.settled,
        "new_state": {
            "open_principal": str(state.open_principal),
            "accrued_fee": str(state.accrued_fee),
            "interest_due": str(state.interest_due),
        },
    }


def balance_row_to_dict(row: BalanceRow) -> Dict[str, Any]:
    data = payment_to_dict(row.payment)
    data["balance_before"] = str(row.balance_before)
    data["balance_after"] = str(row.balance_after)
    return data


def summary_to_dict(summary: Summary) -> Dict[str, Any]:
    """Encode a summary with the same grouping as the dashboard cards."""
    buckets = summary.buckets
    return {
        "start_date": summary.date_range.start.isoformat(),
        "end_date": summary.date_range.end.isoformat(),
        "total_lent": str(summary.total_lent),
        "lent_by_periodicity": {p.value.lower(): str(b.lent) for p, b in buckets.items()},
        "interest_and_fees_receivable": str(summary.interest_and_fees_receivable),
        "receivable": {
            "interest": str(summary.interest_receivable),
            "installments": str(summary.installments_receivable),
            "fees": str(summary.fees_receivable),
        },
        "total_expected": str(summary.total_expected),
        "expected": {
            "installments": str(summary.expected_installments),
            "monthly": str(summary.expected_monthly),
        },
        "total_received": str(summary.total_received),
        "received": {
            "installments": str(summary.received_installments),
            "monthly": str(summary.received_monthly),
            "fees": str(summary.received_fees),
        },
        "active_contracts": sum(b.active_contracts for b in buckets.values()),
    }


def cash_entry_to_dict(entry: CashEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "description": entry.description,
        "amount": str(entry.amount),
        "entry_date": entry.entry_date.isoformat(),
        "flow": entry.flow.value,
        "kind": entry.kind.value,
        "status": entry.status.value,
        "category": entry.category,
    }


def cash_flow_to_dict(summary: CashFlowSummary) -> Dict[str, Any]:
    return {
        "total_in": str(summary.total_in),
        "total_out": str(summary.total_out),
        "balance": str(summary.balance),
        "cumulative_balance": str(summary.cumulative_balance),
        "manual_in": str(summary.manual_in),
        "contracts": {
            "installments": str(summary.received_installments),
            "monthly": str(summary.received_monthly),
            "fees": str(summary.received_fees),
        },
        "entry_count": summary.entry_count,
    }

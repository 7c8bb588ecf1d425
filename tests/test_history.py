"""Tests for balance reconstruction and timeline helpers."""

from decimal import Decimal

from lend_ledger.data_models import PaymentKind
from lend_ledger.history import (
    filter_payments,
    group_by_month,
    history_totals,
    newest_first,
    payment_timeline,
    reconstruct_balances,
)


class TestReconstructBalances:
    """Tests for rebuilding before/after balances."""

    def test_walks_oldest_to_newest(self, payment_history) -> None:
        rows = reconstruct_balances(Decimal("600.00"), payment_history)

        assert [(r.balance_before, r.balance_after) for r in rows] == [
            (Decimal("1000.00"), Decimal("1000.00")),
            (Decimal("1000.00"), Decimal("800.00")),
            (Decimal("800.00"), Decimal("600.00")),
        ]

    def test_input_order_does_not_matter(self, payment_history) -> None:
        rows = reconstruct_balances(Decimal("600.00"), list(reversed(payment_history)))

        assert rows[0].payment is payment_history[0]
        assert rows[-1].balance_after == Decimal("600.00")

    def test_consecutive_rows_chain(self, payment_history) -> None:
        rows = reconstruct_balances(Decimal("600.00"), payment_history)

        for earlier, later in zip(rows, rows[1:]):
            assert earlier.balance_after == later.balance_before

    def test_empty_history(self) -> None:
        assert reconstruct_balances(Decimal("500.00"), []) == []

    def test_newest_first_keeps_balances(self, payment_history) -> None:
        rows = newest_first(reconstruct_balances(Decimal("600.00"), payment_history))

        assert rows[0].payment is payment_history[-1]
        assert rows[0].balance_after == Decimal("600.00")


class TestTimelineHelpers:
    """Tests for filters, totals and grouping."""

    def test_filter_by_kind(self, payment_history) -> None:
        result = filter_payments(payment_history, kind=PaymentKind.PRINCIPAL)

        assert result == [payment_history[1]]

    def test_search_is_case_insensitive(self, payment_history) -> None:
        result = filter_payments(payment_history, search="  interest ")

        assert result == [payment_history[0], payment_history[2]]

    def test_totals(self, payment_history) -> None:
        totals = history_totals(payment_history)

        assert totals["total_paid"] == Decimal("600")
        assert totals["total_interest"] == Decimal("200")
        assert totals["total_principal"] == Decimal("400")
        assert totals["total_fee"] == Decimal("0")
        assert totals["count"] == 3

    def test_group_by_month(self, payment_history) -> None:
        groups = group_by_month(payment_history_rows(payment_history))

        assert list(groups) == ["2024-03", "2024-04"]
        assert len(groups["2024-04"]) == 2

    def test_filtered_timeline_shows_real_balances(self, payment_history) -> None:
        rows = payment_timeline(Decimal("600.00"), payment_history, kind=PaymentKind.PRINCIPAL)

        assert len(rows) == 1
        assert rows[0].balance_before == Decimal("1000.00")
        assert rows[0].balance_after == Decimal("800.00")


def payment_history_rows(payments):
    return reconstruct_balances(Decimal("600.00"), payments)

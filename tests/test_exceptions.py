"""Tests for custom exception hierarchy."""

from lend_ledger.exceptions import (
    ContractNotFound,
    InvalidAmount,
    InvalidState,
    LendLedgerError,
    RoundingInvariantViolation,
)


class TestExceptionHierarchy:
    """Test exception inheritance chain."""

    def test_base_is_value_error(self) -> None:
        assert isinstance(LendLedgerError("test"), ValueError)

    def test_invalid_amount_is_ledger_error(self) -> None:
        assert isinstance(InvalidAmount("test"), LendLedgerError)

    def test_invalid_state_is_ledger_error(self) -> None:
        assert isinstance(InvalidState("test"), LendLedgerError)

    def test_contract_not_found_is_ledger_error(self) -> None:
        assert isinstance(ContractNotFound("test"), LendLedgerError)

    def test_rounding_violation_is_not_user_error(self) -> None:
        err = RoundingInvariantViolation("test")
        assert isinstance(err, AssertionError)
        assert not isinstance(err, LendLedgerError)

    def test_exception_message(self) -> None:
        err = ContractNotFound("Contract c-1 not found")
        assert str(err) == "Contract c-1 not found"

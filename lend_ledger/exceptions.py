"""Exception hierarchy for the lending ledger.

User-facing errors derive from ``ValueError``, the same type raised for
malformed dates and enum values. The rounding invariant is an internal
assertion and sits outside that tree.
"""


class LendLedgerError(ValueError):
    """Base class for all lending ledger errors."""


class InvalidAmount(LendLedgerError):
    """Raised when a money input is negative, zero where a positive value is
    required, or not a finite number."""


class InvalidState(LendLedgerError):
    """Raised when contract balances are negative or an installment that is
    already paid is submitted again."""


class ContractNotFound(LendLedgerError):
    """Raised when a contract does not exist for the requesting owner."""


class RoundingInvariantViolation(AssertionError):
    """A schedule or payoff did not reconcile to the cent. Signals a bug."""

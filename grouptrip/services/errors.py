"""Custom exception classes for the vacation ledger.

Provides domain-specific exceptions for clear error handling and reporting.
All validation errors are raised before anything is committed.
"""

from decimal import Decimal


class LedgerError(Exception):
    """Base exception for ledger errors."""

    pass


class NotFoundError(LedgerError):
    """Referenced activity, expense, group or member does not exist."""

    def __init__(self, entity: str, entity_id: int | None, detail: str | None = None):
        self.entity = entity
        self.entity_id = entity_id
        message = f"{entity} {entity_id} not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class SplitMismatchError(LedgerError):
    """Split sums diverge from the amount they must reconcile with."""

    def __init__(self, expected: Decimal, actual: Decimal, what: str = "owed amounts"):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Sum of {what} ({actual}) does not match expected amount ({expected})"
        )


class InvalidPayerFlagError(LedgerError):
    """is_payer / paid_amount inconsistency on a split row."""

    pass


class InvalidAmountError(LedgerError):
    """Money amount is negative, non-positive where required, or finer than cents."""

    pass


class InvalidVariantError(LedgerError):
    """Activity subtype fields requested for the wrong (or unknown) variant."""

    pass


class InvalidCoordinatesError(LedgerError):
    """Latitude/longitude out of range or given without its pair."""

    pass


class InvalidDateRangeError(LedgerError):
    """End of a date/time range precedes its start."""

    pass


class BalanceConservationError(LedgerError):
    """Participant balances of an activity do not sum to zero."""

    def __init__(self, activity_id: int, residual: Decimal):
        self.activity_id = activity_id
        self.residual = residual
        super().__init__(
            f"Balances of activity {activity_id} do not sum to zero (residual {residual})"
        )

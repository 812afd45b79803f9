"""Split validator: rejects invalid expense/split submissions before persistence.

Rules:
- Payer flag: is_payer rows carry paid_amount > 0, other rows paid_amount == 0
- Owed amounts are >= 0
- A non-empty split set owes exactly the expense amount (0.01 tolerance)
- A non-empty split set has at least one payer, and what was paid matches
  what is owed exactly at cents precision, so balances of the activity net
  to zero

An empty split set is a draft expense and is accepted as-is.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from grouptrip.services.errors import (
    InvalidAmountError,
    InvalidPayerFlagError,
    SplitMismatchError,
)
from grouptrip.services.money import TOLERANCE, ZERO, qround, to_decimal, within_tolerance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SplitInput:
    """One requested split row.

    Attributes:
        member_id: Group member the row belongs to
        amount: What the member owes for the expense
        is_payer: Whether the member paid toward the expense
        paid_amount: How much the member paid (0 unless is_payer)
    """

    member_id: int
    amount: Decimal = ZERO
    is_payer: bool = False
    paid_amount: Decimal = ZERO

    @classmethod
    def of(cls, member_id: int, amount=ZERO, paid_amount=None) -> "SplitInput":
        """Build a row from plain numbers; a paid_amount makes the member a payer."""
        paid = to_decimal(paid_amount) if paid_amount is not None else ZERO
        return cls(
            member_id=member_id,
            amount=to_decimal(amount),
            is_payer=paid_amount is not None,
            paid_amount=paid,
        )

    def normalized(self) -> "SplitInput":
        """Same row with Decimal amounts."""
        return SplitInput(
            member_id=self.member_id,
            amount=to_decimal(self.amount),
            is_payer=bool(self.is_payer),
            paid_amount=to_decimal(self.paid_amount),
        )


def check_cents(value: Decimal, label: str) -> Decimal:
    """Return value as Decimal, rejecting sub-cent precision instead of rounding it away."""
    value = to_decimal(value)
    if value != qround(value):
        raise InvalidAmountError(f"{label} {value} has more than two decimal places")
    return value


class SplitValidator:
    """Validates split rows and whole split sets for one expense."""

    def __init__(self, tolerance: Decimal = TOLERANCE):
        self.tolerance = tolerance

    def validate_row(self, split: SplitInput) -> None:
        """Validate a single split row (payer flag and owed amount).

        Raises:
            InvalidPayerFlagError: is_payer and paid_amount disagree
            InvalidAmountError: negative or sub-cent amounts
        """
        amount = check_cents(split.amount, "Owed amount")
        paid = check_cents(split.paid_amount, "Paid amount")

        if amount < 0:
            raise InvalidAmountError(
                f"Owed amount for member {split.member_id} must be >= 0, got {amount}"
            )

        if split.is_payer and paid <= 0:
            raise InvalidPayerFlagError(
                f"Member {split.member_id} is flagged as payer but paid_amount is {paid}"
            )
        if not split.is_payer and paid != 0:
            raise InvalidPayerFlagError(
                f"Member {split.member_id} is not a payer but paid_amount is {paid}"
            )

    def validate_set(self, expense_amount: Decimal, splits: Iterable[SplitInput]) -> None:
        """Validate the complete split set of one expense.

        Args:
            expense_amount: Nominal amount of the expense
            splits: Every split row the expense will hold after the mutation

        Raises:
            InvalidPayerFlagError, InvalidAmountError: row-level violations
            SplitMismatchError: sums do not reconcile (carries expected/actual)
            ValueError: the same member appears twice
        """
        splits = list(splits)
        member_ids = [s.member_id for s in splits]
        if len(member_ids) != len(set(member_ids)):
            raise ValueError("Duplicate members found in splits")

        for split in splits:
            self.validate_row(split)

        if not splits:
            return

        expected = qround(expense_amount)
        owed_total = qround(sum((to_decimal(s.amount) for s in splits), ZERO))
        if not within_tolerance(owed_total, expected, self.tolerance):
            logger.error(f"Split mismatch: owed {owed_total} vs expense amount {expected}")
            raise SplitMismatchError(expected=expected, actual=owed_total)

        payers = [s for s in splits if s.is_payer]
        if not payers:
            raise SplitMismatchError(expected=owed_total, actual=ZERO, what="paid amounts")

        paid_total = qround(sum((to_decimal(s.paid_amount) for s in payers), ZERO))
        if paid_total != owed_total:
            logger.error(f"Payment mismatch: paid {paid_total} vs owed {owed_total}")
            raise SplitMismatchError(expected=owed_total, actual=paid_total, what="paid amounts")


__all__ = ["SplitInput", "SplitValidator", "check_cents"]

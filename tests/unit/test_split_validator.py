"""Unit tests for split validation rules."""

from decimal import Decimal

import pytest

from grouptrip.services.errors import (
    InvalidAmountError,
    InvalidPayerFlagError,
    SplitMismatchError,
)
from grouptrip.services.split_validator import SplitInput, SplitValidator, check_cents


def equal_split(amount: str, members: int, payer: int = 1, paid: str | None = None):
    share = Decimal(amount) / members
    return [
        SplitInput.of(member_id, share, paid or amount if member_id == payer else None)
        for member_id in range(1, members + 1)
    ]


class TestSplitInput:
    """Tests for building split rows."""

    def test_of_with_paid_amount_marks_payer(self):
        split = SplitInput.of(1, "30.00", "120.00")
        assert split.is_payer is True
        assert split.paid_amount == Decimal("120.00")

    def test_of_without_paid_amount_is_not_payer(self):
        split = SplitInput.of(2, 30)
        assert split.is_payer is False
        assert split.paid_amount == Decimal("0.00")
        assert split.amount == Decimal("30")

    def test_normalized_converts_floats(self):
        split = SplitInput(3, 12.5, True, 12.5).normalized()
        assert split.amount == Decimal("12.5")
        assert isinstance(split.paid_amount, Decimal)


class TestValidateRow:
    """Payer flag and owed amount rules on one row."""

    @pytest.fixture
    def validator(self):
        return SplitValidator()

    def test_payer_with_zero_paid_amount_rejected(self, validator):
        with pytest.raises(InvalidPayerFlagError, match="flagged as payer"):
            validator.validate_row(SplitInput(1, Decimal("10.00"), True, Decimal("0.00")))

    def test_non_payer_with_paid_amount_rejected(self, validator):
        with pytest.raises(InvalidPayerFlagError, match="not a payer"):
            validator.validate_row(SplitInput(1, Decimal("10.00"), False, Decimal("5.00")))

    def test_negative_owed_amount_rejected(self, validator):
        with pytest.raises(InvalidAmountError, match=">= 0"):
            validator.validate_row(SplitInput(1, Decimal("-1.00")))

    def test_zero_owed_payer_is_valid(self, validator):
        # Paid for everyone, owes nothing
        validator.validate_row(SplitInput.of(1, "0.00", "50.00"))

    def test_sub_cent_amount_rejected(self, validator):
        with pytest.raises(InvalidAmountError, match="decimal places"):
            validator.validate_row(SplitInput.of(1, "10.005"))


class TestValidateSet:
    """Sum reconciliation across a whole split set."""

    @pytest.fixture
    def validator(self):
        return SplitValidator()

    def test_equal_split_accepted(self, validator):
        validator.validate_set(Decimal("120.00"), equal_split("120.00", 4))

    def test_owed_sum_within_tolerance_accepted(self, validator):
        splits = [
            SplitInput.of(1, "30.00", "119.99"),
            SplitInput.of(2, "30.00"),
            SplitInput.of(3, "30.00"),
            SplitInput.of(4, "29.99"),
        ]
        validator.validate_set(Decimal("120.00"), splits)

    def test_owed_sum_outside_tolerance_rejected(self, validator):
        splits = [
            SplitInput.of(1, "30.00", "118.00"),
            SplitInput.of(2, "30.00"),
            SplitInput.of(3, "30.00"),
            SplitInput.of(4, "28.00"),
        ]
        with pytest.raises(SplitMismatchError) as exc_info:
            validator.validate_set(Decimal("120.00"), splits)

        assert exc_info.value.expected == Decimal("120.00")
        assert exc_info.value.actual == Decimal("118.00")

    def test_empty_set_is_a_draft(self, validator):
        validator.validate_set(Decimal("50.00"), [])

    def test_set_without_payer_rejected(self, validator):
        splits = [SplitInput.of(1, "25.00"), SplitInput.of(2, "25.00")]
        with pytest.raises(SplitMismatchError, match="paid amounts"):
            validator.validate_set(Decimal("50.00"), splits)

    def test_paid_total_must_match_owed_total(self, validator):
        splits = [SplitInput.of(1, "25.00", "30.00"), SplitInput.of(2, "25.00")]
        with pytest.raises(SplitMismatchError, match="paid amounts") as exc_info:
            validator.validate_set(Decimal("50.00"), splits)

        assert exc_info.value.expected == Decimal("50.00")
        assert exc_info.value.actual == Decimal("30.00")

    def test_paid_total_has_no_tolerance(self, validator):
        splits = [SplitInput.of(1, "25.00", "50.01"), SplitInput.of(2, "25.00")]
        with pytest.raises(SplitMismatchError, match="paid amounts"):
            validator.validate_set(Decimal("50.00"), splits)

    def test_multiple_payers_accepted(self, validator):
        splits = [
            SplitInput.of(1, "25.00", "60.00"),
            SplitInput.of(2, "25.00", "40.00"),
            SplitInput.of(3, "25.00"),
            SplitInput.of(4, "25.00"),
        ]
        validator.validate_set(Decimal("100.00"), splits)

    def test_duplicate_members_rejected(self, validator):
        splits = [SplitInput.of(1, "25.00", "50.00"), SplitInput.of(1, "25.00")]
        with pytest.raises(ValueError, match="Duplicate members"):
            validator.validate_set(Decimal("50.00"), splits)

    def test_custom_tolerance(self):
        validator = SplitValidator(tolerance=Decimal("0.00"))
        splits = [SplitInput.of(1, "49.99", "49.99")]
        with pytest.raises(SplitMismatchError):
            validator.validate_set(Decimal("50.00"), splits)


class TestCheckCents:
    def test_accepts_whole_cents(self):
        assert check_cents("12.30", "Amount") == Decimal("12.30")

    def test_rejects_fraction_of_cent(self):
        with pytest.raises(InvalidAmountError):
            check_cents(Decimal("0.001"), "Amount")

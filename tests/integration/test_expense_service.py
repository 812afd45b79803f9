"""Integration tests for expense and split mutations."""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from grouptrip.models.expense import ActivityExpenseSplit
from grouptrip.models.participant import ActivityParticipant
from grouptrip.services.activity_service import ActivityService
from grouptrip.services.config import LedgerConfig
from grouptrip.services.errors import (
    InvalidAmountError,
    InvalidPayerFlagError,
    NotFoundError,
    SplitMismatchError,
)
from grouptrip.services.expense_service import ExpenseService
from grouptrip.services.split_validator import SplitInput


async def balance_of(session, activity_id, member_id):
    stmt = select(ActivityParticipant.balance).where(
        ActivityParticipant.activity_id == activity_id,
        ActivityParticipant.group_member_id == member_id,
    )
    return (await session.execute(stmt)).scalar_one()


@pytest.fixture
async def dinner(session, activity, members, participants):
    """120.00 dinner paid by Alice, owed equally by all four."""
    alice = members[0]
    return await ExpenseService(session).create_expense(
        activity.id,
        "Dinner",
        "120.00",
        [SplitInput.of(alice.id, "30.00", "120.00")]
        + [SplitInput.of(m.id, "30.00") for m in members[1:]],
    )


class TestCreateExpense:
    """Tests for create_expense."""

    async def test_default_currency(self, session, dinner):
        assert dinner.currency == "EUR"
        assert dinner.amount == Decimal("120.00")

    async def test_configured_default_currency(self, session, activity, members, participants):
        service = ExpenseService(session, default_currency="USD")
        expense = await service.create_expense(
            activity.id, "Souvenirs", "10.00", [SplitInput.of(members[0].id, "10.00", "10.00")]
        )
        assert expense.currency == "USD"

    async def test_service_built_from_config(self, session, activity, members, participants):
        activity_id, alice_id = activity.id, members[0].id
        service = ExpenseService.from_config(
            session, LedgerConfig(default_currency="GBP", split_tolerance=Decimal("0.00"))
        )

        expense = await service.create_expense(
            activity_id, "Postcards", "4.00", [SplitInput.of(alice_id, "4.00", "4.00")]
        )
        assert expense.currency == "GBP"

        with pytest.raises(SplitMismatchError):
            await service.create_expense(
                activity_id, "Stamps", "4.00", [SplitInput.of(alice_id, "3.99", "3.99")]
            )

    async def test_invalid_currency(self, session, activity, members, participants):
        with pytest.raises(ValueError, match="ISO 4217"):
            await ExpenseService(session).create_expense(
                activity.id, "Souvenirs", "10.00", [], currency="euro"
            )

    async def test_non_positive_amount(self, session, activity, participants):
        with pytest.raises(InvalidAmountError, match="positive"):
            await ExpenseService(session).create_expense(activity.id, "Nothing", "0.00", [])

    async def test_draft_without_splits(self, session, activity, participants):
        expense = await ExpenseService(session).create_expense(activity.id, "Museum", "40.00", [])

        assert expense.paid_by is None
        assert await ExpenseService(session).get_splits(expense.id) == []

    async def test_unknown_activity(self, session):
        with pytest.raises(NotFoundError, match="Activity 404"):
            await ExpenseService(session).create_expense(404, "Ghost", "1.00", [])

    async def test_split_member_must_participate(self, session, activity, members, participants):
        activity_id = activity.id
        alice_id, dave_id = members[0].id, members[3].id
        await ActivityService(session).remove_participant(activity_id, dave_id)

        with pytest.raises(NotFoundError, match="not a participant"):
            await ExpenseService(session).create_expense(
                activity_id,
                "Dinner",
                "20.00",
                [SplitInput.of(alice_id, "10.00", "20.00"), SplitInput.of(dave_id, "10.00")],
            )

    async def test_invalid_payer_flag(self, session, activity, members, participants):
        with pytest.raises(InvalidPayerFlagError):
            await ExpenseService(session).create_expense(
                activity.id,
                "Dinner",
                "20.00",
                [SplitInput(members[0].id, Decimal("20.00"), True, Decimal("0.00"))],
            )


class TestLegacyPaidBy:
    """Single paid_by input is upgraded to a payer split."""

    async def test_paid_by_upgraded(self, session, activity, members, participants):
        alice, bob, _, _ = members
        service = ExpenseService(session)
        expense = await service.create_expense(
            activity.id,
            "Parking",
            "12.00",
            [SplitInput.of(alice.id, "6.00"), SplitInput.of(bob.id, "6.00")],
            paid_by=bob.id,
        )

        splits = {s.group_member_id: s for s in await service.get_splits(expense.id)}
        assert splits[bob.id].is_payer is True
        assert splits[bob.id].paid_amount == Decimal("12.00")
        assert expense.paid_by == bob.id
        assert await balance_of(session, activity.id, bob.id) == Decimal("6.00")
        assert await balance_of(session, activity.id, alice.id) == Decimal("-6.00")

    async def test_payer_splits_override_paid_by(self, session, activity, members, participants):
        alice, bob, _, _ = members
        expense = await ExpenseService(session).create_expense(
            activity.id,
            "Parking",
            "12.00",
            [SplitInput.of(alice.id, "6.00", "12.00"), SplitInput.of(bob.id, "6.00")],
            paid_by=bob.id,
        )

        assert expense.paid_by == alice.id


class TestUpdateExpense:
    """Tests for update_expense and replace_splits."""

    async def test_amount_change_requires_matching_splits(self, session, dinner):
        expense_id = dinner.id

        with pytest.raises(SplitMismatchError) as exc_info:
            await ExpenseService(session).update_expense(expense_id, amount="150.00")

        assert exc_info.value.expected == Decimal("150.00")
        assert exc_info.value.actual == Decimal("120.00")

    async def test_replace_splits_recomputes(self, session, activity, members, dinner):
        alice, bob, carol, dave = members
        service = ExpenseService(session)

        await service.replace_splits(
            dinner.id,
            [
                SplitInput.of(alice.id, "60.00", "60.00"),
                SplitInput.of(bob.id, "60.00", "60.00"),
            ],
        )

        assert await balance_of(session, activity.id, alice.id) == Decimal("0.00")
        assert await balance_of(session, activity.id, carol.id) == Decimal("0.00")
        assert len(await service.get_splits(dinner.id)) == 2

    async def test_amount_and_splits_together(self, session, activity, members, dinner):
        alice, bob, _, _ = members
        service = ExpenseService(session)

        expense = await service.update_expense(
            dinner.id,
            description="Dinner and drinks",
            amount="150.00",
            splits=[SplitInput.of(alice.id, "75.00", "150.00"), SplitInput.of(bob.id, "75.00")],
        )

        assert expense.description == "Dinner and drinks"
        assert await balance_of(session, activity.id, alice.id) == Decimal("75.00")
        total = await service.balances.recompute_activity_cost(activity.id)
        assert total == Decimal("150.00")


class TestSingleSplitMutations:
    """add_split / update_split / delete_split keep the set reconciled."""

    async def test_update_split_that_breaks_sum_is_rejected(self, session, members, dinner):
        expense_id = dinner.id
        bob_id = members[1].id

        with pytest.raises(SplitMismatchError):
            await ExpenseService(session).update_split(expense_id, SplitInput.of(bob_id, "40.00"))

        splits = await ExpenseService(session).get_splits(expense_id)
        assert {s.group_member_id: s.amount for s in splits}[bob_id] == Decimal("30.00")

    async def test_delete_only_payer_rejected(self, session, members, dinner):
        expense_id = dinner.id
        alice_id = members[0].id

        with pytest.raises(SplitMismatchError):
            await ExpenseService(session).delete_split(expense_id, alice_id)

    async def test_add_existing_member_rejected(self, session, members, dinner):
        with pytest.raises(ValueError, match="already has a split"):
            await ExpenseService(session).add_split(dinner.id, SplitInput.of(members[1].id, "0.00"))

    async def test_update_missing_split(self, session, activity, members, participants):
        expense = await ExpenseService(session).create_expense(
            activity.id, "Snacks", "8.00", [SplitInput.of(members[0].id, "8.00", "8.00")]
        )

        with pytest.raises(NotFoundError, match="no split"):
            await ExpenseService(session).update_split(expense.id, SplitInput.of(members[1].id, "1.00"))

    async def test_add_first_split_to_draft(self, session, activity, members, participants):
        alice, bob, _, _ = members
        service = ExpenseService(session)
        expense = await service.create_expense(activity.id, "Wine", "20.00", [])

        await service.add_split(expense.id, SplitInput.of(alice.id, "20.00", "20.00"))

        assert await balance_of(session, activity.id, alice.id) == Decimal("0.00")
        assert (await service.get_expense(expense.id)).paid_by == alice.id

    async def test_delete_last_split_leaves_draft(self, session, activity, members, participants):
        alice = members[0]
        service = ExpenseService(session)
        expense = await service.create_expense(
            activity.id, "Wine", "20.00", [SplitInput.of(alice.id, "20.00", "20.00")]
        )

        await service.delete_split(expense.id, alice.id)

        assert await service.get_splits(expense.id) == []
        assert await balance_of(session, activity.id, alice.id) == Decimal("0.00")
        assert (await service.get_expense(expense.id)).paid_by is None


class TestDelete:
    async def test_delete_removes_splits(self, session, dinner):
        expense_id = dinner.id

        await ExpenseService(session).delete_expense(expense_id)

        count = await session.execute(
            select(func.count())
            .select_from(ActivityExpenseSplit)
            .where(ActivityExpenseSplit.expense_id == expense_id)
        )
        assert count.scalar_one() == 0

    async def test_delete_unknown(self, session):
        with pytest.raises(NotFoundError):
            await ExpenseService(session).delete_expense(12345)

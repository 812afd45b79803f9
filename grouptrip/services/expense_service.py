"""Expense service: expense and split mutations with in-transaction recomputation.

Every mutating method follows the same shape:
1. Lock the owning activity row (SELECT ... FOR UPDATE)
2. Validate the request (split validator, membership checks)
3. Write expense/split rows
4. Recompute activity total_cost and participant balances
5. Commit, or roll back everything if any step raised

Readers therefore never see a split change without the matching totals.
"""

import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from grouptrip.models.activity import Activity
from grouptrip.models.expense import ActivityExpense, ActivityExpenseSplit
from grouptrip.models.participant import ActivityParticipant
from grouptrip.services.balance_service import BalanceService
from grouptrip.services.config import CURRENCY_PATTERN, LedgerConfig
from grouptrip.services.errors import InvalidAmountError, NotFoundError
from grouptrip.services.money import TOLERANCE, ZERO, qround
from grouptrip.services.split_validator import SplitInput, SplitValidator, check_cents

logger = logging.getLogger(__name__)


def _as_input(split: ActivityExpenseSplit) -> SplitInput:
    return SplitInput(
        member_id=split.group_member_id,
        amount=split.amount,
        is_payer=split.is_payer,
        paid_amount=split.paid_amount,
    )


def upgrade_legacy_payer(
    amount: Decimal, splits: List[SplitInput], paid_by: Optional[int]
) -> List[SplitInput]:
    """Turn a legacy single paid_by into a payer split covering what is owed.

    Only applies when no split already carries is_payer; multi-payer splits
    always win over paid_by. With no owed rows the payer covers the amount.
    """
    if paid_by is None or any(s.is_payer for s in splits):
        return splits

    owed_total = qround(sum((s.amount for s in splits), ZERO))
    paid = owed_total if owed_total > ZERO else amount

    upgraded = []
    found = False
    for split in splits:
        if split.member_id == paid_by:
            split = SplitInput(split.member_id, split.amount, True, paid)
            found = True
        upgraded.append(split)
    if not found:
        upgraded.append(SplitInput(paid_by, ZERO, True, paid))
    return upgraded


def largest_payer(splits: Iterable[SplitInput]) -> Optional[int]:
    """Member id mirrored into the deprecated paid_by column."""
    payers = [s for s in splits if s.is_payer]
    if not payers:
        return None
    payers.sort(key=lambda s: (-s.paid_amount, s.member_id))
    return payers[0].member_id


class ExpenseService:
    """Create, edit and delete activity expenses and their splits."""

    def __init__(
        self,
        session: AsyncSession,
        tolerance: Decimal = TOLERANCE,
        default_currency: str = "EUR",
    ):
        """Initialize with database session.

        Args:
            session: AsyncSession for database operations
            tolerance: Split reconciliation tolerance
            default_currency: Currency applied when none is given
        """
        self.session = session
        self.validator = SplitValidator(tolerance)
        self.balances = BalanceService(session, tolerance)
        self.default_currency = default_currency

    @classmethod
    def from_config(cls, session: AsyncSession, config: LedgerConfig) -> "ExpenseService":
        """Build a service using the configured tolerance and default currency."""
        return cls(session, config.split_tolerance, config.default_currency)

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        """Commit on success, roll back everything on any error."""
        try:
            yield
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    async def _lock_activity(self, activity_id: int) -> Activity:
        """Load the activity row with a write lock (serializes writers per activity)."""
        stmt = select(Activity).where(Activity.id == activity_id).with_for_update()
        activity = (await self.session.execute(stmt)).scalar_one_or_none()
        if activity is None:
            logger.error(f"Activity {activity_id} not found")
            raise NotFoundError("Activity", activity_id)
        return activity

    async def _get_expense(self, expense_id: int) -> ActivityExpense:
        expense = await self.session.get(ActivityExpense, expense_id)
        if expense is None:
            logger.error(f"Expense {expense_id} not found")
            raise NotFoundError("Expense", expense_id)
        return expense

    async def _current_splits(self, expense_id: int) -> List[ActivityExpenseSplit]:
        stmt = (
            select(ActivityExpenseSplit)
            .where(ActivityExpenseSplit.expense_id == expense_id)
            .order_by(ActivityExpenseSplit.id)
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def _check_participants(self, activity_id: int, member_ids: Iterable[int]) -> None:
        """Every split member must be a declared participant of the activity."""
        wanted = set(member_ids)
        if not wanted:
            return
        stmt = select(ActivityParticipant.group_member_id).where(
            ActivityParticipant.activity_id == activity_id,
            ActivityParticipant.group_member_id.in_(wanted),
        )
        present = set((await self.session.execute(stmt)).scalars().all())
        missing = sorted(wanted - present)
        if missing:
            logger.error(f"Members {missing} are not participants of activity {activity_id}")
            raise NotFoundError(
                "Participant", missing[0], f"not a participant of activity {activity_id}"
            )

    def _check_expense_fields(self, amount, currency: str) -> Decimal:
        amount = check_cents(amount, "Expense amount")
        if amount <= 0:
            raise InvalidAmountError(f"Expense amount must be positive, got {amount}")
        if not CURRENCY_PATTERN.match(currency):
            raise ValueError(f"Currency '{currency}' is not an ISO 4217 code")
        return amount

    async def _write_splits(self, expense: ActivityExpense, splits: List[SplitInput]) -> None:
        await self.session.execute(
            delete(ActivityExpenseSplit).where(ActivityExpenseSplit.expense_id == expense.id)
        )
        for split in splits:
            self.session.add(
                ActivityExpenseSplit(
                    expense_id=expense.id,
                    group_member_id=split.member_id,
                    amount=split.amount,
                    is_payer=split.is_payer,
                    paid_amount=split.paid_amount,
                )
            )
        expense.paid_by = largest_payer(splits)
        await self.session.flush()

    async def create_expense(
        self,
        activity_id: int,
        description: str,
        amount,
        splits: Iterable[SplitInput],
        currency: Optional[str] = None,
        paid_by: Optional[int] = None,
    ) -> ActivityExpense:
        """Create an expense with its split set.

        Args:
            activity_id: Owning activity
            description: What was bought
            amount: Nominal amount (> 0, cents precision)
            splits: Complete split set (may be empty for a draft)
            currency: ISO 4217 code (default from service configuration)
            paid_by: Legacy single payer; used only when no split is a payer

        Returns:
            Created ActivityExpense

        Raises:
            NotFoundError: activity missing or split member not a participant
            SplitMismatchError, InvalidPayerFlagError, InvalidAmountError
        """
        currency = currency or self.default_currency
        async with self._transaction():
            await self._lock_activity(activity_id)
            amount = self._check_expense_fields(amount, currency)

            splits = upgrade_legacy_payer(amount, [s.normalized() for s in splits], paid_by)
            self.validator.validate_set(amount, splits)
            await self._check_participants(activity_id, [s.member_id for s in splits])

            expense = ActivityExpense(
                activity_id=activity_id,
                description=description,
                amount=amount,
                currency=currency,
            )
            self.session.add(expense)
            await self.session.flush()

            await self._write_splits(expense, splits)
            await self.balances.recompute(activity_id)

        logger.info(
            f"Created expense {expense.id} on activity {activity_id}: "
            f"{amount} {currency} across {len(splits)} splits"
        )
        return expense

    async def update_expense(
        self,
        expense_id: int,
        description: Optional[str] = None,
        amount=None,
        currency: Optional[str] = None,
        splits: Optional[Iterable[SplitInput]] = None,
    ) -> ActivityExpense:
        """Edit expense fields and optionally replace its split set.

        When splits is None the current split set is re-validated against the
        new amount.
        """
        expense = await self._get_expense(expense_id)
        async with self._transaction():
            await self._lock_activity(expense.activity_id)

            new_amount = expense.amount if amount is None else amount
            new_currency = currency or expense.currency
            new_amount = self._check_expense_fields(new_amount, new_currency)

            if splits is None:
                new_splits = [_as_input(s) for s in await self._current_splits(expense_id)]
            else:
                new_splits = [s.normalized() for s in splits]
            self.validator.validate_set(new_amount, new_splits)
            await self._check_participants(expense.activity_id, [s.member_id for s in new_splits])

            if description is not None:
                expense.description = description
            expense.amount = new_amount
            expense.currency = new_currency
            if splits is not None:
                await self._write_splits(expense, new_splits)
            await self.balances.recompute(expense.activity_id)

        logger.info(f"Updated expense {expense_id}")
        return expense

    async def replace_splits(self, expense_id: int, splits: Iterable[SplitInput]) -> List[ActivityExpenseSplit]:
        """Replace the complete split set of an expense."""
        await self.update_expense(expense_id, splits=splits)
        return await self._current_splits(expense_id)

    async def delete_expense(self, expense_id: int) -> None:
        """Delete an expense with its splits and recompute the activity."""
        expense = await self._get_expense(expense_id)
        activity_id = expense.activity_id
        async with self._transaction():
            await self._lock_activity(activity_id)
            await self.session.execute(
                delete(ActivityExpenseSplit).where(ActivityExpenseSplit.expense_id == expense_id)
            )
            await self.session.delete(expense)
            await self.session.flush()
            await self.balances.recompute(activity_id)

        logger.info(f"Deleted expense {expense_id} from activity {activity_id}")

    async def _mutate_split(self, expense_id: int, member_id: int, new_split: Optional[SplitInput]) -> None:
        """Insert, update (new_split given) or delete (None) one member's split row."""
        if new_split is not None:
            new_split = new_split.normalized()
        expense = await self._get_expense(expense_id)
        async with self._transaction():
            await self._lock_activity(expense.activity_id)

            current = {s.group_member_id: s for s in await self._current_splits(expense_id)}
            if new_split is not None:
                self.validator.validate_row(new_split)
            elif member_id not in current:
                logger.error(f"Expense {expense_id} has no split for member {member_id}")
                raise NotFoundError("Split", member_id, f"no split for member on expense {expense_id}")

            resulting = [_as_input(s) for m, s in current.items() if m != member_id]
            if new_split is not None:
                resulting.append(new_split)
            self.validator.validate_set(expense.amount, resulting)
            await self._check_participants(expense.activity_id, [member_id] if new_split else [])

            row = current.get(member_id)
            if new_split is None:
                await self.session.delete(row)
            elif row is None:
                self.session.add(
                    ActivityExpenseSplit(
                        expense_id=expense_id,
                        group_member_id=member_id,
                        amount=new_split.amount,
                        is_payer=new_split.is_payer,
                        paid_amount=new_split.paid_amount,
                    )
                )
            else:
                row.amount = new_split.amount
                row.is_payer = new_split.is_payer
                row.paid_amount = new_split.paid_amount

            expense.paid_by = largest_payer(resulting)
            await self.session.flush()
            await self.balances.recompute(expense.activity_id)

    async def add_split(self, expense_id: int, split: SplitInput) -> None:
        """Add a split row; the resulting set must still reconcile.

        Raises:
            ValueError: member already has a split on this expense
        """
        existing = await self.session.execute(
            select(ActivityExpenseSplit.id).where(
                ActivityExpenseSplit.expense_id == expense_id,
                ActivityExpenseSplit.group_member_id == split.member_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ValueError(f"Member {split.member_id} already has a split on expense {expense_id}")
        await self._mutate_split(expense_id, split.member_id, split)

    async def update_split(self, expense_id: int, split: SplitInput) -> None:
        """Update the split row of split.member_id."""
        existing = await self.session.execute(
            select(ActivityExpenseSplit.id).where(
                ActivityExpenseSplit.expense_id == expense_id,
                ActivityExpenseSplit.group_member_id == split.member_id,
            )
        )
        if existing.scalar_one_or_none() is None:
            raise NotFoundError("Split", split.member_id, f"no split for member on expense {expense_id}")
        await self._mutate_split(expense_id, split.member_id, split)

    async def delete_split(self, expense_id: int, member_id: int) -> None:
        """Delete one member's split row; the remaining set must still reconcile."""
        await self._mutate_split(expense_id, member_id, None)

    async def get_expense(self, expense_id: int) -> ActivityExpense:
        return await self._get_expense(expense_id)

    async def get_splits(self, expense_id: int) -> List[ActivityExpenseSplit]:
        await self._get_expense(expense_id)
        return await self._current_splits(expense_id)

    async def list_expenses(self, activity_id: int) -> List[ActivityExpense]:
        """Expenses of an activity in creation order."""
        stmt = (
            select(ActivityExpense)
            .where(ActivityExpense.activity_id == activity_id)
            .order_by(ActivityExpense.created_at, ActivityExpense.id)
        )
        return list((await self.session.execute(stmt)).scalars().all())


__all__ = ["ExpenseService", "upgrade_legacy_payer", "largest_payer"]

"""Balance engine: activity total cost, participant balances and settlement.

Balance formula per participant of an activity:
    balance = Σ paid_amount (is_payer splits) - Σ amount (owed)
across the member's splits on the activity's expenses.
- positive: CREDITOR (is owed money)
- negative: DEBTOR (owes money)
- zero after rounding to cents: SETTLED

total_cost and participant balances are caches. The recompute_* methods
flush into the caller's transaction and never commit on their own, so the
mutation that triggered them and the recomputation land atomically.
"""

import logging
from collections import deque
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, NamedTuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from grouptrip.models.activity import Activity
from grouptrip.models.expense import ActivityExpense, ActivityExpenseSplit
from grouptrip.models.group import GroupMember
from grouptrip.models.participant import ActivityParticipant
from grouptrip.models.user import User
from grouptrip.services.config import LedgerConfig
from grouptrip.services.errors import BalanceConservationError, NotFoundError
from grouptrip.services.money import TOLERANCE, ZERO, qround, to_decimal

logger = logging.getLogger(__name__)


class BalanceStatus(str, Enum):
    """Settlement direction of a balance."""

    CREDITOR = "CREDITOR"
    DEBTOR = "DEBTOR"
    SETTLED = "SETTLED"


class ParticipantBalance(NamedTuple):
    member_id: int
    balance: Decimal


class PayerShare(NamedTuple):
    member_id: int
    name: str
    paid_amount: Decimal


class ExpenseSummary(NamedTuple):
    """Aggregate of one expense's splits."""

    expense_id: int
    activity_id: int
    description: str
    currency: str
    total_paid: Decimal
    payer_count: int
    participant_count: int
    payers: List[PayerShare]


class DebtEntry(NamedTuple):
    member_id: int
    name: str
    balance: Decimal
    status: BalanceStatus


class Transfer(NamedTuple):
    """Money that from_member_id should hand to to_member_id."""

    from_member_id: int
    to_member_id: int
    amount: Decimal


def classify(balance) -> BalanceStatus:
    """Classify a balance after rounding to cents (no epsilon beyond that)."""
    rounded = qround(balance)
    if rounded > 0:
        return BalanceStatus.CREDITOR
    if rounded < 0:
        return BalanceStatus.DEBTOR
    return BalanceStatus.SETTLED


def simplify_debts(net_map: Dict[int, Decimal]) -> List[Transfer]:
    """
    Greedy matching of largest debtor against largest creditor.

    Produces at most n-1 transfers for n non-settled members.
    """
    creditors = []
    debtors = []

    for member_id, bal in net_map.items():
        bal = qround(bal)
        if bal > 0:
            creditors.append([member_id, bal])
        elif bal < 0:
            debtors.append([member_id, -bal])

    creditors.sort(key=lambda x: (-x[1], x[0]))
    debtors.sort(key=lambda x: (-x[1], x[0]))

    creditors = deque(creditors)
    debtors = deque(debtors)

    transfers: List[Transfer] = []

    while creditors and debtors:
        cred_id, cred_amt = creditors[0]
        debt_id, debt_amt = debtors[0]

        pay_amt = qround(min(cred_amt, debt_amt))
        if pay_amt > 0:
            transfers.append(Transfer(debt_id, cred_id, pay_amt))

        new_cred = qround(cred_amt - pay_amt)
        new_debt = qround(debt_amt - pay_amt)

        creditors.popleft()
        debtors.popleft()

        if new_cred > 0:
            creditors.appendleft([cred_id, new_cred])
        if new_debt > 0:
            debtors.appendleft([debt_id, new_debt])

    return transfers


class BalanceService:
    """Recompute and read activity totals and participant balances."""

    def __init__(self, session: AsyncSession, tolerance: Decimal = TOLERANCE):
        """Initialize with database session.

        Args:
            session: AsyncSession for database operations
            tolerance: Allowed residual when checking that balances net to zero
        """
        self.session = session
        self.tolerance = tolerance

    @classmethod
    def from_config(cls, session: AsyncSession, config: LedgerConfig) -> "BalanceService":
        return cls(session, config.split_tolerance)

    classify = staticmethod(classify)

    async def _get_activity(self, activity_id: int) -> Activity:
        activity = await self.session.get(Activity, activity_id)
        if activity is None:
            logger.error(f"Activity {activity_id} not found")
            raise NotFoundError("Activity", activity_id)
        return activity

    async def _fold_splits(self, activity_id: int) -> tuple[Dict[int, Decimal], Dict[int, Decimal]]:
        """Return (paid, owed) per member over all splits of the activity."""
        stmt = (
            select(
                ActivityExpenseSplit.group_member_id,
                ActivityExpenseSplit.is_payer,
                ActivityExpenseSplit.paid_amount,
                ActivityExpenseSplit.amount,
            )
            .join(ActivityExpense, ActivityExpense.id == ActivityExpenseSplit.expense_id)
            .where(ActivityExpense.activity_id == activity_id)
        )
        result = await self.session.execute(stmt)

        paid: Dict[int, Decimal] = {}
        owed: Dict[int, Decimal] = {}
        for member_id, is_payer, paid_amount, amount in result.all():
            if is_payer:
                paid[member_id] = paid.get(member_id, ZERO) + to_decimal(paid_amount)
            owed[member_id] = owed.get(member_id, ZERO) + to_decimal(amount)
        return paid, owed

    async def _participant_balances(self, activity_id: int) -> Dict[int, Decimal]:
        """Live balances for every declared participant (0 when no splits)."""
        paid, owed = await self._fold_splits(activity_id)
        stmt = (
            select(ActivityParticipant.group_member_id)
            .where(ActivityParticipant.activity_id == activity_id)
            .order_by(ActivityParticipant.id)
        )
        member_ids = (await self.session.execute(stmt)).scalars().all()
        return {
            member_id: qround(paid.get(member_id, ZERO) - owed.get(member_id, ZERO))
            for member_id in member_ids
        }

    async def recompute_activity_cost(self, activity_id: int) -> Decimal:
        """Recompute and persist activity.total_cost.

        total_cost = Σ paid_amount over is_payer splits of the activity's expenses.

        Raises:
            NotFoundError: activity does not exist
        """
        activity = await self._get_activity(activity_id)

        stmt = (
            select(ActivityExpenseSplit.paid_amount)
            .join(ActivityExpense, ActivityExpense.id == ActivityExpenseSplit.expense_id)
            .where(
                ActivityExpense.activity_id == activity_id,
                ActivityExpenseSplit.is_payer.is_(True),
            )
        )
        payments = (await self.session.execute(stmt)).scalars().all()
        total = qround(sum((to_decimal(p) for p in payments), ZERO))

        activity.total_cost = total
        activity.updated_at = datetime.now(timezone.utc)
        await self.session.flush()

        logger.debug(f"Activity {activity_id} total_cost recomputed: {total}")
        return total

    async def recompute_participant_balances(self, activity_id: int) -> List[ParticipantBalance]:
        """Recompute and persist the balance of every participant of the activity.

        Idempotent: with no intervening mutation the same values are written.

        Raises:
            NotFoundError: activity does not exist
        """
        await self._get_activity(activity_id)
        balances = await self._participant_balances(activity_id)

        stmt = select(ActivityParticipant).where(ActivityParticipant.activity_id == activity_id)
        participants = (await self.session.execute(stmt)).scalars().all()
        now = datetime.now(timezone.utc)
        for participant in participants:
            participant.balance = balances[participant.group_member_id]
            participant.updated_at = now
        await self.session.flush()

        logger.debug(f"Activity {activity_id}: recomputed {len(balances)} participant balances")
        return [ParticipantBalance(member_id, balance) for member_id, balance in balances.items()]

    async def recompute(self, activity_id: int) -> tuple[Decimal, List[ParticipantBalance]]:
        """Recompute total cost and balances together."""
        total = await self.recompute_activity_cost(activity_id)
        balances = await self.recompute_participant_balances(activity_id)
        return total, balances

    async def expense_summary(self, expense_id: int) -> ExpenseSummary:
        """Summarize who paid for an expense and how many members take part.

        Raises:
            NotFoundError: expense does not exist
        """
        expense = await self.session.get(ActivityExpense, expense_id)
        if expense is None:
            logger.error(f"Expense {expense_id} not found")
            raise NotFoundError("Expense", expense_id)

        stmt = (
            select(ActivityExpenseSplit, User.name)
            .join(GroupMember, GroupMember.id == ActivityExpenseSplit.group_member_id)
            .join(User, User.id == GroupMember.user_id)
            .where(ActivityExpenseSplit.expense_id == expense_id)
        )
        rows = (await self.session.execute(stmt)).all()

        payers = [
            PayerShare(split.group_member_id, name, qround(split.paid_amount))
            for split, name in rows
            if split.is_payer
        ]
        payers.sort(key=lambda p: (-p.paid_amount, p.member_id))

        return ExpenseSummary(
            expense_id=expense.id,
            activity_id=expense.activity_id,
            description=expense.description,
            currency=expense.currency,
            total_paid=qround(sum((p.paid_amount for p in payers), ZERO)),
            payer_count=len(payers),
            participant_count=len({split.group_member_id for split, _ in rows}),
            payers=payers,
        )

    async def debt_summary(self, activity_id: int) -> List[DebtEntry]:
        """Who owes and who is owed, ordered by balance descending.

        Computed live from the splits; does not write anything.
        """
        await self._get_activity(activity_id)
        balances = await self._participant_balances(activity_id)
        if not balances:
            return []

        stmt = (
            select(GroupMember.id, User.name)
            .join(User, User.id == GroupMember.user_id)
            .where(GroupMember.id.in_(list(balances)))
        )
        names = {member_id: name for member_id, name in (await self.session.execute(stmt)).all()}

        entries = [
            DebtEntry(member_id, names.get(member_id, ""), balance, classify(balance))
            for member_id, balance in balances.items()
        ]
        entries.sort(key=lambda e: (-e.balance, e.member_id))
        return entries

    async def settlement_plan(self, activity_id: int) -> List[Transfer]:
        """Transfers that bring every participant of the activity to SETTLED."""
        await self._get_activity(activity_id)
        balances = await self._participant_balances(activity_id)
        return simplify_debts(balances)

    async def check_conservation(self, activity_id: int) -> Decimal:
        """Verify participant balances net to zero.

        Returns:
            The residual (within tolerance)

        Raises:
            BalanceConservationError: residual exceeds tolerance
        """
        await self._get_activity(activity_id)
        balances = await self._participant_balances(activity_id)
        residual = qround(sum(balances.values(), ZERO))
        if abs(residual) > self.tolerance:
            logger.error(f"Activity {activity_id} balances do not net to zero: {residual}")
            raise BalanceConservationError(activity_id, residual)
        return residual


__all__ = [
    "BalanceStatus",
    "ParticipantBalance",
    "PayerShare",
    "ExpenseSummary",
    "DebtEntry",
    "Transfer",
    "classify",
    "simplify_debts",
    "BalanceService",
]

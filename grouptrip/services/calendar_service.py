"""Read models over activities: calendar entries, cost breakdowns and group summaries.

Pure projections recomputed on demand; nothing here writes.
"""

import logging
from datetime import date, datetime, time
from decimal import Decimal
from typing import Dict, List, NamedTuple, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from grouptrip.models.activity import Activity, ActivityType
from grouptrip.models.expense import ActivityExpense
from grouptrip.models.group import Group, GroupMember
from grouptrip.models.participant import ActivityParticipant, ParticipantStatus
from grouptrip.models.user import User
from grouptrip.services.activity_variants import location_summary
from grouptrip.services.errors import NotFoundError
from grouptrip.services.money import ZERO, qround, to_decimal

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "EUR"


class CalendarEntry(NamedTuple):
    """One activity as shown on the group calendar."""

    id: int
    group_id: int
    title: str
    description: Optional[str]
    date: date
    end_date: date
    start_time: Optional[time]
    end_time: Optional[time]
    day_of_week: int
    activity_type: ActivityType
    location: Optional[str]
    latitude: Optional[Decimal]
    longitude: Optional[Decimal]
    is_completed: bool
    status: str
    confirmed_count: int
    maybe_count: int
    declined_count: int
    participant_count: int
    total_cost: Decimal
    expense_count: int
    currency: str
    creator_name: Optional[str]
    creator_avatar: Optional[str]


class ExpenseCost(NamedTuple):
    id: int
    description: str
    amount: Decimal
    currency: str
    created_at: datetime


class CostBreakdown(NamedTuple):
    activity_id: int
    total_cost: Decimal
    expense_count: int
    currency: str
    expenses: List[ExpenseCost]


class GroupSummary(NamedTuple):
    id: int
    name: str
    description: Optional[str]
    vacation_start_date: date
    vacation_end_date: date
    cover_image_url: Optional[str]
    creator_name: str
    member_count: int
    activity_count: int
    total_cost: Decimal


def calendar_status(is_completed: bool, confirmed: int, declined: int, total: int) -> str:
    """Classify an activity for the calendar.

    completed > confirmed (any CONFIRMED) > declined (everyone declined) > pending
    """
    if is_completed:
        return "completed"
    if confirmed > 0:
        return "confirmed"
    if total > 0 and declined == total:
        return "declined"
    return "pending"


class CalendarService:
    """Calendar and summary views for groups and activities."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _status_counts(self, activity_ids: List[int]) -> Dict[int, Dict[ParticipantStatus, int]]:
        if not activity_ids:
            return {}
        stmt = (
            select(ActivityParticipant.activity_id, ActivityParticipant.status, func.count())
            .where(ActivityParticipant.activity_id.in_(activity_ids))
            .group_by(ActivityParticipant.activity_id, ActivityParticipant.status)
        )
        counts: Dict[int, Dict[ParticipantStatus, int]] = {}
        for activity_id, status, count in (await self.session.execute(stmt)).all():
            counts.setdefault(activity_id, {})[ParticipantStatus(status)] = count
        return counts

    async def _expenses_by_activity(self, activity_ids: List[int]) -> Dict[int, List[ActivityExpense]]:
        if not activity_ids:
            return {}
        stmt = (
            select(ActivityExpense)
            .where(ActivityExpense.activity_id.in_(activity_ids))
            .order_by(ActivityExpense.created_at, ActivityExpense.id)
        )
        grouped: Dict[int, List[ActivityExpense]] = {}
        for expense in (await self.session.execute(stmt)).scalars().all():
            grouped.setdefault(expense.activity_id, []).append(expense)
        return grouped

    async def activity_calendar(
        self,
        group_id: int,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[CalendarEntry]:
        """Calendar entries of a group, optionally limited to activities starting in [start, end].

        Ordered by date, start time and display order.
        """
        stmt = (
            select(Activity, User.name, User.avatar_url)
            .outerjoin(User, User.id == Activity.created_by)
            .where(Activity.group_id == group_id)
        )
        if start is not None:
            stmt = stmt.where(Activity.start_date >= start)
        if end is not None:
            stmt = stmt.where(Activity.start_date <= end)
        stmt = stmt.order_by(
            Activity.start_date, Activity.start_time, Activity.display_order, Activity.id
        )
        rows = (await self.session.execute(stmt)).all()

        activity_ids = [activity.id for activity, _, _ in rows]
        counts = await self._status_counts(activity_ids)
        expenses = await self._expenses_by_activity(activity_ids)

        entries = []
        for activity, creator_name, creator_avatar in rows:
            by_status = counts.get(activity.id, {})
            confirmed = by_status.get(ParticipantStatus.CONFIRMED, 0)
            maybe = by_status.get(ParticipantStatus.MAYBE, 0)
            declined = by_status.get(ParticipantStatus.DECLINED, 0)
            total = confirmed + maybe + declined
            activity_expenses = expenses.get(activity.id, [])
            label, latitude, longitude = location_summary(activity)

            entries.append(
                CalendarEntry(
                    id=activity.id,
                    group_id=activity.group_id,
                    title=activity.name,
                    description=activity.description,
                    date=activity.start_date,
                    end_date=activity.end_date,
                    start_time=activity.start_time,
                    end_time=activity.end_time,
                    day_of_week=activity.start_date.isoweekday(),
                    activity_type=ActivityType(activity.activity_type),
                    location=label,
                    latitude=latitude,
                    longitude=longitude,
                    is_completed=activity.is_completed,
                    status=calendar_status(activity.is_completed, confirmed, declined, total),
                    confirmed_count=confirmed,
                    maybe_count=maybe,
                    declined_count=declined,
                    participant_count=total,
                    total_cost=qround(activity.total_cost),
                    expense_count=len(activity_expenses),
                    currency=activity_expenses[0].currency if activity_expenses else DEFAULT_CURRENCY,
                    creator_name=creator_name,
                    creator_avatar=creator_avatar,
                )
            )

        logger.debug(f"Group {group_id}: {len(entries)} calendar entries")
        return entries

    async def activity_costs(self, activity_id: int) -> CostBreakdown:
        """Total cost of an activity with its expenses in creation order.

        Raises:
            NotFoundError: activity does not exist
        """
        activity = await self.session.get(Activity, activity_id)
        if activity is None:
            logger.error(f"Activity {activity_id} not found")
            raise NotFoundError("Activity", activity_id)

        expenses = (await self._expenses_by_activity([activity_id])).get(activity_id, [])
        return CostBreakdown(
            activity_id=activity_id,
            total_cost=qround(activity.total_cost),
            expense_count=len(expenses),
            currency=expenses[0].currency if expenses else DEFAULT_CURRENCY,
            expenses=[
                ExpenseCost(e.id, e.description, qround(e.amount), e.currency, e.created_at)
                for e in expenses
            ],
        )

    async def group_summary(self, group_id: int) -> GroupSummary:
        """Group header with creator, member count and spend across activities.

        Raises:
            NotFoundError: group does not exist
        """
        stmt = (
            select(Group, User.name)
            .join(User, User.id == Group.created_by)
            .where(Group.id == group_id)
        )
        row = (await self.session.execute(stmt)).one_or_none()
        if row is None:
            logger.error(f"Group {group_id} not found")
            raise NotFoundError("Group", group_id)
        group, creator_name = row

        member_count = (
            await self.session.execute(
                select(func.count()).select_from(GroupMember).where(GroupMember.group_id == group_id)
            )
        ).scalar_one()
        costs = (
            await self.session.execute(
                select(Activity.total_cost).where(Activity.group_id == group_id)
            )
        ).scalars().all()

        return GroupSummary(
            id=group.id,
            name=group.name,
            description=group.description,
            vacation_start_date=group.vacation_start_date,
            vacation_end_date=group.vacation_end_date,
            cover_image_url=group.cover_image_url,
            creator_name=creator_name,
            member_count=member_count,
            activity_count=len(costs),
            total_cost=qround(sum((to_decimal(c) for c in costs), ZERO)),
        )


__all__ = [
    "CalendarEntry",
    "ExpenseCost",
    "CostBreakdown",
    "GroupSummary",
    "calendar_status",
    "CalendarService",
]

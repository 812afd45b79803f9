"""Activity service: activities of a group and their participants.

Variant fields (EVENT / TRIP) always go through activity_variants so the
wide activities row never holds columns of both shapes.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, time
from typing import AsyncIterator, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from grouptrip.models.activity import Activity
from grouptrip.models.expense import ActivityExpense, ActivityExpenseSplit
from grouptrip.models.group import Group, GroupMember
from grouptrip.models.participant import ActivityParticipant, ParticipantStatus
from grouptrip.services.activity_variants import (
    ActivityDetails,
    TypedActivity,
    apply_variant,
    as_variant,
)
from grouptrip.services.balance_service import BalanceService
from grouptrip.services.errors import InvalidDateRangeError, NotFoundError

logger = logging.getLogger(__name__)

_UNSET = object()


def validate_schedule(
    start_date: date,
    end_date: date,
    start_time: Optional[time] = None,
    end_time: Optional[time] = None,
) -> None:
    """Activity must end after it starts.

    Times default to the start/end of their day when absent, so a single-day
    activity without times is always valid.

    Raises:
        InvalidDateRangeError: end not after start
    """
    if end_date < start_date:
        raise InvalidDateRangeError(f"Activity end date {end_date} is before start date {start_date}")

    starts = datetime.combine(start_date, start_time or time.min)
    ends = datetime.combine(end_date, end_time or time.max)
    if ends <= starts:
        raise InvalidDateRangeError(f"Activity ends at {ends}, not after it starts at {starts}")


class ActivityService:
    """Manage activities and activity participants."""

    def __init__(self, session: AsyncSession):
        """Initialize with database session.

        Args:
            session: AsyncSession for database operations
        """
        self.session = session
        self.balances = BalanceService(session)

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        try:
            yield
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    async def _lock(self, activity_id: int) -> Activity:
        stmt = select(Activity).where(Activity.id == activity_id).with_for_update()
        activity = (await self.session.execute(stmt)).scalar_one_or_none()
        if activity is None:
            logger.error(f"Activity {activity_id} not found")
            raise NotFoundError("Activity", activity_id)
        return activity

    async def _get_participant(self, activity_id: int, member_id: int) -> ActivityParticipant:
        stmt = select(ActivityParticipant).where(
            ActivityParticipant.activity_id == activity_id,
            ActivityParticipant.group_member_id == member_id,
        )
        participant = (await self.session.execute(stmt)).scalar_one_or_none()
        if participant is None:
            logger.error(f"Member {member_id} does not participate in activity {activity_id}")
            raise NotFoundError("Participant", member_id, f"not in activity {activity_id}")
        return participant

    async def create_activity(
        self,
        group_id: int,
        name: str,
        start_date: date,
        end_date: date,
        details: ActivityDetails,
        start_time: Optional[time] = None,
        end_time: Optional[time] = None,
        description: Optional[str] = None,
        created_by: Optional[int] = None,
        display_order: int = 0,
    ) -> Activity:
        """Create an EVENT or TRIP activity, depending on the details given.

        Args:
            group_id: Owning group
            name: Activity title
            start_date, end_date: Inclusive date range
            details: EventActivity or TripActivity
            start_time, end_time: Optional times of day
            description: Optional free text
            created_by: User who created the activity
            display_order: Position within the group's list

        Returns:
            Created Activity (total_cost 0.00)

        Raises:
            NotFoundError: group does not exist
            InvalidDateRangeError, InvalidCoordinatesError, InvalidVariantError
        """
        validate_schedule(start_date, end_date, start_time, end_time)

        async with self._transaction():
            if await self.session.get(Group, group_id) is None:
                logger.error(f"Group {group_id} not found")
                raise NotFoundError("Group", group_id)

            activity = Activity(
                group_id=group_id,
                name=name,
                description=description,
                start_date=start_date,
                end_date=end_date,
                start_time=start_time,
                end_time=end_time,
                display_order=display_order,
                created_by=created_by,
            )
            apply_variant(activity, details)
            self.session.add(activity)
            await self.session.flush()

        logger.info(
            f"Created {activity.activity_type.value} activity {activity.id} '{name}' in group {group_id}"
        )
        return activity

    async def get_activity(self, activity_id: int) -> Activity:
        """Get activity by ID.

        Raises:
            NotFoundError: activity does not exist
        """
        activity = await self.session.get(Activity, activity_id)
        if activity is None:
            logger.error(f"Activity {activity_id} not found")
            raise NotFoundError("Activity", activity_id)
        return activity

    async def get_typed(self, activity_id: int) -> TypedActivity:
        """Activity as core fields plus its EVENT or TRIP variant."""
        return as_variant(await self.get_activity(activity_id))

    async def list_activities(self, group_id: int) -> List[Activity]:
        """Activities of a group by date, then display order."""
        stmt = (
            select(Activity)
            .where(Activity.group_id == group_id)
            .order_by(Activity.start_date, Activity.start_time, Activity.display_order, Activity.id)
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def update_activity(
        self,
        activity_id: int,
        name: Optional[str] = None,
        description=_UNSET,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        start_time=_UNSET,
        end_time=_UNSET,
        display_order: Optional[int] = None,
        details: Optional[ActivityDetails] = None,
    ) -> Activity:
        """Update core fields and, when details are given, the variant.

        Nullable fields (description, start_time, end_time) are cleared by
        passing None explicitly; omitted fields stay unchanged.
        """
        async with self._transaction():
            activity = await self._lock(activity_id)

            new_start = start_date or activity.start_date
            new_end = end_date or activity.end_date
            new_start_time = activity.start_time if start_time is _UNSET else start_time
            new_end_time = activity.end_time if end_time is _UNSET else end_time
            validate_schedule(new_start, new_end, new_start_time, new_end_time)

            activity.start_date = new_start
            activity.end_date = new_end
            activity.start_time = new_start_time
            activity.end_time = new_end_time
            if name is not None:
                activity.name = name
            if description is not _UNSET:
                activity.description = description
            if display_order is not None:
                activity.display_order = display_order
            if details is not None:
                apply_variant(activity, details)
            await self.session.flush()

        logger.info(f"Updated activity {activity_id}")
        return activity

    async def set_variant(self, activity_id: int, details: ActivityDetails) -> Activity:
        """Switch or rewrite the activity's EVENT/TRIP fields."""
        return await self.update_activity(activity_id, details=details)

    async def mark_completed(self, activity_id: int, completed: bool = True) -> Activity:
        async with self._transaction():
            activity = await self._lock(activity_id)
            activity.is_completed = completed
            await self.session.flush()
        return activity

    async def delete_activity(self, activity_id: int) -> None:
        """Delete an activity with its participants, expenses and splits.

        Raises:
            NotFoundError: activity does not exist
        """
        async with self._transaction():
            activity = await self._lock(activity_id)
            await self.session.delete(activity)
            await self.session.flush()

        logger.info(f"Deleted activity {activity_id}")

    async def add_participant(
        self,
        activity_id: int,
        member_id: int,
        status: ParticipantStatus = ParticipantStatus.MAYBE,
        notes: Optional[str] = None,
    ) -> ActivityParticipant:
        """Add a group member to an activity.

        Raises:
            NotFoundError: activity missing, or member not in the activity's group
            ValueError: member already participates
        """
        async with self._transaction():
            activity = await self._lock(activity_id)

            member = await self.session.get(GroupMember, member_id)
            if member is None or member.group_id != activity.group_id:
                logger.error(f"Member {member_id} is not in group {activity.group_id}")
                raise NotFoundError("GroupMember", member_id, f"not in group {activity.group_id}")

            stmt = select(ActivityParticipant.id).where(
                ActivityParticipant.activity_id == activity_id,
                ActivityParticipant.group_member_id == member_id,
            )
            if (await self.session.execute(stmt)).scalar_one_or_none() is not None:
                raise ValueError(f"Member {member_id} already participates in activity {activity_id}")

            participant = ActivityParticipant(
                activity_id=activity_id,
                group_member_id=member_id,
                status=status,
                notes=notes,
            )
            self.session.add(participant)
            await self.session.flush()
            await self.balances.recompute_participant_balances(activity_id)

        logger.info(f"Member {member_id} added to activity {activity_id} as {status.value}")
        return participant

    async def set_participant_status(
        self, activity_id: int, member_id: int, status: ParticipantStatus
    ) -> ActivityParticipant:
        """Change a participant's RSVP status."""
        async with self._transaction():
            participant = await self._get_participant(activity_id, member_id)
            participant.status = status
            await self.session.flush()
        return participant

    async def remove_participant(self, activity_id: int, member_id: int) -> None:
        """Remove a member from an activity.

        Raises:
            NotFoundError: member does not participate
            ValueError: member still has splits on the activity's expenses
        """
        async with self._transaction():
            await self._lock(activity_id)
            participant = await self._get_participant(activity_id, member_id)

            stmt = (
                select(ActivityExpenseSplit.id)
                .join(ActivityExpense, ActivityExpense.id == ActivityExpenseSplit.expense_id)
                .where(
                    ActivityExpense.activity_id == activity_id,
                    ActivityExpenseSplit.group_member_id == member_id,
                )
                .limit(1)
            )
            if (await self.session.execute(stmt)).scalar_one_or_none() is not None:
                raise ValueError(
                    f"Member {member_id} has expense splits in activity {activity_id}; "
                    "remove them first"
                )

            await self.session.delete(participant)
            await self.session.flush()
            await self.balances.recompute_participant_balances(activity_id)

        logger.info(f"Member {member_id} removed from activity {activity_id}")

    async def list_participants(self, activity_id: int) -> List[ActivityParticipant]:
        stmt = (
            select(ActivityParticipant)
            .where(ActivityParticipant.activity_id == activity_id)
            .order_by(ActivityParticipant.id)
        )
        return list((await self.session.execute(stmt)).scalars().all())


__all__ = ["ActivityService", "validate_schedule"]

"""Group service: vacation groups and their membership."""

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from grouptrip.models.group import Group, GroupMember, MemberRole
from grouptrip.models.user import User
from grouptrip.services.errors import InvalidDateRangeError, NotFoundError

logger = logging.getLogger(__name__)


class GroupService:
    """Create groups and manage who belongs to them."""

    def __init__(self, session: AsyncSession):
        """Initialize with database session.

        Args:
            session: AsyncSession for database operations
        """
        self.session = session

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[None]:
        try:
            yield
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise

    async def _require_user(self, user_id: int) -> User:
        user = await self.session.get(User, user_id)
        if user is None:
            logger.error(f"User {user_id} not found")
            raise NotFoundError("User", user_id)
        return user

    async def create_group(
        self,
        name: str,
        created_by: int,
        vacation_start_date: date,
        vacation_end_date: date,
        description: Optional[str] = None,
        cover_image_url: Optional[str] = None,
    ) -> Group:
        """Create a group and enroll its creator as ADMIN.

        Args:
            name: Group display name
            created_by: User creating the group
            vacation_start_date: First vacation day
            vacation_end_date: Last vacation day (inclusive, >= start)
            description: Optional free text
            cover_image_url: Optional cover picture

        Returns:
            Created Group

        Raises:
            InvalidDateRangeError: end date before start date
            NotFoundError: creator does not exist
        """
        if vacation_end_date < vacation_start_date:
            raise InvalidDateRangeError(
                f"Vacation end {vacation_end_date} is before start {vacation_start_date}"
            )

        async with self._transaction():
            await self._require_user(created_by)
            group = Group(
                name=name,
                description=description,
                vacation_start_date=vacation_start_date,
                vacation_end_date=vacation_end_date,
                cover_image_url=cover_image_url,
                created_by=created_by,
            )
            self.session.add(group)
            await self.session.flush()

            self.session.add(
                GroupMember(group_id=group.id, user_id=created_by, role=MemberRole.ADMIN)
            )
            await self.session.flush()

        logger.info(f"Created group {group.id} '{name}' by user {created_by}")
        return group

    async def get_group(self, group_id: int) -> Group:
        """Get group by ID.

        Raises:
            NotFoundError: group does not exist
        """
        group = await self.session.get(Group, group_id)
        if group is None:
            logger.error(f"Group {group_id} not found")
            raise NotFoundError("Group", group_id)
        return group

    async def add_member(
        self, group_id: int, user_id: int, role: MemberRole = MemberRole.MEMBER
    ) -> GroupMember:
        """Add a user to a group.

        Raises:
            NotFoundError: group or user does not exist
            ValueError: user is already a member
        """
        async with self._transaction():
            await self.get_group(group_id)
            await self._require_user(user_id)

            existing = await self.get_member(group_id, user_id)
            if existing is not None:
                raise ValueError(f"User {user_id} is already a member of group {group_id}")

            member = GroupMember(group_id=group_id, user_id=user_id, role=role)
            self.session.add(member)
            await self.session.flush()

        logger.info(f"User {user_id} joined group {group_id} as {role.value}")
        return member

    async def get_member(self, group_id: int, user_id: int) -> Optional[GroupMember]:
        """Membership row of a user in a group, or None."""
        stmt = select(GroupMember).where(
            GroupMember.group_id == group_id, GroupMember.user_id == user_id
        )
        return (await self.session.execute(stmt)).scalar_one_or_none()

    async def list_members(self, group_id: int) -> List[GroupMember]:
        """Members of a group in join order."""
        stmt = (
            select(GroupMember)
            .where(GroupMember.group_id == group_id)
            .order_by(GroupMember.joined_at, GroupMember.id)
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def delete_group(self, group_id: int) -> None:
        """Delete a group; members, activities and everything under them cascade.

        Raises:
            NotFoundError: group does not exist
        """
        async with self._transaction():
            group = await self.get_group(group_id)
            await self.session.delete(group)
            await self.session.flush()

        logger.info(f"Deleted group {group_id}")


__all__ = ["GroupService"]

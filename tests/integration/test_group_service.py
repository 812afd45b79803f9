"""Integration tests for group creation and membership."""

from datetime import date

import pytest

from grouptrip.models.group import MemberRole
from grouptrip.services.errors import InvalidDateRangeError, NotFoundError
from grouptrip.services.group_service import GroupService


class TestCreateGroup:
    """Tests for create_group."""

    async def test_creator_enrolled_as_admin(self, session, group, users):
        service = GroupService(session)

        members = await service.list_members(group.id)

        assert len(members) == 1
        assert members[0].user_id == users[0].id
        assert members[0].role == MemberRole.ADMIN

    async def test_single_day_vacation_allowed(self, session, users):
        group = await GroupService(session).create_group(
            "Day trip", users[1].id, date(2026, 9, 1), date(2026, 9, 1)
        )
        assert group.vacation_start_date == group.vacation_end_date

    async def test_end_before_start_rejected(self, session, users):
        with pytest.raises(InvalidDateRangeError):
            await GroupService(session).create_group(
                "Backwards", users[0].id, date(2026, 9, 5), date(2026, 9, 1)
            )

    async def test_unknown_creator(self, session):
        with pytest.raises(NotFoundError, match="User 9"):
            await GroupService(session).create_group(
                "Nobody's trip", 9, date(2026, 9, 1), date(2026, 9, 2)
            )


class TestMembership:
    """Tests for add_member."""

    async def test_add_member(self, session, group, users):
        member = await GroupService(session).add_member(group.id, users[2].id)

        assert member.role == MemberRole.MEMBER
        assert member.group_id == group.id

    async def test_members_fixture_order(self, session, group, members, users):
        listed = await GroupService(session).list_members(group.id)
        assert [m.user_id for m in listed] == [u.id for u in users]

    async def test_duplicate_member_rejected(self, session, group, users):
        group_id, user_id = group.id, users[0].id
        with pytest.raises(ValueError, match="already a member"):
            await GroupService(session).add_member(group_id, user_id)

    async def test_unknown_group(self, session, users):
        with pytest.raises(NotFoundError, match="Group 5"):
            await GroupService(session).add_member(5, users[0].id)

    async def test_delete_unknown_group(self, session):
        with pytest.raises(NotFoundError):
            await GroupService(session).delete_group(5)

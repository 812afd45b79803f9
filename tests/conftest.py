"""Pytest configuration: in-memory database per test plus a seeded vacation group."""

from datetime import date, time
from decimal import Decimal

import pytest

from grouptrip.models import User
from grouptrip.models.participant import ParticipantStatus
from grouptrip.services.activity_service import ActivityService
from grouptrip.services.activity_variants import EventActivity
from grouptrip.services.db import create_all, create_engine_for, create_session_factory
from grouptrip.services.group_service import GroupService


@pytest.fixture
async def engine():
    """Fresh in-memory SQLite database with every table created."""
    engine = create_engine_for("sqlite:///:memory:")
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session(engine):
    factory = create_session_factory(engine)
    async with factory() as session:
        yield session


@pytest.fixture
async def users(session):
    """Alice, Bob, Carol and Dave."""
    users = [
        User(
            email=f"{name.lower()}@example.com",
            name=name,
            avatar_url=f"https://img.example.com/{name.lower()}.png",
        )
        for name in ("Alice", "Bob", "Carol", "Dave")
    ]
    session.add_all(users)
    await session.commit()
    return users


@pytest.fixture
async def group(session, users):
    """Group created by Alice (enrolled as ADMIN)."""
    return await GroupService(session).create_group(
        name="Lisbon 2026",
        created_by=users[0].id,
        vacation_start_date=date(2026, 7, 1),
        vacation_end_date=date(2026, 7, 10),
    )


@pytest.fixture
async def members(session, group, users):
    """Group members in user order: Alice (admin), Bob, Carol, Dave."""
    service = GroupService(session)
    admin = await service.get_member(group.id, users[0].id)
    others = [await service.add_member(group.id, user.id) for user in users[1:]]
    return [admin, *others]


@pytest.fixture
async def activity(session, group, users):
    """Dinner EVENT on the second vacation day."""
    return await ActivityService(session).create_activity(
        group_id=group.id,
        name="Dinner at Ramiro",
        start_date=date(2026, 7, 2),
        end_date=date(2026, 7, 2),
        details=EventActivity(
            location_name="Cervejaria Ramiro",
            latitude=Decimal("38.7206"),
            longitude=Decimal("-9.1357"),
            category="restaurant",
        ),
        start_time=time(20, 0),
        created_by=users[0].id,
    )


@pytest.fixture
async def participants(session, activity, members):
    """All four members confirmed for the dinner."""
    service = ActivityService(session)
    return [
        await service.add_participant(activity.id, member.id, ParticipantStatus.CONFIRMED)
        for member in members
    ]

"""Group and GroupMember ORM models."""

from datetime import date, datetime, timezone
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from grouptrip.models import Base, BaseModel


class MemberRole(str, Enum):
    """Role of a user inside a group."""

    ADMIN = "ADMIN"
    """Can manage the group (creator is enrolled as admin)"""

    MEMBER = "MEMBER"
    """Regular read/write member"""


class Group(Base, BaseModel):
    """Vacation container shared by its members.

    The vacation date range is inclusive on both ends; a single-day trip has
    start == end.
    """

    __tablename__ = "groups"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    vacation_start_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="First day of the vacation",
    )
    vacation_end_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Last day of the vacation (>= start)",
    )
    cover_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_by: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="User who created the group",
    )

    # Relationships
    creator: Mapped["User"] = relationship("User", foreign_keys=[created_by])  # noqa: F821
    members: Mapped[list["GroupMember"]] = relationship(
        "GroupMember",
        back_populates="group",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    activities: Mapped[list["Activity"]] = relationship(  # noqa: F821
        "Activity",
        back_populates="group",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint(
            "vacation_end_date >= vacation_start_date",
            name="valid_vacation_dates",
        ),
        Index("idx_groups_vacation_dates", "vacation_start_date", "vacation_end_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Group(id={self.id}, name={self.name}, "
            f"dates={self.vacation_start_date}..{self.vacation_end_date})>"
        )


class GroupMember(Base):
    """Association of a user to a group with a role.

    Expenses, splits and activity participation all reference the member row,
    not the user, so the same person can hold independent ledgers per group.
    """

    __tablename__ = "group_members"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[MemberRole] = mapped_column(
        SQLEnum(MemberRole, native_enum=False, length=20),
        default=MemberRole.MEMBER,
        nullable=False,
        comment="ADMIN can manage group, MEMBER has read/write access",
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    # Relationships
    group: Mapped["Group"] = relationship("Group", back_populates="members")
    user: Mapped["User"] = relationship("User", back_populates="memberships")  # noqa: F821

    __table_args__ = (UniqueConstraint("group_id", "user_id", name="unique_group_member"),)

    def __repr__(self) -> str:
        return (
            f"<GroupMember(id={self.id}, group_id={self.group_id}, "
            f"user_id={self.user_id}, role={self.role})>"
        )


__all__ = ["Group", "GroupMember", "MemberRole"]

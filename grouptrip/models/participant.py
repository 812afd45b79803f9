"""ActivityParticipant ORM model (RSVP + derived balance)."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import ForeignKey, Index, Numeric, Text, UniqueConstraint
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from grouptrip.models import Base, BaseModel


class ParticipantStatus(str, Enum):
    """RSVP status of a group member for one activity."""

    CONFIRMED = "CONFIRMED"
    MAYBE = "MAYBE"
    DECLINED = "DECLINED"


class ActivityParticipant(Base, BaseModel):
    """Membership of a group member in an activity.

    balance: positive = should receive money, negative = owes money,
    zero = settled. Rewritten by the balance engine after expense changes.
    """

    __tablename__ = "activity_participants"

    activity_id: Mapped[int] = mapped_column(
        ForeignKey("activities.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    group_member_id: Mapped[int] = mapped_column(
        ForeignKey("group_members.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[ParticipantStatus] = mapped_column(
        SQLEnum(ParticipantStatus, native_enum=False, length=50, create_constraint=True),
        default=ParticipantStatus.MAYBE,
        nullable=False,
    )
    balance: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        default=Decimal("0.00"),
        nullable=False,
        comment="Paid minus owed across this activity's expenses; derived",
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    activity: Mapped["Activity"] = relationship(  # noqa: F821
        "Activity", back_populates="participants"
    )
    member: Mapped["GroupMember"] = relationship("GroupMember")  # noqa: F821

    __table_args__ = (
        UniqueConstraint("activity_id", "group_member_id", name="unique_activity_participant"),
        Index("idx_participants_status", "activity_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<ActivityParticipant(id={self.id}, activity_id={self.activity_id}, "
            f"member_id={self.group_member_id}, status={self.status}, balance={self.balance})>"
        )


__all__ = ["ActivityParticipant", "ParticipantStatus"]

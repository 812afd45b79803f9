"""Activity ORM model (single table holding EVENT and TRIP shapes)."""

from datetime import date, time
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from grouptrip.models import Base, BaseModel


class ActivityType(str, Enum):
    """Discriminator selecting which subtype columns are populated."""

    EVENT = "EVENT"
    """Single location: restaurant, museum, hotel"""

    TRIP = "TRIP"
    """Travel leg with origin and destination: flight, train, car"""


EVENT_COLUMNS = (
    "event_location_name",
    "event_location_address",
    "event_location_latitude",
    "event_location_longitude",
    "event_location_place_id",
    "event_location_metadata",
    "event_category",
    "event_booking_url",
    "event_booking_reference",
    "event_reservation_time",
)

TRIP_COLUMNS = (
    "trip_origin_name",
    "trip_origin_address",
    "trip_origin_latitude",
    "trip_origin_longitude",
    "trip_origin_place_id",
    "trip_origin_metadata",
    "trip_destination_name",
    "trip_destination_address",
    "trip_destination_latitude",
    "trip_destination_longitude",
    "trip_destination_place_id",
    "trip_destination_metadata",
    "trip_transport_mode",
    "trip_departure_time",
    "trip_arrival_time",
    "trip_booking_reference",
)


class Activity(Base, BaseModel):
    """
    Scheduled occurrence within a group.

    Storage keeps the wide single-table layout; callers should go through
    grouptrip.services.activity_variants instead of reading event_*/trip_*
    columns directly. Only the columns of the active variant are non-null.

    total_cost is a cache of the payer splits of all expenses and is rewritten
    by the balance engine after every expense mutation.
    """

    __tablename__ = "activities"

    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Multi-day schedule
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time | None] = mapped_column(Time, nullable=True)
    end_time: Mapped[time | None] = mapped_column(Time, nullable=True)

    activity_type: Mapped[ActivityType] = mapped_column(
        SQLEnum(ActivityType, native_enum=False, length=50, create_constraint=True),
        nullable=False,
        default=ActivityType.EVENT,
        comment="Discriminator: EVENT or TRIP",
    )

    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        default=Decimal("0.00"),
        nullable=False,
        comment="Sum of all payments for this activity; derived, never client input",
    )
    created_by: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # EVENT-specific fields (NULL if activity_type = TRIP)
    event_location_name: Mapped[str | None] = mapped_column(String(500))
    event_location_address: Mapped[str | None] = mapped_column(String(500))
    event_location_latitude: Mapped[Decimal | None] = mapped_column(Numeric(10, 7))
    event_location_longitude: Mapped[Decimal | None] = mapped_column(Numeric(10, 7))
    event_location_place_id: Mapped[str | None] = mapped_column(String(500))
    event_location_metadata: Mapped[dict | None] = mapped_column(JSON)
    event_category: Mapped[str | None] = mapped_column(String(50))
    event_booking_url: Mapped[str | None] = mapped_column(String(1000))
    event_booking_reference: Mapped[str | None] = mapped_column(String(255))
    event_reservation_time: Mapped[time | None] = mapped_column(Time)

    # TRIP-specific fields (NULL if activity_type = EVENT)
    trip_origin_name: Mapped[str | None] = mapped_column(String(500))
    trip_origin_address: Mapped[str | None] = mapped_column(String(500))
    trip_origin_latitude: Mapped[Decimal | None] = mapped_column(Numeric(10, 7))
    trip_origin_longitude: Mapped[Decimal | None] = mapped_column(Numeric(10, 7))
    trip_origin_place_id: Mapped[str | None] = mapped_column(String(500))
    trip_origin_metadata: Mapped[dict | None] = mapped_column(JSON)
    trip_destination_name: Mapped[str | None] = mapped_column(String(500))
    trip_destination_address: Mapped[str | None] = mapped_column(String(500))
    trip_destination_latitude: Mapped[Decimal | None] = mapped_column(Numeric(10, 7))
    trip_destination_longitude: Mapped[Decimal | None] = mapped_column(Numeric(10, 7))
    trip_destination_place_id: Mapped[str | None] = mapped_column(String(500))
    trip_destination_metadata: Mapped[dict | None] = mapped_column(JSON)
    trip_transport_mode: Mapped[str | None] = mapped_column(String(50))
    trip_departure_time: Mapped[time | None] = mapped_column(Time)
    trip_arrival_time: Mapped[time | None] = mapped_column(Time)
    trip_booking_reference: Mapped[str | None] = mapped_column(String(255))

    # Relationships
    group: Mapped["Group"] = relationship("Group", back_populates="activities")  # noqa: F821
    creator: Mapped["User | None"] = relationship("User", foreign_keys=[created_by])  # noqa: F821
    participants: Mapped[list["ActivityParticipant"]] = relationship(  # noqa: F821
        "ActivityParticipant",
        back_populates="activity",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    expenses: Mapped[list["ActivityExpense"]] = relationship(  # noqa: F821
        "ActivityExpense",
        back_populates="activity",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="check_activity_dates"),
        CheckConstraint(
            "start_time IS NULL OR end_time IS NULL OR end_date > start_date "
            "OR end_time > start_time",
            name="check_activity_times",
        ),
        CheckConstraint(
            "event_location_latitude IS NULL OR "
            "(event_location_latitude BETWEEN -90 AND 90 "
            "AND event_location_longitude BETWEEN -180 AND 180)",
            name="check_event_coordinates",
        ),
        CheckConstraint(
            "trip_origin_latitude IS NULL OR "
            "(trip_origin_latitude BETWEEN -90 AND 90 "
            "AND trip_origin_longitude BETWEEN -180 AND 180)",
            name="check_trip_origin_coords",
        ),
        CheckConstraint(
            "trip_destination_latitude IS NULL OR "
            "(trip_destination_latitude BETWEEN -90 AND 90 "
            "AND trip_destination_longitude BETWEEN -180 AND 180)",
            name="check_trip_dest_coords",
        ),
        CheckConstraint(
            "trip_departure_time IS NULL OR trip_arrival_time IS NULL "
            "OR trip_arrival_time > trip_departure_time",
            name="check_trip_times",
        ),
        Index("idx_activities_date_range", "group_id", "start_date", "end_date"),
        Index("idx_activities_type", "activity_type"),
        Index("idx_activities_display_order", "group_id", "display_order"),
        Index("idx_activities_completed", "group_id", "is_completed"),
    )

    def __repr__(self) -> str:
        return (
            f"<Activity(id={self.id}, group_id={self.group_id}, name={self.name}, "
            f"type={self.activity_type}, total_cost={self.total_cost})>"
        )


__all__ = ["Activity", "ActivityType", "EVENT_COLUMNS", "TRIP_COLUMNS"]

"""Typed access to the polymorphic Activity row.

The activities table stores EVENT and TRIP shapes in one wide row gated by
activity_type. Callers work with ActivityCore plus exactly one of
EventActivity / TripActivity and never see the discriminator/null-column
pattern.
"""

from dataclasses import dataclass
from datetime import date, time
from decimal import Decimal

from grouptrip.models.activity import EVENT_COLUMNS, TRIP_COLUMNS, Activity, ActivityType
from grouptrip.services.errors import InvalidCoordinatesError, InvalidDateRangeError, InvalidVariantError
from grouptrip.services.money import to_decimal


@dataclass(frozen=True)
class Location:
    """A named place with optional coordinates."""

    name: str | None = None
    address: str | None = None
    latitude: Decimal | None = None
    longitude: Decimal | None = None
    place_id: str | None = None
    metadata: dict | None = None


@dataclass(frozen=True)
class EventActivity:
    """Single-location activity (restaurant, museum, hotel)."""

    location_name: str | None = None
    address: str | None = None
    latitude: Decimal | None = None
    longitude: Decimal | None = None
    place_id: str | None = None
    location_metadata: dict | None = None
    category: str | None = None
    booking_url: str | None = None
    booking_reference: str | None = None
    reservation_time: time | None = None

    @property
    def location(self) -> Location:
        return Location(
            name=self.location_name,
            address=self.address,
            latitude=self.latitude,
            longitude=self.longitude,
            place_id=self.place_id,
            metadata=self.location_metadata,
        )


@dataclass(frozen=True)
class TripActivity:
    """Travel leg from origin to destination."""

    origin: Location = Location()
    destination: Location = Location()
    transport_mode: str | None = None
    departure_time: time | None = None
    arrival_time: time | None = None
    booking_reference: str | None = None


ActivityDetails = EventActivity | TripActivity


@dataclass(frozen=True)
class ActivityCore:
    """Fields shared by every activity regardless of variant."""

    id: int
    group_id: int
    name: str
    description: str | None
    start_date: date
    end_date: date
    start_time: time | None
    end_time: time | None
    is_completed: bool
    display_order: int
    total_cost: Decimal
    created_by: int | None


@dataclass(frozen=True)
class TypedActivity:
    """Activity as a tagged union: common core plus one variant."""

    core: ActivityCore
    details: ActivityDetails

    @property
    def activity_type(self) -> ActivityType:
        return variant_type(self.details)


def variant_type(details: ActivityDetails) -> ActivityType:
    if isinstance(details, EventActivity):
        return ActivityType.EVENT
    if isinstance(details, TripActivity):
        return ActivityType.TRIP
    raise InvalidVariantError(f"Unknown activity details type: {type(details).__name__}")


def _discriminator(activity: Activity) -> ActivityType:
    raw = activity.activity_type
    try:
        return ActivityType(raw.value if isinstance(raw, ActivityType) else raw)
    except ValueError:
        raise InvalidVariantError(f"Activity {activity.id} has unknown activity_type {raw!r}")


def validate_coordinates(latitude, longitude, label: str = "location") -> None:
    """Check a latitude/longitude pair; both absent is fine.

    Raises:
        InvalidCoordinatesError: half a pair, or values out of range
    """
    if latitude is None and longitude is None:
        return
    if latitude is None or longitude is None:
        raise InvalidCoordinatesError(f"{label}: latitude and longitude must be given together")

    lat = to_decimal(latitude)
    lng = to_decimal(longitude)
    if not Decimal(-90) <= lat <= Decimal(90):
        raise InvalidCoordinatesError(f"{label}: latitude {lat} outside [-90, 90]")
    if not Decimal(-180) <= lng <= Decimal(180):
        raise InvalidCoordinatesError(f"{label}: longitude {lng} outside [-180, 180]")


def validate_details(details: ActivityDetails) -> None:
    """Write-time validation of variant fields."""
    if isinstance(details, EventActivity):
        validate_coordinates(details.latitude, details.longitude, "event location")
    elif isinstance(details, TripActivity):
        validate_coordinates(details.origin.latitude, details.origin.longitude, "trip origin")
        validate_coordinates(
            details.destination.latitude, details.destination.longitude, "trip destination"
        )
        if (
            details.departure_time is not None
            and details.arrival_time is not None
            and details.arrival_time <= details.departure_time
        ):
            raise InvalidDateRangeError(
                f"Trip arrival {details.arrival_time} must be after departure {details.departure_time}"
            )
    else:
        variant_type(details)


def _coord(value) -> Decimal | None:
    return None if value is None else to_decimal(value)


def apply_variant(activity: Activity, details: ActivityDetails) -> None:
    """Write one variant onto the row and null every column of the other."""
    validate_details(details)

    if isinstance(details, EventActivity):
        for column in TRIP_COLUMNS:
            setattr(activity, column, None)
        activity.activity_type = ActivityType.EVENT
        activity.event_location_name = details.location_name
        activity.event_location_address = details.address
        activity.event_location_latitude = _coord(details.latitude)
        activity.event_location_longitude = _coord(details.longitude)
        activity.event_location_place_id = details.place_id
        activity.event_location_metadata = details.location_metadata
        activity.event_category = details.category
        activity.event_booking_url = details.booking_url
        activity.event_booking_reference = details.booking_reference
        activity.event_reservation_time = details.reservation_time
        return

    for column in EVENT_COLUMNS:
        setattr(activity, column, None)
    activity.activity_type = ActivityType.TRIP
    for prefix, place in (("trip_origin", details.origin), ("trip_destination", details.destination)):
        setattr(activity, f"{prefix}_name", place.name)
        setattr(activity, f"{prefix}_address", place.address)
        setattr(activity, f"{prefix}_latitude", _coord(place.latitude))
        setattr(activity, f"{prefix}_longitude", _coord(place.longitude))
        setattr(activity, f"{prefix}_place_id", place.place_id)
        setattr(activity, f"{prefix}_metadata", place.metadata)
    activity.trip_transport_mode = details.transport_mode
    activity.trip_departure_time = details.departure_time
    activity.trip_arrival_time = details.arrival_time
    activity.trip_booking_reference = details.booking_reference


def event_details(activity: Activity) -> EventActivity:
    """Read EVENT fields.

    Raises:
        InvalidVariantError: activity is not an EVENT
    """
    kind = _discriminator(activity)
    if kind != ActivityType.EVENT:
        raise InvalidVariantError(f"Activity {activity.id} is a {kind.value}, not an EVENT")
    return EventActivity(
        location_name=activity.event_location_name,
        address=activity.event_location_address,
        latitude=activity.event_location_latitude,
        longitude=activity.event_location_longitude,
        place_id=activity.event_location_place_id,
        location_metadata=activity.event_location_metadata,
        category=activity.event_category,
        booking_url=activity.event_booking_url,
        booking_reference=activity.event_booking_reference,
        reservation_time=activity.event_reservation_time,
    )


def _trip_location(activity: Activity, prefix: str) -> Location:
    return Location(
        name=getattr(activity, f"{prefix}_name"),
        address=getattr(activity, f"{prefix}_address"),
        latitude=getattr(activity, f"{prefix}_latitude"),
        longitude=getattr(activity, f"{prefix}_longitude"),
        place_id=getattr(activity, f"{prefix}_place_id"),
        metadata=getattr(activity, f"{prefix}_metadata"),
    )


def trip_details(activity: Activity) -> TripActivity:
    """Read TRIP fields.

    Raises:
        InvalidVariantError: activity is not a TRIP
    """
    kind = _discriminator(activity)
    if kind != ActivityType.TRIP:
        raise InvalidVariantError(f"Activity {activity.id} is a {kind.value}, not a TRIP")
    return TripActivity(
        origin=_trip_location(activity, "trip_origin"),
        destination=_trip_location(activity, "trip_destination"),
        transport_mode=activity.trip_transport_mode,
        departure_time=activity.trip_departure_time,
        arrival_time=activity.trip_arrival_time,
        booking_reference=activity.trip_booking_reference,
    )


def core_of(activity: Activity) -> ActivityCore:
    return ActivityCore(
        id=activity.id,
        group_id=activity.group_id,
        name=activity.name,
        description=activity.description,
        start_date=activity.start_date,
        end_date=activity.end_date,
        start_time=activity.start_time,
        end_time=activity.end_time,
        is_completed=activity.is_completed,
        display_order=activity.display_order,
        total_cost=activity.total_cost,
        created_by=activity.created_by,
    )


def as_variant(activity: Activity) -> TypedActivity:
    """Present the row as core + the variant its discriminator selects."""
    kind = _discriminator(activity)
    details = event_details(activity) if kind == ActivityType.EVENT else trip_details(activity)
    return TypedActivity(core=core_of(activity), details=details)


def location_summary(activity: Activity) -> tuple[str | None, Decimal | None, Decimal | None]:
    """Name and coordinates shown on calendars.

    EVENT: the location. TRIP: "origin → destination" with the origin's coordinates.
    """
    details = as_variant(activity).details
    if isinstance(details, EventActivity):
        return details.location_name, details.latitude, details.longitude

    origin, destination = details.origin, details.destination
    if origin.name and destination.name:
        label = f"{origin.name} → {destination.name}"
    else:
        label = origin.name or destination.name
    return label, origin.latitude, origin.longitude


__all__ = [
    "Location",
    "EventActivity",
    "TripActivity",
    "ActivityDetails",
    "ActivityCore",
    "TypedActivity",
    "variant_type",
    "validate_coordinates",
    "validate_details",
    "apply_variant",
    "event_details",
    "trip_details",
    "core_of",
    "as_variant",
    "location_summary",
]

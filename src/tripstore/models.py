"""Data models for the shared trip store.

A Trip is keyed by its reservation code (``pnr``). Fields named ``metadata``
hold locally-owned state (display name, soft-delete flag, refresh times) that
upstream payloads never carry; see tripstore.codec for how they are filled.

All models are frozen: a trip changes only by building a new value (usually
with ``dataclasses.replace``) and handing it to ``TripStore.update``.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime


class LegType(enum.Enum):
    FLIGHT = "flight"
    LAYOVER = "layover"
    UNKNOWN = "unknown"


class FlightStatusCode(enum.Enum):
    CANCELLED = "C"
    LANDED = "L"
    SCHEDULED = "S"
    ACTIVE = "A"
    UNKNOWN = "unknown"


class StandbyPriorityType(enum.IntEnum):
    """Standby classifications, highest priority first."""

    DEAD_HEAD_CREW = 0
    DEAD_HEAD_CREW_THROUGH = 1
    SOLD_OUT_GUEST = 2
    SOLD_OUT_GUEST_THROUGH = 3
    EMPLOYEE_ON_BUSINESS = 4
    EMPLOYEE_ON_BUSINESS_THROUGH = 5
    PARTNER_AIRLINE_EMPLOYEE_ON_BUSINESS = 6
    PARTNER_AIRLINE_EMPLOYEE_ON_BUSINESS_THROUGH = 7
    EARLY_SHOW_GUEST = 8
    EARLY_SHOW_GUEST_THROUGH = 9
    EMPLOYEE_OR_DESIGNATE = 10
    EMPLOYEE_OR_DESIGNATE_THROUGH = 11
    EARLY_OUT_OR_RETIREE = 12
    EARLY_OUT_OR_RETIREE_THROUGH = 13
    PARENT = 14
    PARENT_THROUGH = 15
    BUDDY_PASS = 16
    BUDDY_PASS_THROUGH = 17
    PARTNER_PASS = 18
    PARTNER_PASS_THROUGH = 19
    LATE_SHOW_GUEST = 20
    LATE_SHOW_GUEST_THROUGH = 21
    INTERLINE_GUEST = 22
    INTERLINE_GUEST_THROUGH = 23
    RECIPROCAL_PILOT = 24
    RECIPROCAL_PILOT_THROUGH = 25
    POSITIVE_SPACE = 26
    UNKNOWN = 27


# Base codes; each has a "<code>T" (through) variant immediately after it.
_BASE_PRIORITY_CODES = [
    "1A", "1B", "1C", "1D", "2A", "2B", "2D", "3B", "4B", "4C", "5A", "5B", "7B",
]

PRIORITY_CODES: dict[str, StandbyPriorityType] = {
    code: StandbyPriorityType(value)
    for value, code in enumerate(
        c for base in _BASE_PRIORITY_CODES for c in (base, base + "T")
    )
}
PRIORITY_CODES["PS"] = StandbyPriorityType.POSITIVE_SPACE

_CODE_BY_PRIORITY = {t: c for c, t in PRIORITY_CODES.items()}

# Types at or above this one may see the standby list details.
_SHOW_DETAILS_THRESHOLD = StandbyPriorityType.PARENT_THROUGH

_EXCLUDED_PRIORITIES = frozenset({
    StandbyPriorityType.SOLD_OUT_GUEST,
    StandbyPriorityType.SOLD_OUT_GUEST_THROUGH,
    StandbyPriorityType.EMPLOYEE_ON_BUSINESS,
    StandbyPriorityType.EMPLOYEE_ON_BUSINESS_THROUGH,
    StandbyPriorityType.PARTNER_AIRLINE_EMPLOYEE_ON_BUSINESS,
    StandbyPriorityType.PARTNER_AIRLINE_EMPLOYEE_ON_BUSINESS_THROUGH,
    StandbyPriorityType.EARLY_SHOW_GUEST,
    StandbyPriorityType.EARLY_SHOW_GUEST_THROUGH,
})


def priority_type_from_code(code: str) -> StandbyPriorityType:
    return PRIORITY_CODES.get(code, StandbyPriorityType.UNKNOWN)


@dataclass(frozen=True)
class StandbyPriority:
    """A priority code as received, plus its classification.

    ``original_code`` is kept verbatim so an unrecognised code survives a
    round trip through the local store.
    """

    original_code: str
    type: StandbyPriorityType

    @classmethod
    def from_code(cls, code: str) -> StandbyPriority:
        return cls(original_code=code, type=priority_type_from_code(code))

    @property
    def priority_code(self) -> str:
        """Canonical code for the classification; empty for unknown codes."""
        return _CODE_BY_PRIORITY.get(self.type, "")

    def has_sufficient_priority_to_display_details(self) -> bool:
        return self.type <= _SHOW_DETAILS_THRESHOLD

    def is_excluded_priority(self) -> bool:
        return self.type in _EXCLUDED_PRIORITIES


@dataclass(frozen=True)
class CarrierCode:
    code: str

    @property
    def is_westjet(self) -> bool:
        return self.code.lower() == "ws"


@dataclass(frozen=True)
class Cabin:
    code: str
    language: str
    name: str
    sabre_code: str
    short_name: str


@dataclass(frozen=True)
class EligibilityStatus:
    eligible: bool
    error_code: str | None = None


@dataclass(frozen=True)
class ManageTripEligibility:
    change_status: EligibilityStatus
    cancel_status: EligibilityStatus
    seats_status: EligibilityStatus
    guests_status: EligibilityStatus


@dataclass(frozen=True)
class Guest:
    first_name: str
    last_name: str
    title: str = ""
    westjet_id_hash: str | None = None


@dataclass(frozen=True)
class StandbyBooking:
    classification: StandbyPriority
    first_name: str | None = None
    last_name: str | None = None


@dataclass(frozen=True)
class Standby:
    lid: str = ""
    listed: str = ""
    unsold: str = ""
    cap: str = ""
    priority_list: list[StandbyBooking] = field(default_factory=list)


@dataclass(frozen=True)
class FlightStatusMetadata:
    fetch_date: datetime | None = None


@dataclass(frozen=True)
class FlightStatusDetails:
    actual_gate_arrival: datetime
    actual_gate_departure: datetime
    arrival_airport_code: str
    arrival_gate: str
    arrival_terminal: str
    arrival_delay: bool
    carrier_code: CarrierCode
    departure_airport_code: str
    departure_gate: str
    departure_terminal: str
    departure_delay: bool
    flight_number: int
    scheduled_gate_arrival: datetime
    scheduled_gate_departure: datetime
    status_code: FlightStatusCode
    arrival_airport_name: str | None = None
    arrival_city: str | None = None
    arrival_country: str | None = None
    arrival_province: str | None = None
    arrival_region: str | None = None
    arrival_utc_region: str | None = None
    departure_airport_name: str | None = None
    departure_city: str | None = None
    departure_country: str | None = None
    departure_province: str | None = None
    departure_region: str | None = None
    departure_utc_region: str | None = None
    estimated_gate_arrival: datetime | None = None
    estimated_gate_departure: datetime | None = None
    metadata: FlightStatusMetadata = field(default_factory=FlightStatusMetadata)


@dataclass(frozen=True)
class LegMetadata:
    latest_flight_status: FlightStatusDetails | None = None


@dataclass(frozen=True)
class Leg:
    type: LegType
    duration_minutes: int
    itinerary_airline_type: str | None = None
    marketing_airline_code: str | None = None
    operating_airline_name: str | None = None
    departure_date_time: datetime | None = None
    arrival_date_time: datetime | None = None
    cabin: Cabin | None = None
    destination_airport_code: str | None = None
    origin_airport_code: str | None = None
    status: str | None = None
    flight_number: str | None = None
    standby: Standby | None = None
    metadata: LegMetadata = field(default_factory=LegMetadata)


@dataclass(frozen=True)
class Segment:
    """One flight or layover within an origin/destination pair.

    Layover segments carry only ``type`` and ``duration_minutes``.
    """

    type: LegType
    duration_minutes: int
    itinerary_airline_type: str | None = None
    marketing_airline_code: str | None = None
    operating_airline_name: str | None = None
    departure_date_time: datetime | None = None
    destination_airport_code: str | None = None
    origin_airport_code: str | None = None
    flight_number: str | None = None
    arrival_date_time: datetime | None = None
    legs: list[Leg] | None = None


@dataclass(frozen=True)
class OriginDestinationMetadata:
    has_handled_check_in_notification: bool = False


@dataclass(frozen=True)
class OriginDestination:
    arrival_date_time: datetime
    departure_date_time: datetime
    destination_airport_code: str
    duration_minutes: int
    origin_airport_code: str
    segments: list[Segment] = field(default_factory=list)
    metadata: OriginDestinationMetadata = field(default_factory=OriginDestinationMetadata)


@dataclass(frozen=True)
class UnconfirmedLeg:
    arrival_date_time: datetime
    departure_date_time: datetime
    destination_airport_code: str
    origin_airport_code: str
    duration_minutes: int
    flight_number: str
    marketing_airline_code: str
    status: str
    type: LegType
    operating_airline_name: str | None = None


@dataclass(frozen=True)
class TripMetadata:
    """State attached to a trip on this device, never supplied by upstream."""

    is_soft_deleted: bool = False
    is_cached_data_stale: bool = False   # set when only the PNR is known (push payload)
    is_prematurely_complete: bool = False
    refresh_date: datetime | None = None
    trip_name: str | None = None          # display name chosen by the user
    booking_last_name: str | None = None
    booking_account_id_hash: str | None = None


@dataclass(frozen=True)
class Trip:
    pnr: str
    pseudo_city_code: str
    guests: list[Guest] = field(default_factory=list)
    origin_destinations: list[OriginDestination] = field(default_factory=list)
    unconfirmed_legs: list[UnconfirmedLeg] = field(default_factory=list)
    booking_number: str | None = None     # present for vacation-package bookings
    fully_unconfirmed: bool = False
    priority: StandbyPriority | None = None
    eligibility: ManageTripEligibility | None = None
    metadata: TripMetadata = field(default_factory=TripMetadata)

    @property
    def key(self) -> str:
        return self.pnr

    @property
    def display_name(self) -> str:
        return self.metadata.trip_name or self.pnr

    @property
    def is_visible(self) -> bool:
        return not self.metadata.is_soft_deleted

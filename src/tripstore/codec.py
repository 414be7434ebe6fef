"""Encode/decode trips to and from their JSON wire shape.

Two source kinds share one decoder:

    SourceKind.EXTERNAL_PAYLOAD   upstream booking JSON. Optional fields may be
                                  absent; every ``metadata`` block is ignored
                                  and replaced by defaults.
    SourceKind.LOCAL_STORE        what encode_trip() wrote. ``metadata`` blocks
                                  are required and round-trip exactly.

Canonical file layouts accepted by decode_collection():

    v0   [{"PNR": "ABC123", "name": "Ski trip"}, ...]       flat list
    v1   {"ABC123": {<trip>}, ...}                          keyed by PNR
    v2   {"version": 2, "trips": [{<trip>}, ...]}           current

encode_collection() always writes v2. Every decode failure is a
SchemaViolation whose ``field`` is the dotted path to the bad value, e.g.
``trips[1].originDestinations[0].durationMinutes``.
"""

from __future__ import annotations

import enum
import json
import logging
import re
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypeVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tripstore.errors import SchemaViolation
from tripstore.models import (
    Cabin,
    CarrierCode,
    EligibilityStatus,
    FlightStatusCode,
    FlightStatusDetails,
    FlightStatusMetadata,
    Guest,
    Leg,
    LegMetadata,
    LegType,
    ManageTripEligibility,
    OriginDestination,
    OriginDestinationMetadata,
    Segment,
    Standby,
    StandbyBooking,
    StandbyPriority,
    StandbyPriorityType,
    Trip,
    TripMetadata,
    UnconfirmedLeg,
)

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger("tripstore.codec")

FORMAT_VERSION = 2

_INT_STRING_RE = re.compile(r"[+-]?\d+")

T = TypeVar("T")


class SourceKind(enum.Enum):
    EXTERNAL_PAYLOAD = "external"
    LOCAL_STORE = "local"


# ---------------------------------------------------------------------------
# Field access
# ---------------------------------------------------------------------------

class _Fields:
    """Typed accessors over one JSON object, tracking the path for errors."""

    def __init__(self, obj: Any, path: str, kind: SourceKind) -> None:
        if not isinstance(obj, dict):
            raise SchemaViolation(path, f"expected an object, got {_type_name(obj)}")
        self.obj: dict[str, Any] = obj
        self.path = path
        self.kind = kind

    @property
    def is_local(self) -> bool:
        return self.kind is SourceKind.LOCAL_STORE

    def at(self, key: str) -> str:
        return f"{self.path}.{key}" if self.path else key

    def has(self, key: str) -> bool:
        return self.obj.get(key) is not None

    def required(self, key: str) -> Any:
        if key not in self.obj:
            raise SchemaViolation(self.at(key), "missing required field")
        value = self.obj[key]
        if value is None:
            raise SchemaViolation(self.at(key), "must not be null")
        return value

    def text(self, key: str) -> str:
        return _as_str(self.required(key), self.at(key))

    def opt_text(self, key: str) -> str | None:
        value = self.obj.get(key)
        return None if value is None else _as_str(value, self.at(key))

    def boolean(self, key: str, default: bool | None = None) -> bool:
        if default is not None and not self.has(key):
            return default
        value = self.required(key)
        if not isinstance(value, bool):
            raise SchemaViolation(self.at(key), f"expected a boolean, got {_type_name(value)}")
        return value

    def flag(self, key: str) -> bool:
        """Boolean that upstream sends as "1"/"true" strings."""
        value = self.required(key)
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.lower() in ("1", "true")
        raise SchemaViolation(self.at(key), f"expected a boolean string, got {_type_name(value)}")

    def int_like(self, key: str) -> int:
        return decode_int_like(self.required(key), self.at(key))

    def timestamp(self, key: str) -> datetime:
        return _as_datetime(self.required(key), self.at(key))

    def opt_timestamp(self, key: str) -> datetime | None:
        value = self.obj.get(key)
        return None if value is None else _as_datetime(value, self.at(key))

    def obj_of(self, key: str, decode: Callable[[_Fields], T]) -> T:
        return decode(_Fields(self.required(key), self.at(key), self.kind))

    def opt_obj_of(self, key: str, decode: Callable[[_Fields], T]) -> T | None:
        if not self.has(key):
            return None
        return decode(_Fields(self.obj[key], self.at(key), self.kind))

    def list_of(self, key: str, decode: Callable[[_Fields], T], *, required: bool = False) -> list[T]:
        """Decode a list of objects; absent or null is an empty list unless required."""
        if not self.has(key):
            if required:
                raise SchemaViolation(self.at(key), "missing required field")
            return []
        items = self.obj[key]
        if not isinstance(items, list):
            raise SchemaViolation(self.at(key), f"expected a list, got {_type_name(items)}")
        base = self.at(key)
        return [decode(_Fields(item, f"{base}[{i}]", self.kind)) for i, item in enumerate(items)]

    def metadata(self, decode: Callable[[_Fields], T], default: Callable[[], T]) -> T:
        """Locally-owned block: defaulted for upstream payloads, required from the store."""
        if not self.is_local:
            return default()
        return self.obj_of("metadata", decode)


def _type_name(value: Any) -> str:
    return "null" if value is None else type(value).__name__


def _as_str(value: Any, path: str) -> str:
    if not isinstance(value, str):
        raise SchemaViolation(path, f"expected a string, got {_type_name(value)}")
    return value


def _as_datetime(value: Any, path: str) -> datetime:
    if not isinstance(value, str):
        raise SchemaViolation(path, f"expected an ISO-8601 string, got {_type_name(value)}")
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError as exc:
        raise SchemaViolation(path, f"invalid ISO-8601 timestamp {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def decode_int_like(value: Any, path: str) -> int:
    """Accept 45, 45.0 or "45"; reject anything else."""
    if isinstance(value, bool):
        raise SchemaViolation(path, "not an int or int-like string")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and _INT_STRING_RE.fullmatch(value.strip()):
        return int(value)
    raise SchemaViolation(path, "not an int or int-like string")


def _timezone_region(fields: _Fields, key: str) -> str | None:
    region = fields.opt_text(key)
    if region is None:
        return None
    try:
        ZoneInfo(region)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise SchemaViolation(fields.at(key), f"unknown time zone {region!r}") from exc
    return region


def _enum_member(fields: _Fields, key: str, enum_cls: type[Any], *, lower: bool = False) -> Any:
    raw = fields.text(key)
    try:
        return enum_cls(raw.lower() if lower else raw)
    except ValueError:
        logger.warning("unrecognised %s value %r at %s", enum_cls.__name__, raw, fields.at(key))
        return enum_cls.UNKNOWN


# ---------------------------------------------------------------------------
# Decoders (one per wire object)
# ---------------------------------------------------------------------------

def _decode_priority(value: Any, path: str) -> StandbyPriority:
    priority = StandbyPriority.from_code(_as_str(value, path))
    if priority.type is StandbyPriorityType.UNKNOWN:
        logger.warning("unknown priority code %r at %s", priority.original_code, path)
    return priority


def _decode_guest(f: _Fields) -> Guest:
    return Guest(
        first_name=f.text("firstName"),
        last_name=f.text("lastName"),
        title=f.opt_text("title") or "",
        westjet_id_hash=f.opt_text("westjetId"),
    )


def _decode_cabin(f: _Fields) -> Cabin:
    return Cabin(
        code=f.text("code"),
        language=f.text("language"),
        name=f.text("name"),
        sabre_code=f.text("sabreCode"),
        short_name=f.text("shortName"),
    )


def _decode_eligibility_status(f: _Fields) -> EligibilityStatus:
    return EligibilityStatus(eligible=f.boolean("eligible"), error_code=f.opt_text("errorCode"))


def _decode_eligibility(f: _Fields) -> ManageTripEligibility:
    return ManageTripEligibility(
        change_status=f.obj_of("CHG", _decode_eligibility_status),
        cancel_status=f.obj_of("CXL", _decode_eligibility_status),
        seats_status=f.obj_of("Seat", _decode_eligibility_status),
        guests_status=f.obj_of("Info", _decode_eligibility_status),
    )


def _decode_standby_booking(f: _Fields) -> StandbyBooking:
    return StandbyBooking(
        classification=_decode_priority(f.required("classification"), f.at("classification")),
        first_name=f.opt_text("firstName"),
        last_name=f.opt_text("lastName"),
    )


def _decode_standby(f: _Fields) -> Standby:
    # Upstream standby data is best-effort: anything malformed falls back to empty.
    def loose_str(key: str) -> str:
        value = f.obj.get(key)
        return value if isinstance(value, str) else ""

    try:
        priority_list = f.list_of("priorityList", _decode_standby_booking)
    except SchemaViolation as exc:
        logger.warning("dropping standby priority list: %s", exc)
        priority_list = []
    return Standby(
        lid=loose_str("lid"),
        listed=loose_str("nonrevs"),
        unsold=loose_str("available"),
        cap=loose_str("cap"),
        priority_list=priority_list,
    )


def _decode_flight_status_metadata(f: _Fields) -> FlightStatusMetadata:
    return FlightStatusMetadata(fetch_date=f.opt_timestamp("fetchDate"))


def _decode_flight_status(f: _Fields) -> FlightStatusDetails:
    return FlightStatusDetails(
        actual_gate_arrival=f.timestamp("actualGateArrival"),
        actual_gate_departure=f.timestamp("actualGateDeparture"),
        arrival_airport_code=f.text("arrivalAirportCode"),
        arrival_gate=f.text("arrivalGate"),
        arrival_terminal=f.text("arrivalTerminal"),
        arrival_delay=f.flag("arrivaldelay"),
        carrier_code=CarrierCode(f.text("carrierCode")),
        departure_airport_code=f.text("departureAirportCode"),
        departure_gate=f.text("departureGate"),
        departure_terminal=f.text("departureTerminal"),
        departure_delay=f.flag("departuredelay"),
        flight_number=f.int_like("flightNumber"),
        scheduled_gate_arrival=f.timestamp("scheduledGateArrival"),
        scheduled_gate_departure=f.timestamp("scheduledGateDeparture"),
        status_code=_enum_member(f, "status", FlightStatusCode),
        arrival_airport_name=f.opt_text("arrivalAirportName"),
        arrival_city=f.opt_text("arrivalCity"),
        arrival_country=f.opt_text("arrivalCountry"),
        arrival_province=f.opt_text("arrivalProvince"),
        arrival_region=f.opt_text("arrivalRegion"),
        arrival_utc_region=_timezone_region(f, "arrivalUTCRegion"),
        departure_airport_name=f.opt_text("departureAirportName"),
        departure_city=f.opt_text("departureCity"),
        departure_country=f.opt_text("departureCountry"),
        departure_province=f.opt_text("departureProvince"),
        departure_region=f.opt_text("departureRegion"),
        departure_utc_region=_timezone_region(f, "departureUTCRegion"),
        estimated_gate_arrival=f.opt_timestamp("estimatedGateArrival"),
        estimated_gate_departure=f.opt_timestamp("estimatedGateDeparture"),
        metadata=f.metadata(
            _decode_flight_status_metadata,
            lambda: FlightStatusMetadata(fetch_date=datetime.now(UTC)),
        ),
    )


def _decode_leg_metadata(f: _Fields) -> LegMetadata:
    return LegMetadata(latest_flight_status=f.opt_obj_of("latestFlightStatus", _decode_flight_status))


def _decode_leg(f: _Fields) -> Leg:
    return Leg(
        type=_enum_member(f, "type", LegType, lower=True),
        duration_minutes=f.int_like("durationMinutes"),
        itinerary_airline_type=f.opt_text("itineraryAirlineType"),
        marketing_airline_code=f.opt_text("marketingAirlineCode"),
        operating_airline_name=f.opt_text("operatingAirlineName"),
        departure_date_time=f.opt_timestamp("departureDateTime"),
        arrival_date_time=f.opt_timestamp("arrivalDateTime"),
        cabin=f.opt_obj_of("cabin", _decode_cabin),
        destination_airport_code=f.opt_text("destinationAirportCode"),
        origin_airport_code=f.opt_text("originAirportCode"),
        status=f.opt_text("status"),
        flight_number=f.opt_text("flightNumber"),
        standby=f.opt_obj_of("standby", _decode_standby),
        metadata=f.metadata(_decode_leg_metadata, LegMetadata),
    )


def _decode_segment(f: _Fields) -> Segment:
    return Segment(
        type=_enum_member(f, "type", LegType, lower=True),
        duration_minutes=f.int_like("durationMinutes"),
        itinerary_airline_type=f.opt_text("itineraryAirlineType"),
        marketing_airline_code=f.opt_text("marketingAirlineCode"),
        operating_airline_name=f.opt_text("operatingAirlineName"),
        departure_date_time=f.opt_timestamp("departureDateTime"),
        destination_airport_code=f.opt_text("destinationAirportCode"),
        origin_airport_code=f.opt_text("originAirportCode"),
        flight_number=f.opt_text("flightNumber"),
        arrival_date_time=f.opt_timestamp("arrivalDateTime"),
        legs=f.list_of("legs", _decode_leg) if f.has("legs") else None,
    )


def _decode_od_metadata(f: _Fields) -> OriginDestinationMetadata:
    return OriginDestinationMetadata(
        has_handled_check_in_notification=f.boolean("hasHandledCheckInNotification"),
    )


def _decode_origin_destination(f: _Fields) -> OriginDestination:
    return OriginDestination(
        arrival_date_time=f.timestamp("arrivalDateTime"),
        departure_date_time=f.timestamp("departureDateTime"),
        destination_airport_code=f.text("destinationAirportCode"),
        duration_minutes=f.int_like("durationMinutes"),
        origin_airport_code=f.text("originAirportCode"),
        segments=f.list_of("segments", _decode_segment, required=True),
        metadata=f.metadata(_decode_od_metadata, OriginDestinationMetadata),
    )


def _decode_unconfirmed_leg(f: _Fields) -> UnconfirmedLeg:
    return UnconfirmedLeg(
        arrival_date_time=f.timestamp("arrivalDateTime"),
        departure_date_time=f.timestamp("departureDateTime"),
        destination_airport_code=f.text("destinationAirportCode"),
        origin_airport_code=f.text("originAirportCode"),
        duration_minutes=f.int_like("durationMinutes"),
        flight_number=f.text("flightNumber"),
        marketing_airline_code=f.text("marketingAirlineCode"),
        status=f.text("status"),
        type=_enum_member(f, "type", LegType, lower=True),
        operating_airline_name=f.opt_text("operatingAirlineName"),
    )


def _decode_trip_metadata(f: _Fields) -> TripMetadata:
    return TripMetadata(
        is_soft_deleted=f.boolean("isSoftDeleted"),
        is_cached_data_stale=f.boolean("isCachedDataStale"),
        is_prematurely_complete=f.boolean("isPrematurelyComplete"),
        refresh_date=f.opt_timestamp("refreshDate"),
        trip_name=f.opt_text("tripName"),
        booking_last_name=f.opt_text("bookingLastName"),
        booking_account_id_hash=f.opt_text("bookingAccountIDHash"),
    )


def _decode_trip(f: _Fields) -> Trip:
    return Trip(
        pnr=f.text("pnr"),
        pseudo_city_code=f.text("aaaPseudoCityCode"),
        guests=f.list_of("guests", _decode_guest),
        origin_destinations=f.list_of("originDestinations", _decode_origin_destination),
        unconfirmed_legs=f.list_of("unconfirmedLegs", _decode_unconfirmed_leg),
        booking_number=f.opt_text("bookingNumber"),
        fully_unconfirmed=f.boolean("fullyUnconfirmed", default=False),
        priority=(
            _decode_priority(f.obj["priorityCode"], f.at("priorityCode"))
            if f.has("priorityCode") else None
        ),
        eligibility=f.opt_obj_of("eligibility", _decode_eligibility),
        metadata=f.metadata(_decode_trip_metadata, TripMetadata),
    )


def decode_trip(obj: Any, kind: SourceKind, path: str = "") -> Trip:
    """Decode one trip object. Raises SchemaViolation; never returns a partial trip."""
    return _decode_trip(_Fields(obj, path, kind))


def decode(data: bytes | str, kind: SourceKind) -> Trip:
    """Decode a single trip from JSON text."""
    return decode_trip(_loads(data), kind)


def _loads(data: bytes | str) -> Any:
    try:
        return json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise SchemaViolation("", f"invalid JSON: {exc}") from exc


# ---------------------------------------------------------------------------
# Canonical collection and legacy layouts
# ---------------------------------------------------------------------------

def _is_flat_entry(obj: Any) -> bool:
    return isinstance(obj, dict) and "PNR" in obj and "pnr" not in obj


def _decode_flat_entry(obj: dict[str, Any], path: str) -> Trip:
    """v0 entries carried only the PNR and a user-chosen name."""
    f = _Fields(obj, path, SourceKind.LOCAL_STORE)
    return Trip(
        pnr=f.text("PNR"),
        pseudo_city_code="",
        metadata=TripMetadata(trip_name=f.opt_text("name")),
    )


def _decode_list(items: list[Any], base: str) -> list[Trip]:
    trips = []
    for i, item in enumerate(items):
        path = f"{base}[{i}]"
        if _is_flat_entry(item):
            trips.append(_decode_flat_entry(item, path))
        else:
            trips.append(decode_trip(item, SourceKind.LOCAL_STORE, path))
    return trips


def _decode_keyed(table: dict[str, Any]) -> list[Trip]:
    trips = []
    for key, item in table.items():
        trip = decode_trip(item, SourceKind.LOCAL_STORE, key)
        if trip.pnr != key:
            raise SchemaViolation(f"{key}.pnr", f"does not match table key {key!r}")
        trips.append(trip)
    return trips


def unique_by_key(trips: list[Trip]) -> list[Trip]:
    """Collapse duplicate keys: the later trip replaces the earlier in place."""
    index: dict[str, int] = {}
    result: list[Trip] = []
    for trip in trips:
        if trip.key in index:
            result[index[trip.key]] = trip
        else:
            index[trip.key] = len(result)
            result.append(trip)
    return result


def decode_collection(data: bytes | str) -> list[Trip]:
    """Decode the canonical file in any known layout. Empty input is an empty set."""
    if not data or not data.strip():
        return []
    raw = _loads(data)
    if isinstance(raw, list):
        trips = _decode_list(raw, "")
    elif isinstance(raw, dict) and "version" in raw:
        version = raw["version"]
        if version != FORMAT_VERSION:
            raise SchemaViolation("version", f"unsupported format version {version!r}")
        items = raw.get("trips")
        if not isinstance(items, list):
            raise SchemaViolation("trips", f"expected a list, got {_type_name(items)}")
        trips = _decode_list(items, "trips")
    elif isinstance(raw, dict):
        trips = _decode_keyed(raw)
    else:
        raise SchemaViolation("", f"expected a list or an object, got {_type_name(raw)}")
    return unique_by_key(trips)


# ---------------------------------------------------------------------------
# Encoders
# ---------------------------------------------------------------------------

def _dt(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


def _enum_value(value: enum.Enum) -> str:
    return str(value.value)


def _encode_eligibility_status(s: EligibilityStatus) -> dict[str, Any]:
    return {"eligible": s.eligible, "errorCode": s.error_code}


def _encode_flight_status(s: FlightStatusDetails) -> dict[str, Any]:
    return {
        "actualGateArrival": _dt(s.actual_gate_arrival),
        "actualGateDeparture": _dt(s.actual_gate_departure),
        "arrivalAirportCode": s.arrival_airport_code,
        "arrivalAirportName": s.arrival_airport_name,
        "arrivalCity": s.arrival_city,
        "arrivalCountry": s.arrival_country,
        "arrivalGate": s.arrival_gate,
        "arrivalProvince": s.arrival_province,
        "arrivalRegion": s.arrival_region,
        "arrivalTerminal": s.arrival_terminal,
        "arrivalUTCRegion": s.arrival_utc_region,
        "arrivaldelay": s.arrival_delay,
        "carrierCode": s.carrier_code.code,
        "departureAirportCode": s.departure_airport_code,
        "departureAirportName": s.departure_airport_name,
        "departureCity": s.departure_city,
        "departureCountry": s.departure_country,
        "departureGate": s.departure_gate,
        "departureProvince": s.departure_province,
        "departureRegion": s.departure_region,
        "departureTerminal": s.departure_terminal,
        "departureUTCRegion": s.departure_utc_region,
        "departuredelay": s.departure_delay,
        "estimatedGateArrival": _dt(s.estimated_gate_arrival),
        "estimatedGateDeparture": _dt(s.estimated_gate_departure),
        "flightNumber": s.flight_number,
        "scheduledGateArrival": _dt(s.scheduled_gate_arrival),
        "scheduledGateDeparture": _dt(s.scheduled_gate_departure),
        "status": _enum_value(s.status_code),
        "metadata": {"fetchDate": _dt(s.metadata.fetch_date)},
    }


def _encode_standby(s: Standby) -> dict[str, Any]:
    return {
        "lid": s.lid,
        "nonrevs": s.listed,
        "available": s.unsold,
        "cap": s.cap,
        "priorityList": [
            {
                "firstName": b.first_name,
                "lastName": b.last_name,
                "classification": b.classification.original_code,
            }
            for b in s.priority_list
        ],
    }


def _encode_leg(leg: Leg) -> dict[str, Any]:
    status = leg.metadata.latest_flight_status
    return {
        "type": _enum_value(leg.type),
        "durationMinutes": leg.duration_minutes,
        "itineraryAirlineType": leg.itinerary_airline_type,
        "marketingAirlineCode": leg.marketing_airline_code,
        "operatingAirlineName": leg.operating_airline_name,
        "departureDateTime": _dt(leg.departure_date_time),
        "arrivalDateTime": _dt(leg.arrival_date_time),
        "cabin": None if leg.cabin is None else {
            "code": leg.cabin.code,
            "language": leg.cabin.language,
            "name": leg.cabin.name,
            "sabreCode": leg.cabin.sabre_code,
            "shortName": leg.cabin.short_name,
        },
        "destinationAirportCode": leg.destination_airport_code,
        "originAirportCode": leg.origin_airport_code,
        "status": leg.status,
        "flightNumber": leg.flight_number,
        "standby": None if leg.standby is None else _encode_standby(leg.standby),
        "metadata": {
            "latestFlightStatus": None if status is None else _encode_flight_status(status),
        },
    }


def _encode_segment(seg: Segment) -> dict[str, Any]:
    return {
        "type": _enum_value(seg.type),
        "durationMinutes": seg.duration_minutes,
        "itineraryAirlineType": seg.itinerary_airline_type,
        "marketingAirlineCode": seg.marketing_airline_code,
        "operatingAirlineName": seg.operating_airline_name,
        "departureDateTime": _dt(seg.departure_date_time),
        "destinationAirportCode": seg.destination_airport_code,
        "originAirportCode": seg.origin_airport_code,
        "flightNumber": seg.flight_number,
        "arrivalDateTime": _dt(seg.arrival_date_time),
        "legs": None if seg.legs is None else [_encode_leg(leg) for leg in seg.legs],
    }


def _encode_origin_destination(od: OriginDestination) -> dict[str, Any]:
    return {
        "arrivalDateTime": _dt(od.arrival_date_time),
        "departureDateTime": _dt(od.departure_date_time),
        "destinationAirportCode": od.destination_airport_code,
        "durationMinutes": od.duration_minutes,
        "originAirportCode": od.origin_airport_code,
        "segments": [_encode_segment(s) for s in od.segments],
        "metadata": {
            "hasHandledCheckInNotification": od.metadata.has_handled_check_in_notification,
        },
    }


def _encode_unconfirmed_leg(leg: UnconfirmedLeg) -> dict[str, Any]:
    return {
        "arrivalDateTime": _dt(leg.arrival_date_time),
        "departureDateTime": _dt(leg.departure_date_time),
        "destinationAirportCode": leg.destination_airport_code,
        "originAirportCode": leg.origin_airport_code,
        "durationMinutes": leg.duration_minutes,
        "flightNumber": leg.flight_number,
        "marketingAirlineCode": leg.marketing_airline_code,
        "operatingAirlineName": leg.operating_airline_name,
        "status": leg.status,
        "type": _enum_value(leg.type),
    }


def encode_metadata(meta: TripMetadata) -> dict[str, Any]:
    return {
        "isSoftDeleted": meta.is_soft_deleted,
        "isCachedDataStale": meta.is_cached_data_stale,
        "isPrematurelyComplete": meta.is_prematurely_complete,
        "refreshDate": _dt(meta.refresh_date),
        "tripName": meta.trip_name,
        "bookingLastName": meta.booking_last_name,
        "bookingAccountIDHash": meta.booking_account_id_hash,
    }


def decode_metadata(obj: Any, path: str = "metadata") -> TripMetadata:
    return _decode_trip_metadata(_Fields(obj, path, SourceKind.LOCAL_STORE))


def encode_trip(trip: Trip) -> dict[str, Any]:
    """Encode to the local-store shape. Total for any constructed Trip."""
    e = trip.eligibility
    return {
        "pnr": trip.pnr,
        "aaaPseudoCityCode": trip.pseudo_city_code,
        "guests": [
            {
                "firstName": g.first_name,
                "lastName": g.last_name,
                "title": g.title,
                "westjetId": g.westjet_id_hash,
            }
            for g in trip.guests
        ],
        "originDestinations": [_encode_origin_destination(od) for od in trip.origin_destinations],
        "unconfirmedLegs": [_encode_unconfirmed_leg(leg) for leg in trip.unconfirmed_legs],
        "bookingNumber": trip.booking_number,
        "fullyUnconfirmed": trip.fully_unconfirmed,
        "priorityCode": None if trip.priority is None else trip.priority.original_code,
        "eligibility": None if e is None else {
            "CHG": _encode_eligibility_status(e.change_status),
            "CXL": _encode_eligibility_status(e.cancel_status),
            "Seat": _encode_eligibility_status(e.seats_status),
            "Info": _encode_eligibility_status(e.guests_status),
        },
        "metadata": encode_metadata(trip.metadata),
    }


def encode(trip: Trip) -> bytes:
    return json.dumps(encode_trip(trip), indent=2).encode()


def encode_collection(trips: list[Trip]) -> bytes:
    doc = {"version": FORMAT_VERSION, "trips": [encode_trip(t) for t in trips]}
    return json.dumps(doc, indent=2).encode()

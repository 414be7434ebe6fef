"""Tests for tripstore.codec: source kinds, defaults, field paths, legacy layouts."""

from __future__ import annotations

import json

import pytest

from tripstore.codec import (
    SourceKind,
    decode,
    decode_collection,
    decode_int_like,
    decode_trip,
    encode,
    encode_collection,
    encode_trip,
    unique_by_key,
)
from tripstore.errors import SchemaViolation
from tripstore.models import LegType, StandbyPriorityType, TripMetadata

from conftest import make_trip

EXTERNAL = SourceKind.EXTERNAL_PAYLOAD
LOCAL = SourceKind.LOCAL_STORE


def _status(**overrides):
    status = {
        "actualGateArrival": "2019-04-02T14:10:00Z",
        "actualGateDeparture": "2019-04-02T09:35:00Z",
        "arrivalAirportCode": "YVR",
        "arrivalGate": "C41",
        "arrivalTerminal": "M",
        "arrivaldelay": "1",
        "carrierCode": "WS",
        "departureAirportCode": "YYZ",
        "departureGate": "D12",
        "departureTerminal": "3",
        "departuredelay": "false",
        "flightNumber": "701",
        "scheduledGateArrival": "2019-04-02T14:05:00Z",
        "scheduledGateDeparture": "2019-04-02T09:30:00Z",
        "status": "L",
        "arrivalUTCRegion": "America/Vancouver",
    }
    status.update(overrides)
    return status


# ---------------------------------------------------------------------------
# External payload defaults
# ---------------------------------------------------------------------------


class TestExternalDefaults:
    def test_minimal_payload_gets_defaults(self):
        trip = decode_trip({"pnr": "MIN001", "aaaPseudoCityCode": "YYC1"}, EXTERNAL)

        assert trip.metadata.is_soft_deleted is False
        assert trip.metadata.is_cached_data_stale is False
        assert trip.metadata.trip_name is None
        assert trip.guests == []
        assert trip.origin_destinations == []
        assert trip.unconfirmed_legs == []
        assert trip.priority is None
        assert trip.eligibility is None

    def test_local_round_trip_of_defaulted_record_is_idempotent(self):
        trip = decode_trip({"pnr": "MIN001", "aaaPseudoCityCode": "YYC1"}, EXTERNAL)

        again = decode(encode(trip), LOCAL)

        assert again == trip
        assert again.metadata == TripMetadata()

    def test_external_metadata_block_is_ignored(self, payload):
        payload["metadata"] = {"isSoftDeleted": True, "tripName": "Injected"}

        trip = decode_trip(payload, EXTERNAL)

        assert trip.metadata == TripMetadata()

    def test_nested_metadata_defaults_for_external(self, payload):
        trip = decode_trip(payload, EXTERNAL)

        od = trip.origin_destinations[0]
        assert od.metadata.has_handled_check_in_notification is False
        assert od.segments[0].legs[0].metadata.latest_flight_status is None

    def test_external_leg_metadata_is_ignored(self, payload):
        leg = payload["originDestinations"][0]["segments"][0]["legs"][0]
        leg["metadata"] = {"latestFlightStatus": _status()}

        # external decode ignores leg metadata entirely
        trip = decode_trip(payload, EXTERNAL)
        assert trip.origin_destinations[0].segments[0].legs[0].metadata.latest_flight_status is None


class TestLocalStore:
    def test_missing_metadata_fails_for_local(self, payload):
        with pytest.raises(SchemaViolation) as exc_info:
            decode_trip(payload, LOCAL)
        assert exc_info.value.field == "originDestinations[0].segments[0].legs[0].metadata"

    def test_full_trip_round_trip(self):
        trip = make_trip("RT0001", name="Ski week", booking_last_name="Lovelace")

        assert decode(encode(trip), LOCAL) == trip

    def test_flight_status_round_trip(self):
        trip = make_trip("FS0001")
        wire = encode_trip(trip)
        wire["originDestinations"][0]["segments"][0]["legs"][0]["metadata"] = {
            "latestFlightStatus": {**_status(), "metadata": {"fetchDate": "2019-04-02T08:00:00Z"}},
        }

        decoded = decode_trip(wire, LOCAL)
        status = decoded.origin_destinations[0].segments[0].legs[0].metadata.latest_flight_status

        assert status.arrival_delay is True
        assert status.departure_delay is False
        assert status.flight_number == 701
        assert status.carrier_code.is_westjet
        assert status.metadata.fetch_date.year == 2019
        assert decode(encode(decoded), LOCAL) == decoded

    def test_unknown_time_zone_region_is_rejected(self):
        wire = encode_trip(make_trip("TZ0001"))
        wire["originDestinations"][0]["segments"][0]["legs"][0]["metadata"] = {
            "latestFlightStatus": {**_status(arrivalUTCRegion="Mars/Olympus"), "metadata": {"fetchDate": None}},
        }

        with pytest.raises(SchemaViolation) as exc_info:
            decode_trip(wire, LOCAL)

        assert exc_info.value.field.endswith("latestFlightStatus.arrivalUTCRegion")


# ---------------------------------------------------------------------------
# Int-like numbers
# ---------------------------------------------------------------------------


class TestIntLike:
    @pytest.mark.parametrize("value", [45, "45", 45.0, " 45 "])
    def test_accepted(self, value):
        assert decode_int_like(value, "durationMinutes") == 45

    @pytest.mark.parametrize("value", ["abc", 45.5, True, None, [45]])
    def test_rejected(self, value):
        with pytest.raises(SchemaViolation, match="not an int or int-like string"):
            decode_int_like(value, "durationMinutes")

    def test_string_and_number_decode_identically(self, payload):
        as_string = decode_trip(payload, EXTERNAL)
        payload["originDestinations"][0]["durationMinutes"] = 275
        as_number = decode_trip(payload, EXTERNAL)

        assert as_string.origin_destinations[0].duration_minutes == 275
        assert as_string == as_number

    def test_bad_duration_reports_field_path(self, payload):
        payload["originDestinations"][0]["segments"][0]["legs"][0]["durationMinutes"] = "abc"

        with pytest.raises(SchemaViolation) as exc_info:
            decode_trip(payload, EXTERNAL)

        assert exc_info.value.field == "originDestinations[0].segments[0].legs[0].durationMinutes"
        assert exc_info.value.reason == "not an int or int-like string"


# ---------------------------------------------------------------------------
# Tolerant enums
# ---------------------------------------------------------------------------


class TestUnknownEnums:
    def test_unknown_priority_code(self, payload):
        payload["priorityCode"] = "ZZ"

        trip = decode_trip(payload, EXTERNAL)

        assert trip.priority.type is StandbyPriorityType.UNKNOWN
        assert trip.priority.original_code == "ZZ"
        assert trip.priority.priority_code == ""

    def test_unknown_code_survives_local_round_trip(self, payload):
        payload["priorityCode"] = "ZZ"
        trip = decode_trip(payload, EXTERNAL)

        assert decode(encode(trip), LOCAL).priority.original_code == "ZZ"

    def test_unknown_leg_type(self, payload):
        payload["originDestinations"][0]["segments"][1]["type"] = "ZZ"

        trip = decode_trip(payload, EXTERNAL)

        assert trip.origin_destinations[0].segments[1].type is LegType.UNKNOWN

    def test_leg_type_is_case_insensitive(self, payload):
        trip = decode_trip(payload, EXTERNAL)

        segments = trip.origin_destinations[0].segments
        assert segments[0].type is LegType.FLIGHT
        assert segments[1].type is LegType.LAYOVER
        assert segments[1].legs is None


class TestPriority:
    def test_code_maps_to_classification(self):
        trip = make_trip()
        assert trip.priority.type is StandbyPriorityType.PARENT

    def test_display_threshold(self, payload):
        payload["priorityCode"] = "3BT"
        assert decode_trip(payload, EXTERNAL).priority.has_sufficient_priority_to_display_details()
        payload["priorityCode"] = "4B"
        assert not decode_trip(payload, EXTERNAL).priority.has_sufficient_priority_to_display_details()

    def test_excluded(self, payload):
        payload["priorityCode"] = "1BT"
        assert decode_trip(payload, EXTERNAL).priority.is_excluded_priority()


# ---------------------------------------------------------------------------
# Standby tolerance
# ---------------------------------------------------------------------------


class TestStandby:
    def test_standby_strings_decoded(self, payload):
        trip = decode_trip(payload, EXTERNAL)
        standby = trip.origin_destinations[0].segments[0].legs[0].standby

        assert standby.listed == "3"
        assert standby.unsold == "12"
        assert standby.priority_list[0].classification.type is StandbyPriorityType.EMPLOYEE_OR_DESIGNATE

    def test_malformed_priority_list_is_dropped(self, payload):
        leg = payload["originDestinations"][0]["segments"][0]["legs"][0]
        leg["standby"]["priorityList"] = [{"firstName": "No", "lastName": "Classification"}]
        leg["standby"]["lid"] = 174

        trip = decode_trip(payload, EXTERNAL)
        standby = trip.origin_destinations[0].segments[0].legs[0].standby

        assert standby.priority_list == []
        assert standby.lid == ""


# ---------------------------------------------------------------------------
# Failures are whole-record and attributed
# ---------------------------------------------------------------------------


class TestFailures:
    def test_missing_required_field(self, payload):
        del payload["aaaPseudoCityCode"]

        with pytest.raises(SchemaViolation) as exc_info:
            decode_trip(payload, EXTERNAL)

        assert exc_info.value.field == "aaaPseudoCityCode"
        assert "missing" in exc_info.value.reason

    def test_wrong_type(self, payload):
        payload["guests"][1]["lastName"] = 7

        with pytest.raises(SchemaViolation) as exc_info:
            decode_trip(payload, EXTERNAL)

        assert exc_info.value.field == "guests[1].lastName"

    def test_invalid_timestamp(self, payload):
        payload["originDestinations"][0]["departureDateTime"] = "next tuesday"

        with pytest.raises(SchemaViolation, match="originDestinations\\[0\\].departureDateTime"):
            decode_trip(payload, EXTERNAL)

    def test_not_an_object(self):
        with pytest.raises(SchemaViolation) as exc_info:
            decode_trip(["ABC123"], EXTERNAL)
        assert exc_info.value.field == ""
        assert str(exc_info.value).startswith("<root>:")

    def test_invalid_json(self):
        with pytest.raises(SchemaViolation, match="invalid JSON"):
            decode(b"{not json", EXTERNAL)

    def test_schema_violation_is_a_value_error(self):
        with pytest.raises(ValueError):
            decode_int_like("abc", "x")


# ---------------------------------------------------------------------------
# Collections and legacy layouts
# ---------------------------------------------------------------------------


class TestCollection:
    def test_empty_input_is_empty_set(self):
        assert decode_collection(b"") == []
        assert decode_collection(b"   \n") == []

    def test_written_as_v2(self):
        trips = [make_trip("AAA111"), make_trip("BBB222")]

        doc = json.loads(encode_collection(trips))

        assert doc["version"] == 2
        assert [t["pnr"] for t in doc["trips"]] == ["AAA111", "BBB222"]
        assert decode_collection(encode_collection(trips)) == trips

    def test_flat_v0_list(self):
        data = json.dumps([{"PNR": "OLD001", "name": "Ski trip"}, {"PNR": "OLD002"}])

        trips = decode_collection(data)

        assert [t.pnr for t in trips] == ["OLD001", "OLD002"]
        assert trips[0].display_name == "Ski trip"
        assert trips[1].display_name == "OLD002"

    def test_keyed_v1_table(self):
        trip = make_trip("KEY001", name="Keyed")
        data = json.dumps({"KEY001": encode_trip(trip)})

        assert decode_collection(data) == [trip]

    def test_keyed_v1_mismatched_key(self):
        data = json.dumps({"OTHER1": encode_trip(make_trip("KEY001"))})

        with pytest.raises(SchemaViolation) as exc_info:
            decode_collection(data)
        assert exc_info.value.field == "OTHER1.pnr"

    def test_unsupported_version(self):
        with pytest.raises(SchemaViolation) as exc_info:
            decode_collection(json.dumps({"version": 99, "trips": []}))
        assert exc_info.value.field == "version"

    def test_error_path_includes_list_index(self):
        good = encode_trip(make_trip("GOOD01"))
        bad = encode_trip(make_trip("BAD001"))
        bad["originDestinations"][0]["durationMinutes"] = "abc"

        with pytest.raises(SchemaViolation) as exc_info:
            decode_collection(json.dumps({"version": 2, "trips": [good, bad]}))

        assert exc_info.value.field == "trips[1].originDestinations[0].durationMinutes"

    def test_duplicate_keys_later_wins_in_place(self):
        first = make_trip("DUP001", name="first")
        other = make_trip("OTH001")
        second = make_trip("DUP001", name="second")

        trips = unique_by_key([first, other, second])

        assert [t.pnr for t in trips] == ["DUP001", "OTH001"]
        assert trips[0].metadata.trip_name == "second"

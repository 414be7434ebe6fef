"""Shared fixtures for the tripstore test suite.

Design principles:
- Filesystem isolation: every store lives under tmp_path
- No mocking of file I/O or locking: tests hit real flock / rename / SQLite
- Payload factories: realistic upstream booking JSON, tweakable per test
"""

from __future__ import annotations

import contextlib
import copy
import fcntl
import os
from datetime import UTC, datetime
from typing import Any

import pytest

from tripstore.codec import SourceKind, decode_trip
from tripstore.coordination import lock_path_for
from tripstore.models import Trip, TripMetadata
from tripstore.store import DeletePolicy, TripStore

_PAYLOAD: dict[str, Any] = {
    "pnr": "ABC123",
    "aaaPseudoCityCode": "YYC1",
    "guests": [
        {"firstName": "Ada", "lastName": "Lovelace", "title": "MS", "westjetId": "hash-ada"},
        {"firstName": "Charles", "lastName": "Babbage"},
    ],
    "originDestinations": [
        {
            "arrivalDateTime": "2019-04-02T14:05:00Z",
            "departureDateTime": "2019-04-02T09:30:00Z",
            "destinationAirportCode": "YVR",
            "originAirportCode": "YYZ",
            "durationMinutes": "275",
            "segments": [
                {
                    "type": "FLIGHT",
                    "durationMinutes": 275,
                    "marketingAirlineCode": "WS",
                    "departureDateTime": "2019-04-02T09:30:00Z",
                    "arrivalDateTime": "2019-04-02T14:05:00Z",
                    "originAirportCode": "YYZ",
                    "destinationAirportCode": "YVR",
                    "flightNumber": "701",
                    "legs": [
                        {
                            "type": "flight",
                            "durationMinutes": "275",
                            "marketingAirlineCode": "WS",
                            "departureDateTime": "2019-04-02T09:30:00Z",
                            "arrivalDateTime": "2019-04-02T14:05:00Z",
                            "originAirportCode": "YYZ",
                            "destinationAirportCode": "YVR",
                            "flightNumber": "701",
                            "status": "HK",
                            "cabin": {
                                "code": "Y",
                                "language": "en",
                                "name": "Economy",
                                "sabreCode": "Y",
                                "shortName": "Econ",
                            },
                            "standby": {
                                "lid": "174",
                                "nonrevs": "3",
                                "available": "12",
                                "cap": "174",
                                "priorityList": [
                                    {"firstName": "Ada", "lastName": "Lovelace", "classification": "2B"},
                                ],
                            },
                        },
                    ],
                },
                {"type": "layover", "durationMinutes": "50"},
            ],
        },
    ],
    "unconfirmedLegs": [],
    "bookingNumber": None,
    "fullyUnconfirmed": False,
    "priorityCode": "3B",
    "eligibility": {
        "CHG": {"eligible": True},
        "CXL": {"eligible": True},
        "Seat": {"eligible": False, "errorCode": "E12"},
        "Info": {"eligible": True},
    },
}


@pytest.fixture
def payload() -> dict[str, Any]:
    """A fresh, mutable copy of a full upstream booking payload."""
    return copy.deepcopy(_PAYLOAD)


def make_trip(pnr: str = "ABC123", name: str | None = None, **meta: Any) -> Trip:
    """A trip decoded from the sample payload, with PNR and metadata overridden."""
    raw = copy.deepcopy(_PAYLOAD)
    raw["pnr"] = pnr
    trip = decode_trip(raw, SourceKind.EXTERNAL_PAYLOAD)
    metadata = TripMetadata(
        trip_name=name,
        refresh_date=datetime(2019, 3, 20, 12, 0, tzinfo=UTC),
        **meta,
    )
    return Trip(
        pnr=trip.pnr,
        pseudo_city_code=trip.pseudo_city_code,
        guests=trip.guests,
        origin_destinations=trip.origin_destinations,
        unconfirmed_legs=trip.unconfirmed_legs,
        booking_number=trip.booking_number,
        fully_unconfirmed=trip.fully_unconfirmed,
        priority=trip.priority,
        eligibility=trip.eligibility,
        metadata=metadata,
    )


@pytest.fixture
def trip_factory():
    return make_trip


@pytest.fixture(params=["document", "table"])
def backend_name(request: pytest.FixtureRequest) -> str:
    return request.param


@pytest.fixture
def store_path(tmp_path, backend_name):
    return tmp_path / "shared" / ("trips.json" if backend_name == "document" else "trips.db")


@pytest.fixture
def make_store(store_path, backend_name):
    """Factory for stores on the shared path; each call is an independent 'process view'."""
    from tripstore.backends import get_backend
    from tripstore.coordination import FileCoordinator

    created: list[TripStore] = []

    def factory(
        *,
        delete_policy: DeletePolicy = DeletePolicy.HARD,
        watch: bool = False,
        lock_timeout: float | None = 5.0,
    ) -> TripStore:
        store = TripStore(
            store_path,
            backend=get_backend(backend_name),
            coordinator=FileCoordinator(lock_timeout=lock_timeout, poll_interval=0.01),
            delete_policy=delete_policy,
            watch=watch,
            settle_delay=0.02,
            poll_interval=0.05,
        )
        created.append(store)
        return store

    yield factory
    for store in created:
        store.close()


@pytest.fixture
def store(make_store) -> TripStore:
    return make_store()


class RecordingObserver:
    """Observer that keeps every delivered record set."""

    def __init__(self) -> None:
        self.calls: list[list[Trip]] = []

    def on_records_changed(self, records) -> None:
        self.calls.append(list(records))

    @property
    def last_pnrs(self) -> list[str]:
        return [t.pnr for t in self.calls[-1]] if self.calls else []


@pytest.fixture
def observer_factory():
    return RecordingObserver


@contextlib.contextmanager
def held(path, mode):
    """Hold a flock on path's lock file through an independent open file description."""
    lock_path = lock_path_for(path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(lock_path, os.O_RDWR | os.O_CREAT)
    try:
        fcntl.flock(fd, mode)
        yield
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)

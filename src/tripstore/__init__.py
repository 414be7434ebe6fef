"""Shared trip store: one JSON (or SQLite) file as the source of truth for
several cooperating processes, with an in-process cache and change fan-out.

Layout:
    <storage.dir>/
        trips.json        # canonical file: {"version": 2, "trips": [...]}
        trips.json.lock   # flock target for readers (shared) / writers (exclusive)

Concurrency:
    Writers hold flock(LOCK_EX) on the .lock sidecar for the whole
    read-merge-write and publish the new file with an atomic rename.
    Readers hold flock(LOCK_SH). Each process watches the directory
    (inotify) and refreshes its cache when another process writes.
"""

from tripstore.bridge import UpdateResult, import_trip, widget_update
from tripstore.codec import SourceKind, decode, decode_collection, encode, encode_collection
from tripstore.config import StoreConfig, init_config, load_config
from tripstore.errors import (
    CoordinationFailure,
    DecodeFailed,
    NotFound,
    SchemaViolation,
    StoreError,
    StoreUnavailable,
)
from tripstore.models import Trip, TripMetadata
from tripstore.notifier import ChangeNotifier, TripObserver
from tripstore.store import DeletePolicy, TripStore, open_store

__all__ = [
    "ChangeNotifier",
    "CoordinationFailure",
    "DecodeFailed",
    "DeletePolicy",
    "NotFound",
    "SchemaViolation",
    "SourceKind",
    "StoreConfig",
    "StoreError",
    "StoreUnavailable",
    "Trip",
    "TripMetadata",
    "TripObserver",
    "TripStore",
    "UpdateResult",
    "decode",
    "decode_collection",
    "encode",
    "encode_collection",
    "import_trip",
    "init_config",
    "load_config",
    "open_store",
    "widget_update",
]

"""Physical formats for the canonical file.

DocumentBackend   one JSON document holding the whole set (codec v2 layout).
TableBackend      SQLite file, one row per trip; nested lists and objects are
                  JSON text columns, locally-owned state lives in the
                  ``metadata`` blob column.

Backends only read and write; locking is the caller's job (TripStore runs
every call inside FileCoordinator). Both translate OSError / sqlite3.Error to
StoreUnavailable and codec failures to DecodeFailed.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import TYPE_CHECKING, Any

from tripstore.codec import SourceKind, decode_collection, decode_trip, encode_collection, encode_trip
from tripstore.coordination import atomic_write_bytes
from tripstore.errors import DecodeFailed, SchemaViolation, StoreUnavailable

if TYPE_CHECKING:
    from pathlib import Path

    from tripstore.models import Trip

logger = logging.getLogger("tripstore.backends")

Signature = tuple[tuple[int, int, int], ...]

_MISSING = (0, 0, 0)


def _stat_signature(path: Path) -> tuple[int, int, int]:
    try:
        st = path.stat()
    except FileNotFoundError:
        return _MISSING
    return (st.st_mtime_ns, st.st_size, st.st_ino)


class Backend:
    """Interface shared by the physical formats."""

    name = ""

    def read_all(self, path: Path) -> list[Trip]:
        raise NotImplementedError

    def write_all(self, path: Path, trips: list[Trip]) -> None:
        raise NotImplementedError

    def watched_names(self, path: Path) -> set[str]:
        """File names in path.parent whose change means the set may have changed."""
        return {path.name}

    def signature(self, path: Path) -> Signature:
        """Cheap fingerprint of the on-disk state; equal signatures mean no change."""
        return tuple(_stat_signature(path.with_name(n)) for n in sorted(self.watched_names(path)))


# ---------------------------------------------------------------------------
# JSON document
# ---------------------------------------------------------------------------

class DocumentBackend(Backend):
    name = "document"

    def __init__(self, *, create_missing: bool = True) -> None:
        self.create_missing = create_missing

    def read_all(self, path: Path) -> list[Trip]:
        try:
            data = path.read_bytes()
        except FileNotFoundError as exc:
            if self.create_missing:
                return []
            msg = f"canonical file not found: {path}"
            raise StoreUnavailable(msg) from exc
        except OSError as exc:
            msg = f"cannot read {path}: {exc}"
            raise StoreUnavailable(msg) from exc
        try:
            return decode_collection(data)
        except SchemaViolation as exc:
            raise DecodeFailed(str(path), exc) from exc

    def write_all(self, path: Path, trips: list[Trip]) -> None:
        data = encode_collection(trips)
        try:
            atomic_write_bytes(path, data)
        except OSError as exc:
            msg = f"cannot write {path}: {exc}"
            raise StoreUnavailable(msg) from exc


# ---------------------------------------------------------------------------
# SQLite table
# ---------------------------------------------------------------------------

_SCHEMA = """
CREATE TABLE IF NOT EXISTS trips (
    pnr                 TEXT PRIMARY KEY,
    position            INTEGER NOT NULL,
    pseudo_city_code    TEXT NOT NULL,
    guests              TEXT NOT NULL,
    origin_destinations TEXT NOT NULL,
    unconfirmed_legs    TEXT NOT NULL,
    booking_number      TEXT,
    fully_unconfirmed   INTEGER NOT NULL,
    priority_code       TEXT,
    eligibility         TEXT,
    metadata            TEXT NOT NULL
)
"""

# column -> wire key; JSON columns are (de)serialised as text
_COLUMNS = [
    ("pnr", "pnr", False),
    ("pseudo_city_code", "aaaPseudoCityCode", False),
    ("guests", "guests", True),
    ("origin_destinations", "originDestinations", True),
    ("unconfirmed_legs", "unconfirmedLegs", True),
    ("booking_number", "bookingNumber", False),
    ("fully_unconfirmed", "fullyUnconfirmed", False),
    ("priority_code", "priorityCode", False),
    ("eligibility", "eligibility", True),
    ("metadata", "metadata", True),
]


def _connect(path: Path) -> sqlite3.Connection:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), isolation_level=None)
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute(_SCHEMA)
    except sqlite3.Error:
        conn.close()
        raise
    return conn


class TableBackend(Backend):
    name = "table"

    def watched_names(self, path: Path) -> set[str]:
        # WAL commits land in the -wal file until a checkpoint rewrites the main file.
        return {path.name, path.name + "-wal"}

    def read_all(self, path: Path) -> list[Trip]:
        if not path.exists():
            return []
        columns = ", ".join(c for c, _, _ in _COLUMNS)
        try:
            conn = _connect(path)
            try:
                rows = conn.execute(f"SELECT {columns} FROM trips ORDER BY position").fetchall()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            msg = f"cannot read {path}: {exc}"
            raise StoreUnavailable(msg) from exc
        try:
            return [self._decode_row(row) for row in rows]
        except SchemaViolation as exc:
            raise DecodeFailed(str(path), exc) from exc

    def _decode_row(self, row: tuple[Any, ...]) -> Trip:
        pnr = row[0]
        obj: dict[str, Any] = {}
        for value, (column, key, is_json) in zip(row, _COLUMNS, strict=True):
            if is_json and value is not None:
                try:
                    value = json.loads(value)
                except json.JSONDecodeError as exc:
                    raise SchemaViolation(f"{pnr}.{key}", f"column {column} holds invalid JSON") from exc
            elif column == "fully_unconfirmed":
                value = bool(value)
            obj[key] = value
        return decode_trip(obj, SourceKind.LOCAL_STORE, path=str(pnr))

    def write_all(self, path: Path, trips: list[Trip]) -> None:
        rows = []
        for position, trip in enumerate(trips):
            wire = encode_trip(trip)
            row: list[Any] = []
            for _column, key, is_json in _COLUMNS:
                value = wire[key]
                row.append(json.dumps(value) if is_json and value is not None else value)
            rows.append((*row[:1], position, *row[1:]))

        columns = ["pnr", "position", *(c for c, _, _ in _COLUMNS[1:])]
        placeholders = ", ".join("?" for _ in columns)
        try:
            conn = _connect(path)
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    conn.execute("DELETE FROM trips")
                    conn.executemany(
                        f"INSERT INTO trips ({', '.join(columns)}) VALUES ({placeholders})",
                        rows,
                    )
                except sqlite3.Error:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
            finally:
                conn.close()
        except sqlite3.Error as exc:
            msg = f"cannot write {path}: {exc}"
            raise StoreUnavailable(msg) from exc


_BACKENDS: dict[str, type[Backend]] = {
    DocumentBackend.name: DocumentBackend,
    TableBackend.name: TableBackend,
}


def get_backend(name: str) -> Backend:
    try:
        return _BACKENDS[name]()
    except KeyError:
        msg = f"unknown backend {name!r} (expected one of: {', '.join(sorted(_BACKENDS))})"
        raise ValueError(msg) from None


def describe(path: Path) -> str:
    """Short human description of the file state, for `tripstore status`."""
    if not path.exists():
        return "missing"
    size = path.stat().st_size
    return f"{size / 1000:.1f} kB"

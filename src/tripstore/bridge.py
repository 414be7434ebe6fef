"""Entry points for collaborators that sit outside the store.

import_trip()     an "add trip" flow hands over one upstream booking payload
                  (e.g. a bundled JSON document); it is decoded as an external
                  payload, so locally-owned metadata always starts at defaults.
widget_update()   a widget/extension asks for a coordinated refresh and gets a
                  result it can map to its platform's "update finished" signal.
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING

from tripstore.codec import SourceKind, decode
from tripstore.errors import StoreError

if TYPE_CHECKING:
    from tripstore.models import Trip
    from tripstore.store import TripStore

logger = logging.getLogger("tripstore.bridge")


class UpdateResult(enum.Enum):
    NEW_DATA = "new_data"
    NO_DATA = "no_data"
    FAILED = "failed"


async def import_trip(store: TripStore, payload: bytes | str) -> Trip:
    """Decode an upstream payload and insert it. SchemaViolation leaves the store untouched."""
    trip = decode(payload, SourceKind.EXTERNAL_PAYLOAD)
    await store.insert(trip)
    logger.info("imported trip %s", trip.pnr)
    return trip


async def widget_update(store: TripStore) -> UpdateResult:
    before = store.fetch_all()
    try:
        after = await store.refresh()
    except StoreError:
        logger.exception("widget refresh failed")
        return UpdateResult.FAILED
    return UpdateResult.NO_DATA if after == before else UpdateResult.NEW_DATA

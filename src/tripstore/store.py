"""TripStore: the process-wide handle on the shared trip file.

One TripStore per process, built once and passed to whatever needs it:

    store = TripStore.from_config(load_config())
    await store.refresh()                 # coordinated read -> cache
    store.fetch_all()                     # cache only, never touches disk
    await store.insert(trip)              # coordinated read-merge-write
    store.notifier.subscribe(observer)    # arms the change detector

Every mutation re-reads the canonical file under the exclusive lock, applies
the change to that fresh copy and writes the full set back, so a write from
another process is never lost. Operations from this process are serialised
by an asyncio.Lock before they reach the cross-process lock.

Once a write has started it runs to completion even if the awaiting caller is
cancelled: the file, the cache and the observers are all updated.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

from tripstore.backends import Backend, DocumentBackend, get_backend
from tripstore.coordination import FileCoordinator
from tripstore.errors import NotFound, StoreError
from tripstore.notifier import ChangeNotifier
from tripstore.watcher import ChangeDetector

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine

    from tripstore.backends import Signature
    from tripstore.config import StoreConfig
    from tripstore.models import Trip

logger = logging.getLogger("tripstore.store")


class DeletePolicy(enum.Enum):
    HARD = "hard"   # the trip is dropped from the file
    SOFT = "soft"   # the trip stays, flagged metadata.is_soft_deleted


class TripStore:
    def __init__(
        self,
        path: Path | str,
        *,
        backend: Backend | None = None,
        coordinator: FileCoordinator | None = None,
        notifier: ChangeNotifier | None = None,
        delete_policy: DeletePolicy = DeletePolicy.HARD,
        watch: bool = True,
        settle_delay: float = 0.05,
        poll_interval: float = 1.0,
    ) -> None:
        self.path = Path(path)
        self.backend = backend or DocumentBackend()
        self.coordinator = coordinator or FileCoordinator()
        self.notifier = notifier or ChangeNotifier()
        self.delete_policy = delete_policy

        self._cache: list[Trip] = []
        self._signature: Signature | None = None
        self._stale = True
        self._lock = asyncio.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pending: set[asyncio.Future[Any]] = set()
        self._external_lock = threading.Lock()
        self._external_pending = False

        self.detector: ChangeDetector | None = None
        if watch:
            self.detector = ChangeDetector(
                self.path.parent,
                self.backend.watched_names(self.path),
                self.on_external_change,
                settle_delay=settle_delay,
                poll_interval=poll_interval,
            )
            self.notifier.set_activation_hooks(self._arm, self._disarm)

    @classmethod
    def from_config(cls, cfg: StoreConfig) -> TripStore:
        cfg.ensure_dirs()
        return cls(
            cfg.store_path,
            backend=get_backend(cfg.storage.backend),
            coordinator=FileCoordinator(
                lock_timeout=cfg.coordination.lock_timeout,
                poll_interval=cfg.coordination.poll_interval,
            ),
            delete_policy=DeletePolicy(cfg.storage.delete_policy),
            watch=cfg.watcher.enabled,
            settle_delay=cfg.watcher.settle_delay,
            poll_interval=cfg.watcher.poll_interval,
        )

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def fetch_all(self, *, include_deleted: bool = False) -> list[Trip]:
        """Current cache, soft-deleted trips hidden unless include_deleted."""
        if include_deleted:
            return list(self._cache)
        return [t for t in self._cache if t.is_visible]

    def get(self, pnr: str, *, include_deleted: bool = False) -> Trip | None:
        for trip in self.fetch_all(include_deleted=include_deleted):
            if trip.pnr == pnr:
                return trip
        return None

    @property
    def is_stale(self) -> bool:
        """True until the first refresh and after any external-change signal."""
        return self._stale

    def _replace_cache(self, trips: list[Trip], signature: Signature) -> None:
        self._cache = list(trips)
        self._signature = signature
        self._stale = False
        self.notifier.publish(self.fetch_all())

    # ------------------------------------------------------------------
    # Coordinated I/O (runs in a worker thread)
    # ------------------------------------------------------------------

    def _read_locked(self) -> tuple[list[Trip], Signature]:
        def read(path: Path) -> tuple[list[Trip], Signature]:
            return self.backend.read_all(path), self.backend.signature(path)

        return self.coordinator.coordinate_read(self.path, read)

    def _write_locked(self, apply: Callable[[list[Trip]], list[Trip]]) -> tuple[list[Trip], Signature]:
        def write(path: Path) -> tuple[list[Trip], Signature]:
            current = self.backend.read_all(path)
            updated = apply(current)   # raises before anything is written
            self.backend.write_all(path, updated)
            return updated, self.backend.signature(path)

        return self.coordinator.coordinate_write(self.path, write)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def refresh(self) -> list[Trip]:
        """Re-read the canonical file, replace the cache, notify observers.

        Raises StoreUnavailable / CoordinationFailure / DecodeFailed; on any
        failure the previous cache is kept and nobody is notified.
        """
        return await self._run(self._refresh())

    async def _refresh(self) -> list[Trip]:
        async with self._lock:
            trips, signature = await asyncio.to_thread(self._read_locked)
            self._replace_cache(trips, signature)
            logger.debug("refreshed %d trips from %s", len(trips), self.path)
            return self.fetch_all()

    async def refresh_if_changed(self) -> bool:
        """Refresh only when the file differs from what the cache was built from."""
        # Under the lock so an in-flight write has recorded its signature first.
        async with self._lock:
            signature = await asyncio.to_thread(self.backend.signature, self.path)
            if signature == self._signature:
                self._stale = False
                return False
        await self.refresh()
        return True

    async def insert(self, trip: Trip) -> list[Trip]:
        """Add trip, replacing any trip with the same PNR."""

        def apply(current: list[Trip]) -> list[Trip]:
            index = _index_of(current, trip.pnr)
            if index is None:
                return [*current, trip]
            return [*current[:index], trip, *current[index + 1:]]

        return await self._run(self._mutate("insert", trip.pnr, apply))

    async def update(self, trip: Trip) -> list[Trip]:
        """Replace the trip with the same PNR. Raises NotFound if there is none."""

        def apply(current: list[Trip]) -> list[Trip]:
            index = _index_of(current, trip.pnr)
            if index is None:
                raise NotFound(trip.pnr)
            return [*current[:index], trip, *current[index + 1:]]

        return await self._run(self._mutate("update", trip.pnr, apply))

    async def remove(self, pnr: str) -> list[Trip]:
        """Delete by PNR according to the store's delete policy. Raises NotFound."""
        policy = self.delete_policy

        def apply(current: list[Trip]) -> list[Trip]:
            index = _index_of(current, pnr)
            if index is None:
                raise NotFound(pnr)
            if policy is DeletePolicy.HARD:
                return [*current[:index], *current[index + 1:]]
            existing = current[index]
            if existing.metadata.is_soft_deleted:
                raise NotFound(pnr)
            flagged = dataclasses.replace(
                existing,
                metadata=dataclasses.replace(existing.metadata, is_soft_deleted=True),
            )
            return [*current[:index], flagged, *current[index + 1:]]

        return await self._run(self._mutate(f"remove ({policy.value})", pnr, apply))

    async def remove_at(self, index: int) -> list[Trip]:
        """Remove the trip at a position in fetch_all(); resolved to its PNR first."""
        visible = self.fetch_all()
        if not 0 <= index < len(visible):
            raise NotFound(f"#{index}")
        return await self.remove(visible[index].pnr)

    async def _mutate(
        self,
        op: str,
        pnr: str,
        apply: Callable[[list[Trip]], list[Trip]],
    ) -> list[Trip]:
        async with self._lock:
            try:
                trips, signature = await asyncio.to_thread(self._write_locked, apply)
            except StoreError as exc:
                logger.warning("%s %s failed: %s", op, pnr, exc)
                raise
            self._replace_cache(trips, signature)
            logger.info("%s %s: %d trips in %s", op, pnr, len(trips), self.path)
            return self.fetch_all()

    async def _run(self, coro: Coroutine[Any, Any, list[Trip]]) -> list[Trip]:
        """Run coro as a task that outlives a cancelled caller."""
        self._bind_loop()
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._task_done)
        return await asyncio.shield(task)

    def _task_done(self, task: asyncio.Future[Any]) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.debug("store operation finished with %r", task.exception())

    # ------------------------------------------------------------------
    # External changes
    # ------------------------------------------------------------------

    def _bind_loop(self) -> None:
        loop = asyncio.get_running_loop()
        if self._loop is not loop:
            self._loop = loop
            self.notifier.bind_loop(loop)

    def _arm(self) -> None:
        if self.detector is not None:
            self.detector.start()

    def _disarm(self) -> None:
        if self.detector is not None:
            self.detector.stop(timeout=0)

    def on_external_change(self) -> None:
        """Called from the detector thread; schedules a refresh on the store's loop."""
        self._stale = True
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug("change signal ignored: store not bound to a running loop")
            return
        with self._external_lock:
            if self._external_pending:
                return
            self._external_pending = True
        coro = self._sync_external()
        try:
            asyncio.run_coroutine_threadsafe(coro, loop)
        except RuntimeError:
            coro.close()
            with self._external_lock:
                self._external_pending = False
            logger.debug("change signal ignored: loop is shutting down")

    async def _sync_external(self) -> None:
        with self._external_lock:
            self._external_pending = False
        try:
            if await self.refresh_if_changed():
                logger.info("external change picked up: %d trips", len(self._cache))
        except StoreError as exc:
            logger.warning("refresh after external change failed, keeping cache: %s", exc)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def drain(self) -> None:
        """Wait for in-flight operations, including ones whose caller gave up."""
        pending = [t for t in self._pending if not t.done()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def close(self) -> None:
        if self.detector is not None:
            self.detector.stop()

    async def __aenter__(self) -> TripStore:
        self._bind_loop()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.drain()
        self.close()


def _index_of(trips: list[Trip], pnr: str) -> int | None:
    for i, trip in enumerate(trips):
        if trip.pnr == pnr:
            return i
    return None


async def open_store(cfg: StoreConfig) -> TripStore:
    """Build the store from config and load the cache once."""
    store = TripStore.from_config(cfg)
    await store.refresh()
    return store

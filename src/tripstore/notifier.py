"""In-process fan-out of "trips changed" events.

Observers are any object with ``on_records_changed(records)``. They are held
by weak reference under a stable key (caller-supplied, else ``id(observer)``),
so subscribing never keeps an observer alive; an observer that is garbage
collected simply drops out, as if it had unsubscribed.

The notifier owns the External-Change Detector's on/off switch: ``on_active``
fires when the first observer subscribes and ``on_inactive`` when the last one
leaves, so an idle process holds no watch.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import weakref
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable, Sequence

    from tripstore.models import Trip

logger = logging.getLogger("tripstore.notifier")


class TripObserver(Protocol):
    def on_records_changed(self, records: Sequence[Trip]) -> None: ...


class ChangeNotifier:
    """Registry of observers plus publish().

    When bound to an event loop (``bind_loop``), publish() called from another
    thread is marshalled onto that loop, so observers are only ever called on
    the loop thread.
    """

    def __init__(
        self,
        on_active: Callable[[], None] | None = None,
        on_inactive: Callable[[], None] | None = None,
    ) -> None:
        self._observers: dict[Hashable, weakref.ref[Any]] = {}
        self._lock = threading.RLock()
        self._on_active = on_active
        self._on_inactive = on_inactive
        self._loop: asyncio.AbstractEventLoop | None = None

    def set_activation_hooks(
        self,
        on_active: Callable[[], None] | None,
        on_inactive: Callable[[], None] | None,
    ) -> None:
        self._on_active = on_active
        self._on_inactive = on_inactive

    def bind_loop(self, loop: asyncio.AbstractEventLoop | None) -> None:
        self._loop = loop

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    @property
    def active(self) -> bool:
        with self._lock:
            self._prune()
            return bool(self._observers)

    def __len__(self) -> int:
        with self._lock:
            self._prune()
            return len(self._observers)

    def subscribe(self, observer: TripObserver, key: Hashable | None = None) -> Hashable:
        """Register observer; returns the key to unsubscribe with."""
        key = id(observer) if key is None else key
        with self._lock:
            was_active = bool(self._observers)
            self._observers[key] = weakref.ref(observer, self._make_reaper(key))
        logger.debug("observer subscribed: %r", key)
        if not was_active:
            self._activate()
        return key

    def unsubscribe(self, observer_or_key: Any) -> bool:
        """Remove an observer by key or by the observer object itself. Returns False if absent."""
        with self._lock:
            key = self._resolve_key(observer_or_key)
            if key is None:
                return False
            del self._observers[key]
            now_empty = not self._observers
        logger.debug("observer unsubscribed: %r", key)
        if now_empty:
            self._deactivate()
        return True

    def _resolve_key(self, observer_or_key: Any) -> Hashable | None:
        try:
            if observer_or_key in self._observers:
                return observer_or_key  # type: ignore[no-any-return]
        except TypeError:
            pass  # unhashable observer; fall through to identity lookup
        for key, ref in self._observers.items():
            if ref() is observer_or_key:
                return key
        return None

    def _make_reaper(self, key: Hashable) -> Callable[[weakref.ref[Any]], None]:
        def reap(ref: weakref.ref[Any]) -> None:
            with self._lock:
                if self._observers.get(key) is not ref:
                    return
                del self._observers[key]
                now_empty = not self._observers
            logger.debug("observer collected: %r", key)
            if now_empty:
                self._deactivate()

        return reap

    def _prune(self) -> None:
        dead = [k for k, ref in self._observers.items() if ref() is None]
        for k in dead:
            del self._observers[k]

    def _activate(self) -> None:
        if self._on_active is not None:
            self._on_active()

    def _deactivate(self) -> None:
        if self._on_inactive is not None:
            self._on_inactive()

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def publish(self, records: Sequence[Trip]) -> None:
        """Deliver records to every observer subscribed when delivery reaches it."""
        loop = self._loop
        if loop is not None and not loop.is_closed() and not _running_on(loop):
            loop.call_soon_threadsafe(self._deliver, list(records))
            return
        self._deliver(list(records))

    def _deliver(self, records: list[Trip]) -> None:
        with self._lock:
            keys = list(self._observers)
        for key in keys:
            with self._lock:
                ref = self._observers.get(key)
            # Unsubscribed earlier in this round: skip.
            observer = ref() if ref is not None else None
            if observer is None:
                continue
            try:
                observer.on_records_changed(records)
            except Exception:
                logger.exception("observer %r failed handling change", key)


def _running_on(loop: asyncio.AbstractEventLoop) -> bool:
    try:
        return asyncio.get_running_loop() is loop
    except RuntimeError:
        return False

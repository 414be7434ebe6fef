"""inotify watcher for the canonical file.

Watches the directory that holds the canonical file (the file itself is
replaced by rename on every write, so a watch on the file would go stale) and
calls ``on_change()`` after any write by any process:

    detector = ChangeDetector(path.parent, {path.name}, on_change=store.on_external_change)
    detector.start()    # Inactive -> Active
    ...
    detector.stop()     # Active -> Inactive

Events arriving within ``settle_delay`` of each other are coalesced into one
callback. A failing callback is logged and the detector stays active.

Falls back to mtime polling if inotify is unavailable (macOS, some Docker
filesystems).
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from pathlib import Path

logger = logging.getLogger("tripstore.watcher")

_INOTIFY_TIMEOUT_MS = 500      # max latency for noticing stop()
_DEFAULT_SETTLE_DELAY = 0.05
_DEFAULT_POLL_INTERVAL = 1.0
_READY_TIMEOUT = 2.0           # max wait in start() for the watch to be in place


class ChangeDetector:
    """Process-wide watcher for a set of file names in one directory."""

    def __init__(
        self,
        directory: Path,
        names: Iterable[str],
        on_change: Callable[[], None],
        *,
        settle_delay: float = _DEFAULT_SETTLE_DELAY,
        poll_interval: float = _DEFAULT_POLL_INTERVAL,
        use_inotify: bool = True,
    ) -> None:
        self.directory = directory
        self.names = frozenset(names)
        self.on_change = on_change
        self.settle_delay = settle_delay
        self.poll_interval = poll_interval
        self.use_inotify = use_inotify
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._state_lock = threading.Lock()

    @property
    def active(self) -> bool:
        with self._state_lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._state_lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self.directory.mkdir(parents=True, exist_ok=True)
            self._stop = threading.Event()
            ready = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop, ready),
                name=f"tripstore-watcher:{self.directory}",
                daemon=True,
            )
            self._thread.start()
        # Writes after start() returns must not be missed.
        if not ready.wait(_READY_TIMEOUT):
            logger.warning("watcher for %s not ready after %.1fs", self.directory, _READY_TIMEOUT)
        logger.info("watcher active: %s %s", self.directory, sorted(self.names))

    def stop(self, timeout: float | None = 2.0) -> None:
        with self._state_lock:
            thread, self._thread = self._thread, None
            self._stop.set()
        if thread is None:
            return
        if thread is not threading.current_thread():
            thread.join(timeout)
        logger.info("watcher inactive: %s", self.directory)

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _run(self, stop: threading.Event, ready: threading.Event) -> None:
        if self.use_inotify:
            try:
                self._watch_inotify(stop, ready)
                return
            except ImportError:
                logger.warning("inotify_simple not available, falling back to polling")
            except OSError:
                logger.exception("inotify watch failed, falling back to polling")
        self._watch_poll(stop, ready)

    def _fire(self) -> None:
        try:
            self.on_change()
        except Exception:
            logger.exception("change handler failed for %s", self.directory)

    def _watch_inotify(self, stop: threading.Event, ready: threading.Event) -> None:
        import inotify_simple  # type: ignore[import]

        flags = inotify_simple.flags  # type: ignore[attr-defined]
        inotify = inotify_simple.INotify()
        try:
            inotify.add_watch(
                str(self.directory),
                flags.CLOSE_WRITE | flags.MOVED_TO | flags.CREATE | flags.DELETE,
            )
            ready.set()
            settle_ms = max(1, int(self.settle_delay * 1000))
            while not stop.is_set():
                events = inotify.read(timeout=_INOTIFY_TIMEOUT_MS)
                if not any(e.name in self.names for e in events):
                    continue
                # Drain the burst so one refresh covers it.
                while not stop.is_set():
                    more = inotify.read(timeout=settle_ms)
                    if not more:
                        break
                if stop.is_set():
                    break
                logger.debug("change detected in %s", self.directory)
                self._fire()
        finally:
            inotify.close()

    def _snapshot(self) -> dict[str, tuple[int, int, int] | None]:
        snap: dict[str, tuple[int, int, int] | None] = {}
        for name in self.names:
            try:
                st = (self.directory / name).stat()
            except OSError:
                snap[name] = None
                continue
            snap[name] = (st.st_mtime_ns, st.st_size, st.st_ino)
        return snap

    def _watch_poll(self, stop: threading.Event, ready: threading.Event) -> None:
        logger.info("polling %s interval=%.1fs", self.directory, self.poll_interval)
        seen = self._snapshot()
        ready.set()
        while not stop.wait(self.poll_interval):
            current = self._snapshot()
            if current != seen:
                seen = current
                self._fire()

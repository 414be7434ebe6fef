"""Cross-process coordination for the canonical file.

Readers take a shared flock, writers an exclusive one, both on a sidecar
``<file>.lock`` so the lock survives the data file being replaced by rename:

    coordinator = FileCoordinator(lock_timeout=10.0)
    data = coordinator.coordinate_read(path, lambda p: p.read_bytes())
    coordinator.coordinate_write(path, lambda p: atomic_write_bytes(p, data))

Document writes go through atomic_write_bytes() (temp file + fsync +
os.replace), so a reader without the lock still sees either the old or the
new file, never a torn one.

flock is held per open file description: two FileCoordinator calls in the
same process exclude each other just as two processes do.
"""

from __future__ import annotations

import contextlib
import fcntl
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

from tripstore.errors import CoordinationFailure

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

logger = logging.getLogger("tripstore.coordination")

T = TypeVar("T")

_DEFAULT_POLL_INTERVAL = 0.05


def lock_path_for(path: Path) -> Path:
    return path.with_name(path.name + ".lock")


class FileCoordinator:
    """Shared/exclusive advisory locking around a path.

    lock_timeout=None blocks until the lock is granted; otherwise acquisition
    is retried every poll_interval seconds and CoordinationFailure is raised
    once lock_timeout has elapsed.
    """

    def __init__(
        self,
        lock_timeout: float | None = 10.0,
        poll_interval: float = _DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.lock_timeout = lock_timeout
        self.poll_interval = poll_interval

    def coordinate_read(self, path: Path, fn: Callable[[Path], T]) -> T:
        with self._locked(path, fcntl.LOCK_SH):
            return fn(path)

    def coordinate_write(self, path: Path, fn: Callable[[Path], T]) -> T:
        with self._locked(path, fcntl.LOCK_EX):
            return fn(path)

    @contextlib.contextmanager
    def _locked(self, path: Path, mode: int) -> Iterator[None]:
        lock_path = lock_path_for(path)
        try:
            lock_path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o666)
        except OSError as exc:
            msg = f"cannot open lock file {lock_path}: {exc}"
            raise CoordinationFailure(msg) from exc
        try:
            self._acquire(fd, mode, lock_path)
            try:
                yield
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def _acquire(self, fd: int, mode: int, lock_path: Path) -> None:
        kind = "exclusive" if mode == fcntl.LOCK_EX else "shared"
        if self.lock_timeout is None:
            try:
                fcntl.flock(fd, mode)
            except OSError as exc:
                msg = f"{kind} lock on {lock_path} failed: {exc}"
                raise CoordinationFailure(msg) from exc
            return

        deadline = time.monotonic() + self.lock_timeout
        while True:
            try:
                fcntl.flock(fd, mode | fcntl.LOCK_NB)
                return
            except BlockingIOError:
                if time.monotonic() >= deadline:
                    msg = f"timed out after {self.lock_timeout:.1f}s waiting for {kind} lock on {lock_path}"
                    raise CoordinationFailure(msg) from None
                time.sleep(self.poll_interval)
            except OSError as exc:
                msg = f"{kind} lock on {lock_path} failed: {exc}"
                raise CoordinationFailure(msg) from exc


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Replace path with data in one rename. The temp file lives beside path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        tmp.replace(path)
    except BaseException:
        with contextlib.suppress(OSError):
            tmp.unlink()
        raise

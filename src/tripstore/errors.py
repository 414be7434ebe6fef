"""Error taxonomy for the shared trip store.

Every failure the store surfaces derives from StoreError so that callers
(CLI, widget bridge) can map the whole family to one failure signal.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base class for every error raised by tripstore."""


class SchemaViolation(StoreError, ValueError):
    """A record could not be decoded. `field` is the dotted path of the offending value."""

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"{field or '<root>'}: {reason}")


class DecodeFailed(StoreError):
    """The canonical file held a record that failed to decode."""

    def __init__(self, path: str, cause: Exception) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"failed to decode {path}: {cause}")


class StoreUnavailable(StoreError):
    """Canonical file missing, unreadable, or not writable."""


class CoordinationFailure(StoreUnavailable):
    """The cross-process lock could not be acquired."""


class NotFound(StoreError, KeyError):
    """Update or delete referenced a key that is not in the record set."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(key)

    def __str__(self) -> str:
        return f"no trip with key {self.key!r}"

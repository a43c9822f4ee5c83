"""Error taxonomy for hiveclock.

Only :class:`ConfigurationError` aborts a whole command. The other errors are
scoped to a single instance cycle and are recorded on that instance's state.
"""

from __future__ import annotations

from pathlib import Path


class HiveclockError(Exception):
    """Base exception for hiveclock operations."""

    pass


class ConfigurationError(HiveclockError):
    """Raised when the configuration document is missing, unreadable or invalid."""

    pass


class RegistrationError(HiveclockError):
    """Raised when a credential cannot be obtained from the platform."""

    def __init__(self, handle: str, message: str) -> None:
        self.handle = handle
        super().__init__(f"registration failed for {handle}: {message}")


class ActionError(HiveclockError):
    """Raised when the external action exits non-zero, cannot start or times out."""

    def __init__(self, message: str, *, code: int | None = None, timed_out: bool = False) -> None:
        self.code = code
        self.timed_out = timed_out
        super().__init__(message)


class StateIOError(HiveclockError):
    """Raised when an instance record cannot be read or written."""

    def __init__(self, handle: str, path: Path, message: str) -> None:
        self.handle = handle
        self.path = path
        super().__init__(f"state I/O failed for {handle} at {path}: {message}")

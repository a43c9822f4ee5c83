"""hiveclock: due-aware scheduler for a fleet of long-lived agent instances."""

from hiveclock.errors import (
    ActionError,
    ConfigurationError,
    HiveclockError,
    RegistrationError,
    StateIOError,
)

__version__ = "0.3.0"

__all__ = [
    "ActionError",
    "ConfigurationError",
    "HiveclockError",
    "RegistrationError",
    "StateIOError",
    "__version__",
]

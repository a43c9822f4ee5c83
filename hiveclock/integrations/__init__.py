"""External platform integrations."""

from hiveclock.integrations.registration import Registration, RegistrationClient

__all__ = ["Registration", "RegistrationClient"]

"""
NOTIFICATIONS App - Exceptions

Only registry writes surface errors to callers. Configuration, provider
and device-setup failures are recovered and logged by the services.
"""


class NotificationError(Exception):
    """Base class for notification errors."""


class InvalidPushTokenError(NotificationError, ValueError):
    """Token is empty or one of the client-side placeholders for 'no token'."""


class TokenRegistryError(NotificationError):
    """A registry write failed and was rolled back."""


class ProviderError(NotificationError):
    """A provider channel could not deliver a push."""

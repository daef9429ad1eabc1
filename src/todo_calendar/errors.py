"""Exception hierarchy for the todo calendar.

Gateway and identity failures derive from RemoteError so callers can treat
every backend round trip the same way. ValidationError is raised before any
cache mutation or backend call is attempted.
"""


class CalendarError(Exception):
    """Base exception for todo calendar operations."""
    pass


class RemoteError(CalendarError):
    """Network or backend fault while talking to the hosted service."""
    pass


class NotFoundError(RemoteError):
    """The referenced list or task does not exist on the backend."""
    pass


class AuthenticationError(RemoteError):
    """Authentication failed with the hosted service."""
    pass


class NotSignedInError(AuthenticationError):
    """An operation that needs a signed-in user was attempted without one."""
    pass


class ValidationError(CalendarError):
    """Input data was rejected before reaching the backend."""
    pass


class ConfigError(CalendarError):
    """Configuration could not be loaded or is invalid."""
    pass

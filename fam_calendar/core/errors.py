"""Domain errors for the calendar integration.

Each error carries a short machine-readable ``code``. Routes translate
errors into responses using only the code or a fixed message; the
exception text itself is for logs.
"""


class CalendarError(Exception):
    """Base class for calendar integration errors."""

    code = "calendar_error"


class InvalidState(CalendarError):
    """OAuth state parameter missing or not matching the stored nonce."""

    code = "invalid_state"


class NotConnected(CalendarError):
    """The member has no Google Calendar connection."""

    code = "not_connected"


class AuthExpired(CalendarError):
    """Access token expired and cannot be refreshed; user must reconnect."""

    code = "token_expired"


class ProviderUnavailable(CalendarError):
    """The calendar provider failed, timed out or returned something unusable."""

    code = "provider_unavailable"


class NotFound(CalendarError):
    """Unknown feed token or missing family/feed row."""

    code = "not_found"


class GenerationFailure(CalendarError):
    """Unexpected failure while building an ICS document."""

    code = "generation_failure"

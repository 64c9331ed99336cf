"""Errors raised by a conversation session.

None of them is fatal: the session stays usable after any of these.
"""


class SessionError(Exception):
    """Base class for conversation session errors."""

    status_code = 400


class EmptyInputError(SessionError):
    """The turn text is empty or whitespace only."""


class InvalidModelError(SessionError):
    """The model key or id is not in the catalog."""

    def __init__(self, key_or_id: str):
        super().__init__(f"Unknown model: {key_or_id!r}")
        self.key_or_id = key_or_id


class BusyError(SessionError):
    """A turn is already awaiting its response."""

    status_code = 409

    def __init__(self, message: str = "A request is already in flight"):
        super().__init__(message)


class RemoteServiceError(SessionError):
    """The remote model call failed; the pending user message was rolled back."""

    status_code = 500

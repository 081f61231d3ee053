"""Request-level errors raised by the dispatch and verification services.

Each class carries the HTTP status the API answers with. Per-recipient
delivery problems are not exceptions: transports report them as failed
``DeliveryResult`` values and the dispatcher records them in the log.
"""

from typing import Any


class DispatchError(Exception):
    status_code = 400

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra


class InvalidRequest(DispatchError):
    status_code = 400


class Unauthorized(DispatchError):
    status_code = 401


class Forbidden(DispatchError):
    status_code = 403


class ResourceNotFound(DispatchError):
    # Missing messages and challenges abort with 400, like any bad request.
    status_code = 400


class ChannelUnavailable(DispatchError):
    status_code = 400


class DispatchInProgress(DispatchError):
    status_code = 409


class ProviderRejected(DispatchError):
    """A provider refused a request-level send (verification SMS)."""

    status_code = 502


class VerificationFailed(DispatchError):
    """Submitted code could not be accepted.

    ``reason`` is one of ``not_found``, ``expired`` or ``mismatch``.
    """

    status_code = 400

    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    MISMATCH = "mismatch"

    def __init__(self, message: str, reason: str) -> None:
        super().__init__(message, reason=reason)
        self.reason = reason

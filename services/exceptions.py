"""
Error taxonomy shared by every client service.

Each exception carries the server error code and raw response payload when
one exists, so callers can look up a user-facing message with
utils.messages.describe_error.
"""
from typing import Any, Optional


class RentalClientError(Exception):
    """Base class for every error raised by the rental client core."""

    retryable = False

    def __init__(self, message: str, error_code: Optional[int] = None, payload: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.payload = payload or {}

    @property
    def data(self) -> Any:
        return self.payload.get("data")


class InvalidInputError(RentalClientError):
    """Rejected locally before any network call."""


class AuthenticationRequired(RentalClientError):
    """Credentials are gone or unusable; the user must sign in again."""


class ConflictError(RentalClientError):
    """The request collides with existing server state."""


class VehicleUnavailableError(ConflictError):
    """The requested range overlaps an existing booking."""

    def __init__(self, message: str, conflicts: Optional[list] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.conflicts = conflicts or []


class InvalidTransitionError(ConflictError):
    """The rental's current status does not allow the requested action."""

    def __init__(self, message: str, status=None, action=None, **kwargs):
        super().__init__(message, **kwargs)
        self.status = status
        self.action = action


class AlreadyPaidError(InvalidTransitionError):
    """A payment was retried against a rental that is already past that payment."""


class ContractFinalizedError(ConflictError):
    """The contract, or this party's decision on it, is already final."""


class ActionInProgressError(ConflictError):
    """The same action on the same rental is already in flight from this client."""


class NotFoundError(RentalClientError):
    pass


class PermissionDeniedError(RentalClientError):
    """The signed-in user is not the party allowed to perform this action."""


class TransportError(RentalClientError):
    """Timeout or network failure. Safe to retry."""

    retryable = True


class ApiError(RentalClientError):
    """Any other non-success answer from the backend."""

    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.status = status


class AvailabilityCheckError(RentalClientError):
    """One of the per-month booking queries failed, so availability is unknown."""

    def __init__(self, message: str, month: int, year: int, **kwargs):
        super().__init__(message, **kwargs)
        self.month = month
        self.year = year


class ChannelUnavailableError(RentalClientError):
    """The realtime channel has no live socket."""

    retryable = True

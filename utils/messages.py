"""
Centralized repository for all user-facing messages.
"""
from config import constants as c
from services.exceptions import (
    ActionInProgressError,
    AlreadyPaidError,
    AuthenticationRequired,
    AvailabilityCheckError,
    ChannelUnavailableError,
    ContractFinalizedError,
    InvalidTransitionError,
    RentalClientError,
    TransportError,
    VehicleUnavailableError,
)

# --- Server Error Codes ---
ERROR_MESSAGES = {
    c.ERROR_TOKEN_NOT_PROVIDED: "Token not provided. Please sign in again.",
    c.ERROR_VEHICLE_NOT_FOUND: "Vehicle not found.",
    c.ERROR_NOT_VEHICLE_OWNER: "You are not the owner of the vehicle.",
    c.ERROR_VEHICLE_ID_MISSING: "Vehicle ID is not provided.",
    c.ERROR_VEHICLE_NOT_AVAILABLE: "Vehicle is not available.",
    c.ERROR_OWNER_OWN_VEHICLE: "Owner cannot rent their own vehicle.",
    c.ERROR_NOT_RENTAL_OWNER: "User is not the owner of the rental.",
    c.ERROR_RENTAL_WRONG_STATUS: "Rental is not in the correct status.",
    c.ERROR_INVALID_DATES: "End date is less than start date.",
    c.ERROR_AVAILABILITY_FAILED: "Failed to check vehicle availability.",
    c.ERROR_CONFIRMATION_FAILED: "Failed to create rental confirmation.",
    c.ERROR_CREATE_RENTAL_FAILED: "Failed to create rental.",
    c.ERROR_VEHICLE_RENTALS_FAILED: "Failed to get all rentals of a vehicle.",
    c.ERROR_CREATE_CONTRACT_FAILED: "Failed to create contract.",
    c.ERROR_CHAT_SESSION_EXISTS: "Chat session already exists with this user.",
    c.ERROR_RENTAL_NOT_FOUND: "Rental not found.",
    c.ERROR_RENTAL_CANCELLED: "Rental is cancelled.",
    c.ERROR_RENTAL_NOT_DEPOSIT_PENDING: "Rental is not deposit pending.",
    c.ERROR_DEPOSIT_PAYMENT_FAILED: "Failed to deposit payment.",
}

# --- Client-side Conditions ---
SESSION_EXPIRED = "Session expired. Please sign in again."
NETWORK_ERROR = "The server could not be reached. Check your connection and try again."
VEHICLE_UNAVAILABLE = "Vehicle is not available for the selected dates."
ALREADY_PAID = "This payment has already been made."
ACTION_IN_PROGRESS = "This request is already being processed. Please wait."
CONTRACT_FINAL = "This contract has already been decided."
REALTIME_OFFLINE = "Live chat is offline. Messages will sync shortly."
GENERIC_ERROR = "⚠️ An unexpected error occurred. Please try again."


def availability_failed_message(month: int, year: int) -> str:
    """Explains which month of the booking calendar could not be loaded."""
    return f"Could not check availability for {month:02d}/{year}. Please try again."


def invalid_transition_message(action: str, status: str) -> str:
    return f"Cannot {action} while the rental is {status.lower()}."


def describe_error(exc: Exception) -> str:
    """
    Returns the message to show the user for any error raised by the core.

    Server error codes win over the exception's own text; client-side
    conditions map to the fixed messages above.
    """
    if isinstance(exc, AvailabilityCheckError):
        return availability_failed_message(exc.month, exc.year)
    if isinstance(exc, RentalClientError) and exc.error_code in ERROR_MESSAGES:
        return ERROR_MESSAGES[exc.error_code]
    if isinstance(exc, AuthenticationRequired):
        return SESSION_EXPIRED
    if isinstance(exc, TransportError):
        return NETWORK_ERROR
    if isinstance(exc, VehicleUnavailableError):
        return VEHICLE_UNAVAILABLE
    if isinstance(exc, AlreadyPaidError):
        return ALREADY_PAID
    if isinstance(exc, InvalidTransitionError) and exc.action is not None and exc.status is not None:
        return invalid_transition_message(exc.action.label, exc.status.value)
    if isinstance(exc, ActionInProgressError):
        return ACTION_IN_PROGRESS
    if isinstance(exc, ContractFinalizedError):
        return CONTRACT_FINAL
    if isinstance(exc, ChannelUnavailableError):
        return REALTIME_OFFLINE
    if isinstance(exc, RentalClientError) and exc.message:
        return exc.message
    return GENERIC_ERROR

"""
Application error taxonomy

Every failure the scheduling core reports is one of these classes. Each carries a
stable machine-readable code and the HTTP status the API layer maps it to.
"""

from typing import Any, Optional


class AppError(Exception):
    """Base class for errors reported to callers"""

    code = "INTERNAL_SERVER_ERROR"
    status_code = 500
    default_message = "An unexpected internal error occurred. Please try again later."

    def __init__(self, message: Optional[str] = None, *, cause: Optional[BaseException] = None):
        self.message = message or self.default_message
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code}


class ValidationError(AppError):
    code = "VALIDATION_ERROR"
    status_code = 400
    default_message = "Input validation failed."


class NotFoundError(AppError):
    code = "RESOURCE_NOT_FOUND"
    status_code = 404
    default_message = "The requested resource could not be found."

    def __init__(self, resource: str = "Resource", message: Optional[str] = None):
        self.resource = resource
        super().__init__(message or f"{resource} not found")


class AvailabilityNotConfiguredError(NotFoundError):
    """The owner has never configured weekly availability"""

    code = "AVAILABILITY_NOT_CONFIGURED"

    def __init__(self, message: Optional[str] = None):
        super().__init__("Availability", message or "Event found but no availability configured for its owner")


class ConflictError(AppError):
    code = "CONFLICT"
    status_code = 409
    default_message = "The request conflicts with the current state of the resource."


class SlotUnavailableError(ConflictError):
    code = "SLOT_UNAVAILABLE"
    default_message = "This time slot is no longer available. Please pick another slot."


class AlreadyCancelledError(ConflictError):
    code = "MEETING_ALREADY_CANCELLED"
    default_message = "Meeting is already cancelled"


class IntegrationError(AppError):
    code = "INTEGRATION_ERROR"
    status_code = 502
    default_message = "The calendar integration failed."


class IntegrationNotConnectedError(IntegrationError):
    """Owner has no connected credential for the provider an event needs"""

    code = "INTEGRATION_NOT_CONNECTED"
    status_code = 400

    def __init__(self, app_type: str, message: Optional[str] = None):
        self.app_type = app_type
        super().__init__(
            message
            or f"Required integration '{app_type}' not found or disconnected for the event owner."
        )


class TokenRefreshError(IntegrationError):
    code = "INTEGRATION_TOKEN_INVALID"
    status_code = 401
    default_message = "Calendar integration token is invalid or expired. The owner must reconnect it."


class ProviderRequestError(IntegrationError):
    code = "PROVIDER_REQUEST_FAILED"
    default_message = "The calendar provider rejected the request."

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        status: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ):
        self.status = status
        super().__init__(message, cause=cause)


class RemoteDeletionError(ProviderRequestError):
    """Raised by the provider client on delete; cancellation logs it and moves on"""

    code = "REMOTE_DELETION_FAILED"
    default_message = "Failed to delete the remote calendar event."


class BookingTimeoutError(AppError):
    code = "BOOKING_TIMEOUT"
    status_code = 504
    default_message = "The booking request took too long. Please try again."


class InternalError(AppError):
    """Storage or transport failure with no better classification; message stays opaque"""

    def __init__(self, log_message: str = "", *, cause: Optional[BaseException] = None):
        self.log_message = log_message
        super().__init__(None, cause=cause)

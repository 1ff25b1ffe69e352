from rest_framework.views import exception_handler as drf_exception_handler
from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework import status
import logging

logger = logging.getLogger("websters.core")


# -------------------------------------------------------------------
# Registration error taxonomy
# -------------------------------------------------------------------
class RegistrationError(APIException):
    """
    Base for errors the registration flow surfaces to clients.

    Rendered as {"success": false, "error": <message>, "details": <details>}.
    """
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Registration failed"
    default_code = "registration_error"

    def __init__(self, message=None, details=None, status_code=None):
        self.message = message or self.default_detail
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        super().__init__(detail=self.message)


class ValidationError(RegistrationError):
    """Client-caused; ``details`` enumerates every {field, reason} pair."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Validation error"
    default_code = "validation_error"

    def __init__(self, details, message=None):
        super().__init__(message=message, details=list(details))

    @property
    def fields(self):
        return [item["field"] for item in self.details]


class RegistrationClosed(RegistrationError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Registration is closed for this event"
    default_code = "registration_closed"


class EventNotFound(RegistrationError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Event not found"
    default_code = "event_not_found"


class UploadError(RegistrationError):
    default_detail = "Failed to upload file"
    default_code = "upload_failed"

    def __init__(self, message=None, field=None, details=None):
        self.field = field
        super().__init__(message=message, details=details)


class RegistryWriteError(RegistrationError):
    """
    A registry (database or spreadsheet) call failed.

    ``phase`` is one of "auth", "sheet-check", "duplicate-check", "append".
    """
    default_detail = "Failed to save registration"
    default_code = "registry_write_failed"

    def __init__(self, message=None, phase="append", details=None):
        self.phase = phase
        details = details if details is not None else {"phase": phase}
        super().__init__(message=message, details=details)


class AuthInitializationError(RegistrationError):
    """
    Service credential problem.

    Missing credentials -> 503 (deployment issue); rejected credentials -> 401.
    """
    default_code = "auth_failed"

    def __init__(self, message=None, missing=False, details=None):
        self.missing = missing
        super().__init__(
            message=message or (
                "Registry credentials are not configured" if missing
                else "Authentication failed with Google API"
            ),
            details=details,
            status_code=(
                status.HTTP_503_SERVICE_UNAVAILABLE if missing
                else status.HTTP_401_UNAUTHORIZED
            ),
        )


class DuplicateRegistration(Exception):
    """
    Raised by a registry when the participant already exists for the event.

    Never reaches the client as an error: the workflow turns it into a
    success-shaped "already registered" response.
    """

    def __init__(self, email, field="email", existing=None):
        self.email = email
        self.field = field
        self.existing = existing
        super().__init__(f"{field} already registered: {email}")


class NotificationError(Exception):
    """Mail transport failure. Captured by the dispatcher, never fatal."""


# -------------------------------------------------------------------
# DRF exception handler
# -------------------------------------------------------------------
def custom_exception_handler(exc, context):
    """
    Wrap DRF + Django exceptions into a consistent response format.

    Success responses (2xx) are not touched.
    Only errors come through here.
    """
    if isinstance(exc, RegistrationError):
        payload = {"success": False, "error": exc.message}
        if exc.details is not None:
            payload["details"] = exc.details
        return Response(payload, status=exc.status_code)

    response = drf_exception_handler(exc, context)

    # If DRF handled it, wrap it
    if response is not None:
        return Response(
            {
                "success": False,
                "status_code": response.status_code,
                "errors": response.data,
            },
            status=response.status_code,
            headers={
                name: response[name]
                for name in ("WWW-Authenticate", "Retry-After")
                if response.has_header(name)
            },
        )

    # Unhandled exceptions -> 500
    logger.exception("Unhandled API exception", exc_info=exc)

    return Response(
        {
            "success": False,
            "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
            "errors": {"detail": "Internal server error."},
        },
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )

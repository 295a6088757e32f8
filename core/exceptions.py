"""Custom exception classes for the application.

Defines domain-specific exceptions that can be raised throughout the
application and handled consistently by exception handlers, both by the
HTTP layer and by the in-process capture pipeline.
"""

from enum import Enum
from typing import Optional, Any, Dict


class AppException(Exception):
    """Base exception class for all application exceptions.

    Attributes:
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional additional error details.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(AppException):
    """Exception raised when a requested resource is not found."""

    def __init__(self, resource: str, identifier: Any):
        """Initialize not found error.

        Args:
            resource: Type of resource (e.g., 'Meal', 'Account').
            identifier: ID or identifier that was not found.
        """
        message = f"{resource} with id '{identifier}' not found"
        super().__init__(message, status_code=404, details={"resource": resource, "id": identifier})


class ValidationError(AppException):
    """Exception raised when input validation fails."""

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, status_code=400, details=details)


class DatabaseError(AppException):
    """Exception raised when database operations fail."""

    def __init__(self, message: str, operation: Optional[str] = None):
        details = {"operation": operation} if operation else {}
        super().__init__(message, status_code=500, details=details)


class ConfigurationError(AppException):
    """Exception raised when required configuration is missing or invalid."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        details = {"config_key": config_key} if config_key else {}
        super().__init__(message, status_code=500, details=details)


class AuthenticationError(AppException):
    """Exception raised when credentials or tokens are rejected."""

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message, status_code=401)


class SessionExpiredError(AppException):
    """Exception raised when the current session is missing or expired."""

    def __init__(self, message: str = "Your session has expired. Please sign in again."):
        super().__init__(message, status_code=401)


class ImageProcessingError(AppException):
    """Exception raised when an uploaded image cannot be encoded."""

    def __init__(self, message: str = "Failed to process the image. Please try a different image."):
        super().__init__(message, status_code=422)


class ClassifierFailure(str, Enum):
    """Reasons a food classification request can fail."""

    RATE_LIMITED = "rate_limited"
    BAD_REQUEST = "bad_request"
    INVALID_CREDENTIAL = "invalid_credential"
    SERVER_ERROR = "server_error"
    FAILED = "failed"


CLASSIFIER_HTTP_STATUS = {
    ClassifierFailure.RATE_LIMITED: 429,
    ClassifierFailure.BAD_REQUEST: 400,
    ClassifierFailure.INVALID_CREDENTIAL: 403,
    ClassifierFailure.SERVER_ERROR: 502,
    ClassifierFailure.FAILED: 502,
}


class ClassifierError(AppException):
    """Exception raised when the image classifier rejects or fails a request.

    Attributes:
        reason: The `ClassifierFailure` category.
        upstream_status: HTTP status returned by the classifier, if any.
    """

    def __init__(self, reason: ClassifierFailure, message: str, upstream_status: Optional[int] = None):
        self.reason = reason
        self.upstream_status = upstream_status
        details = {"reason": reason.value}
        if upstream_status is not None:
            details["upstream_status"] = upstream_status
        super().__init__(message, status_code=CLASSIFIER_HTTP_STATUS[reason], details=details)

"""Custom application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500, details: list[Any] | None = None):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class BadRequestException(AppException):
    """Bad request exception."""

    def __init__(self, message: str = "Bad request", details: list[Any] | None = None):
        """Initialize with 400 status code."""
        super().__init__(message, status_code=400, details=details)


class ServiceUnavailableException(AppException):
    """Downstream dependency unavailable exception."""

    def __init__(self, message: str = "Service unavailable"):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)


class MessageProcessingError(Exception):
    """Base error for a queue message that could not be processed."""


class MessageParseError(MessageProcessingError):
    """Message body could not be decoded into the expected payload."""


class MissingAppointmentIdError(MessageProcessingError):
    """Completion event does not carry an appointment id."""

    def __init__(self, message: str = "Invalid message format: cannot find appointment ID"):
        super().__init__(message)


class ConnectionUnavailableError(MessageProcessingError):
    """Country database connection is not available."""

    def __init__(self, country: str, reason: str):
        self.country = country
        self.reason = reason
        super().__init__(f"Database connection for {country} is not available ({reason})")


class CountryMismatchError(MessageProcessingError):
    """Message was routed to a processor of another country."""

    def __init__(self, expected: str, received: str):
        self.expected = expected
        self.received = received
        super().__init__(f"Processor for {expected} received an appointment for {received}")

"""Custom exceptions for the telecrm application."""


class TeleCRMException(Exception):
    """Base exception for telecrm application."""

    pass


class ValidationError(TeleCRMException):
    """Raised when a status transition or request payload fails validation."""

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason}")


class DuplicateLeadError(ValidationError):
    """Raised when a lead with the same phone number already exists."""

    def __init__(self, phone: str) -> None:
        super().__init__("phone", f"Lead with phone number {phone} already exists")


class NotFoundError(TeleCRMException):
    """Raised when a lead, employee or manager id cannot be resolved."""

    pass


class AuthorizationError(TeleCRMException):
    """Raised when the acting user has no scope over a lead."""

    pass


class ConflictError(TeleCRMException):
    """Raised when optimistic concurrency retries are exhausted."""

    pass


class StoreFailureError(TeleCRMException):
    """Raised when a database operation fails."""

    pass


class ServiceError(TeleCRMException):
    """Raised when a service operation fails."""

    pass


class ConfigurationError(TeleCRMException):
    """Raised when configuration is invalid."""

    pass

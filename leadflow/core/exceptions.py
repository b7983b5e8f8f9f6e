"""
Custom exceptions for leadflow.
"""
from typing import Optional


class LeadflowException(Exception):
    """Base exception for every error raised by the engine."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        original_error: Optional[Exception] = None
    ):
        self.message = message
        self.details = details or {}
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class DatabaseError(LeadflowException):
    """Record store (Supabase) error."""
    pass


class ExternalAPIError(LeadflowException):
    """Channel provider error (Resend, Meta Graph API)."""

    def __init__(
        self,
        message: str,
        service: str,
        details: Optional[dict] = None,
        original_error: Optional[Exception] = None
    ):
        self.service = service
        super().__init__(message, details, original_error)


class ValidationError(LeadflowException):
    """Invalid input data."""
    pass


class RateLimitError(LeadflowException):
    """Provider or store asked us to slow down."""

    def __init__(
        self,
        message: str = "Rate limit reached",
        retry_after: Optional[float] = None
    ):
        details = {}
        if retry_after is not None:
            details["retry_after"] = retry_after
        self.retry_after = retry_after
        super().__init__(message, details)


class NotFoundError(LeadflowException):
    """Resource not found."""

    def __init__(
        self,
        resource: str,
        identifier: Optional[str] = None
    ):
        message = f"{resource} not found"
        details = {}
        if identifier:
            details["id"] = identifier
        super().__init__(message, details)


class ConfigurationError(LeadflowException):
    """Missing or invalid configuration."""
    pass

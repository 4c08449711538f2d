"""Custom exceptions for the storefront backend.

Each error carries the HTTP status the API answers with, so services can
raise without knowing about FastAPI.
"""
from typing import Optional


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(StorefrontError):
    """Raised when input is missing or malformed, before any I/O happens.

    Examples:
    - Source and target account are the same
    - Empty product id list
    - Image limit outside 1-50
    """

    status_code = 400


class NotFoundError(StorefrontError):
    """Raised when a referenced entity is absent or not owned by the caller."""

    status_code = 404


class TransportError(StorefrontError):
    """Raised when a backend call fails.

    The backend-provided message is kept in ``details`` and surfaced verbatim.
    """

    status_code = 500


class PartialFailure(StorefrontError):
    """A best-effort sub-step that failed.

    Recorded on results and logged; never raised to the top-level caller
    unless the operation runs in atomic mode.
    """

    def __init__(self, step: str, message: str, details: Optional[str] = None):
        self.step = step
        super().__init__(f"[{step}] {message}", details)


class RegistryClosedError(StorefrontError):
    """Raised when a disposed blob registry is used."""

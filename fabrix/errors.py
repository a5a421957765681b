"""
Error taxonomy for the composition service.

Every error carries an HTTP status and a short, domain-level message. Messages
must never contain file paths or stack details: they are returned to clients
as-is.
"""

from typing import Optional


class FabrixError(Exception):
    """Base class for all service errors."""

    status_code: int = 500
    summary: str = "Internal Server Error."

    def __init__(self, message: Optional[str] = None, status_code: Optional[int] = None):
        self.message = message or self.summary
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Structured error body for API responses."""
        return {"error": self.message}


class InvalidInput(FabrixError):
    """Empty, oversized or wrongly typed caller input."""

    status_code = 400
    summary = "Invalid input"


class AuthenticationError(FabrixError):
    """Missing, invalid or expired bearer token."""

    status_code = 401
    summary = "Authentication required"


class AccessDenied(FabrixError):
    """Authenticated caller is not allowed to proceed (e.g. flagged account)."""

    status_code = 403
    summary = "Access denied"

    def __init__(self, message: Optional[str] = None, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.reason:
            body["reason"] = self.reason
        return body


class QuotaExceeded(FabrixError):
    """Caller has no scans left, or tripped the daily abuse threshold."""

    status_code = 403
    summary = "No scans remaining"

    def __init__(
        self,
        message: Optional[str] = None,
        detail: Optional[str] = None,
        status_code: Optional[int] = None,
        extra: Optional[dict] = None,
    ):
        super().__init__(message, status_code)
        self.detail = detail
        self.extra = extra or {}

    def to_dict(self) -> dict:
        body = super().to_dict()
        if self.detail:
            body["message"] = self.detail
        body.update(self.extra)
        return body


class MalformedExtractionOutput(FabrixError):
    """The extraction provider returned text that is not a composition record."""

    status_code = 500
    summary = "Invalid AI response format"


class ValidationFailed(FabrixError):
    """One or more field-level problems, always fully enumerated."""

    status_code = 400
    summary = "Validation failed"

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(f"{self.summary}: " + ", ".join(self.errors))

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.errors}


class PersistenceError(FabrixError):
    """Record store failure, with the store's own detail forwarded."""

    status_code = 502
    summary = "Database Error"

    def __init__(self, detail: str, status_code: Optional[int] = None):
        self.detail = detail
        super().__init__(f"{self.summary}: {detail}", status_code)


class ProviderError(FabrixError):
    """Extraction provider answered with a non-success status."""

    status_code = 502
    summary = "AI provider error"

    def __init__(self, detail: str, status_code: Optional[int] = None):
        self.detail = detail
        super().__init__(f"{self.summary}: {detail}", status_code)

"""
Error taxonomy for the blog service.

Every operation of the post query service raises one of these. The HTTP layer
maps them to status codes in ``blog_api.core.errors``.
"""

from typing import Any, Optional


class BlogServiceError(Exception):
    """Base exception for all blog service errors."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BlogServiceError):
    """Raised for malformed caller input. Not retryable."""

    status_code = 400

    def __init__(self, message: str, details: Optional[list[dict[str, Any]]] = None):
        super().__init__(message)
        self.details = details or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(f"Invalid {field}: {message}", [{"field": field, "message": message}])


def field_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Flatten pydantic-style error dicts into ``{"field", "message"}`` pairs."""
    details = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        details.append({"field": ".".join(loc) or "request", "message": error.get("msg", "invalid value")})
    return details


class NotFoundError(BlogServiceError):
    """Raised when no matching record exists (or it is not visible)."""

    status_code = 404


class ConflictError(BlogServiceError):
    """Raised on a slug uniqueness violation."""

    status_code = 409


class StorageUnavailableError(BlogServiceError):
    """Raised when the backing store fails or times out. Safe to retry with backoff."""

    status_code = 503

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause

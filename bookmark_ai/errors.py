"""Request-level errors raised by the suggestion endpoints."""

from __future__ import annotations


class ApiError(Exception):
    """Error that maps onto an HTTP status and a stable error code."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, object] | None = None) -> None:
        """Initialise the error with a client-facing message."""
        super().__init__(message)
        self.message = message
        self.details = details

    def to_response(self) -> dict[str, object]:
        """Serialisable error body."""
        body: dict[str, object] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class BadRequestError(ApiError):
    status_code = 400
    code = "BAD_REQUEST"

    def __init__(self, message: str = "Bad request", details: dict[str, object] | None = None) -> None:
        super().__init__(message, details)


class ForbiddenError(ApiError):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message)


class NotFoundError(ApiError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource") -> None:
        super().__init__(f"{resource} not found")

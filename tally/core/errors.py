"""API error classes.

HTTP status codes and machine-readable error codes for the identity API.

WHY CUSTOM ERROR CLASSES:
- Consistent error response format across all endpoints
- Easy to map to HTTP status codes in exception handlers
- Type-safe error handling in services/repositories
"""


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for request body validation errors, query param errors, etc.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401)."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class NotFoundError(APIError):
    """Resource not found (404).

    Use when requested resource doesn't exist OR doesn't belong to user.
    Revealing "exists but not yours" leaks information.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class RateLimitedError(APIError):
    """Too many magic link requests for one email (429).

    Reported distinctly from other failures so the client can show a
    "try again later" message instead of a generic error.

    Args:
        retry_after_seconds: Window length, sent back as Retry-After.
    """

    def __init__(self, retry_after_seconds: int) -> None:
        super().__init__(
            code="RATE_LIMITED",
            message="Too many requests. Please try again later.",
            status_code=429,
        )
        self.retry_after_seconds = retry_after_seconds


class TokenStoreError(APIError):
    """Magic link token persistence failed (500).

    The message stays generic; the code is only shown outside production.
    """

    def __init__(self) -> None:
        super().__init__(
            code="TOKEN_STORE_UNAVAILABLE",
            message="Failed to send magic link",
            status_code=500,
        )


class EmailDeliveryError(APIError):
    """Notification gateway rejected or failed the send (500).

    The token row has already been persisted and simply expires unused.
    """

    def __init__(self) -> None:
        super().__init__(
            code="EMAIL_DELIVERY_FAILED",
            message="Failed to send magic link",
            status_code=500,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )

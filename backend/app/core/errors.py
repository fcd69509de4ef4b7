"""API error classes.

Every error a route can raise on purpose. Each class carries its HTTP status
and a default machine-readable code; main.api_error_handler renders them as
``{"error": {"code", "message", "details"}}``. Domain results (login
failures, verification outcomes) are translated into these once, at the
route boundary.
"""


class APIError(Exception):
    """Base class for API errors.

    Attributes:
        status_code: HTTP status to return.
        code: Machine-readable error code (e.g. "EMAIL_ALREADY_EXISTS").
        message: Human-readable message, safe to show to the user.
        details: Optional field-level details.
    """

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        details: list[dict] | None = None,
    ) -> None:
        if message is not None:
            self.message = message
        if code is not None:
            self.code = code
        self.details = details
        super().__init__(self.message)


class ValidationError(APIError):
    """Input rejected by a business rule rather than by the request schema."""

    status_code = 400
    code = "VALIDATION_ERROR"
    message = "Request validation failed"


class UnauthorizedError(APIError):
    """No valid session, or credentials rejected.

    The default message is deliberately the same for a missing, expired or
    forged session.
    """

    status_code = 401
    code = "UNAUTHORIZED"
    message = "Authentication required"


class ForbiddenError(APIError):
    """Caller is known but may not do this (unverified email, someone else's profile)."""

    status_code = 403
    code = "FORBIDDEN"
    message = "Access denied"


class NotFoundError(APIError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        suffix = f" with id '{resource_id}'" if resource_id else ""
        super().__init__(f"{resource}{suffix} not found")


class ConflictError(APIError):
    """Unique data already taken; callers pass a specific code."""

    status_code = 409
    code = "CONFLICT"


class EmailDeliveryError(APIError):
    """Sign-up email could not be sent; raised after the new user is removed."""

    status_code = 503
    code = "EMAIL_DELIVERY_FAILED"
    message = "Failed to send verification email. Please try again later."

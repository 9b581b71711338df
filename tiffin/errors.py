"""Application error classes for structured error handling.

Every error raised by the service layer derives from ``AppError``; the FastAPI
app renders them as ``{"error": ..., "code": ..., "details": ...}`` with the
error's ``status_code``.
"""


class AppError(Exception):
    code = "APP_ERROR"
    status_code = 500

    def __init__(self, message: str, details: dict[str, list[str]] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(AppError):
    code = "VALIDATION_ERROR"
    status_code = 400


class AuthenticationError(AppError):
    code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class AuthorizationError(AppError):
    code = "FORBIDDEN"
    status_code = 403

    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(message)


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ConflictError(AppError):
    code = "CONFLICT"
    status_code = 409


class PaymentProcessorError(AppError):
    """The payment processor rejected or failed a request."""

    code = "PAYMENT_PROCESSOR_ERROR"
    status_code = 502


class KitchenUnavailableError(AppError):
    code = "KITCHEN_UNAVAILABLE"
    status_code = 400

    def __init__(self, message: str = "Kitchen not found or unavailable"):
        super().__init__(message)


class SubscriptionLapsedError(AppError):
    """The kitchen exists but its subscription no longer allows trading."""

    code = "SUBSCRIPTION_LAPSED"
    status_code = 400

    def __init__(
        self,
        message: str = (
            "This kitchen can't take orders right now because the cook needs to "
            "renew their subscription. Please check back later."
        ),
    ):
        super().__init__(message)

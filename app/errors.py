"""API error hierarchy.

Services raise these; the handler registered in create_app() renders them as
``{"success": false, "error": ..., "code": ...}`` with the matching status.
Each subclass carries a machine-readable code so clients can branch on it
(e.g. route the user to the payment flow on PAYMENT_REQUIRED).
"""


class APIError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message, details=None, code=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code:
            self.code = code

    def to_dict(self):
        body = {
            "success": False,
            "error": self.message,
            "code": self.code,
        }
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(APIError):
    """Bad input, rejected before any side effect."""

    status_code = 400
    code = "VALIDATION_ERROR"


class AuthenticationError(APIError):
    """Missing session or a webhook that failed signature verification."""

    status_code = 401
    code = "AUTH_REQUIRED"


class PaymentRequiredError(APIError):
    status_code = 402
    code = "PAYMENT_REQUIRED"


class ForbiddenError(APIError):
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(APIError):
    status_code = 404
    code = "NOT_FOUND"


class ConfigurationError(APIError):
    status_code = 500
    code = "SERVER_MISCONFIGURED"


class GatewayError(APIError):
    """The payment gateway rejected the call or returned garbage.

    Nothing local has been written when this is raised.
    """

    status_code = 400
    code = "GATEWAY_ERROR"
    retryable = False

    def to_dict(self):
        body = super().to_dict()
        body["retryable"] = self.retryable
        return body


class GatewayTimeoutError(GatewayError):
    """The gateway did not answer within PAYSTACK_TIMEOUT. Safe to retry."""

    status_code = 504
    code = "GATEWAY_TIMEOUT"
    retryable = True

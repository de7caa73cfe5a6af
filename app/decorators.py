"""
Custom route decorators for access control.

- chat_access_required: ensures user is logged in AND currently holds chat
  access (flag set and grant not expired). Raises PaymentRequiredError so the
  client gets a PAYMENT_REQUIRED code and can route to the payment flow.
- admin_required: ensures user is logged in AND has is_admin=True.
"""

from functools import wraps

from flask_login import current_user, login_required

from app.errors import ForbiddenError, PaymentRequiredError
from app.services.access_service import check_chat_access


def chat_access_required(f):
    """Require login + a live chat access grant, checked fresh per request."""

    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        status = check_chat_access(current_user.id)
        if not status.has_access:
            raise PaymentRequiredError(
                "You need an active plan to access chat features",
                details={
                    "paymentReference": status.payment_reference,
                    "lastPaymentDate": (
                        status.payment_date.isoformat() if status.payment_date else None
                    ),
                    "accessExpiryDate": (
                        status.expiry_date.isoformat() if status.expiry_date else None
                    ),
                },
            )
        return f(*args, **kwargs)

    return decorated


def admin_required(f):
    """Require login + is_admin flag."""

    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        if not current_user.is_admin:
            raise ForbiddenError("Admin privileges required")
        return f(*args, **kwargs)

    return decorated

"""Order service — idempotent payment-intent registration.

The order id doubles as an idempotency key. A replayed request returns the
stored row unchanged. Concurrent first requests for the same id race on the
primary key: the loser's insert fails with IntegrityError inside a savepoint,
which is rolled back before the winner's row is re-fetched.
"""

import logging
import re
import uuid

from sqlalchemy.exc import IntegrityError

from app.errors import ForbiddenError, ValidationError
from app.extensions import db
from app.models.order import Order
from app.services.audit_service import log_audit

logger = logging.getLogger(__name__)

# Amount columns are 32-bit Integer.
MAX_AMOUNT = 2**31 - 1

_DIGITS = re.compile(r"[0-9]+")


def parse_positive_int(value, field="amount"):
    """Coerce a JSON amount to a positive int or raise ValidationError.

    Accepts ints and plain digit strings ("1000"), 1 to MAX_AMOUNT. Rejects
    bools, floats, exponent forms, zero, negatives and anything larger.
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid {field}")
    if isinstance(value, str) and _DIGITS.fullmatch(value):
        value = int(value)
    if not isinstance(value, int) or value <= 0:
        raise ValidationError(f"Invalid {field}")
    if value > MAX_AMOUNT:
        raise ValidationError(
            f"Invalid {field}", details={"max": MAX_AMOUNT}
        )
    return value


def create_order(user_id, amount, order_id=None):
    """Create an order, or return the existing one for a replayed id.

    Returns (order, created). Commits when a row is inserted.
    Raises ValidationError for a bad amount or id, ForbiddenError when the
    id is already taken by another user.
    """
    amount = parse_positive_int(amount)

    if order_id is not None:
        if not isinstance(order_id, str) or not order_id.strip():
            raise ValidationError("Invalid order id")
        # Idempotency keys are compared exactly; padded ids are refused
        # rather than normalized onto another key.
        if order_id != order_id.strip():
            raise ValidationError("Order id must not have surrounding whitespace")
        if len(order_id) > 255:
            raise ValidationError("Order id is too long")
    else:
        order_id = f"order_{uuid.uuid4()}"

    existing = db.session.get(Order, order_id)
    if existing is not None:
        return _replayed(existing, user_id), False

    try:
        with db.session.begin_nested():
            order = Order(
                id=order_id,
                user_id=user_id,
                amount=amount,
                status="pending",
                metadata_={"created_by": "api"},
            )
            db.session.add(order)
    except IntegrityError:
        logger.info(f"Order {order_id} inserted concurrently, returning stored row")
        db.session.expire_all()
        existing = db.session.get(Order, order_id)
        if existing is None:
            raise
        return _replayed(existing, user_id), False

    log_audit("order.created", actor_user_id=user_id, metadata={
        "order_id": order_id,
        "amount": amount,
    })
    db.session.commit()
    logger.info(f"Created order {order_id} for user {user_id} ({amount})")
    return order, True


def _replayed(order, user_id):
    if order.user_id != user_id:
        # Same key from a different user: never leak or reuse another user's intent.
        raise ForbiddenError("Order id already in use")
    logger.info(f"Order {order.id} already exists, returning it unchanged")
    return order

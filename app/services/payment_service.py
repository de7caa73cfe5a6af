"""Payment service — chat access payments and their reconciliation.

Responsible for:
- Initializing a hosted-checkout payment and recording the pending transaction
- Client-initiated verification by reference
- The single success transition shared by verify and the charge.success webhook
- Queueing in-app-purchase receipts for manual verification

Ordering rules:
- Gateway calls happen before any row lock is taken, never inside one.
- The success transition locks the transaction row (SELECT ... FOR UPDATE),
  re-checks its status, and only then grants access, so a verify call racing a
  webhook delivery for the same reference grants access exactly once.
"""

import logging
import time
import uuid
from datetime import datetime, timezone

from app.errors import NotFoundError, ValidationError
from app.extensions import db
from app.models.order import Order
from app.models.payment_transaction import PaymentTransaction
from app.models.user import User
from app.services import paystack_service
from app.services.audit_service import log_audit
from app.services.order_service import parse_positive_int
from app.services.payment_details import (
    IAP_PROVIDERS,
    PLAN_TYPES,
    ChatAccessDetails,
    InAppPurchaseDetails,
    compute_access_expiry,
    decode_payment_details,
    encode_payment_details,
    is_valid_plan_type,
)

logger = logging.getLogger(__name__)

# Outcomes of apply_charge_success
GRANTED = "granted"
ALREADY_PROCESSED = "already_processed"
NOT_FOUND = "not_found"
AMOUNT_MISMATCH = "amount_mismatch"

# Paystack amounts are in minor units; allow one kobo of rounding drift.
AMOUNT_TOLERANCE = 1


def amounts_match(transaction, gateway_amount):
    if gateway_amount is None:
        return True
    try:
        received = int(gateway_amount)
    except (TypeError, ValueError):
        return False
    expected = paystack_service.to_minor_units(transaction.amount)
    return abs(received - expected) <= AMOUNT_TOLERANCE


# ──────────────────────────────────────────────
# Initialize
# ──────────────────────────────────────────────

def initialize_chat_payment(user, amount, plan_type, callback_url=None,
                            order_id=None):
    """Start a chat access payment for `user`.

    Validation happens before the gateway call. The gateway call happens
    before anything is written, so a gateway failure leaves no pending row.
    The transaction row and user.payment_reference commit together.

    Returns {"payment_url", "reference", "amount"}.
    """
    amount = parse_positive_int(amount)
    if not is_valid_plan_type(plan_type):
        raise ValidationError("Invalid plan type", details={"allowed": list(PLAN_TYPES)})

    if order_id is not None:
        order = db.session.get(Order, order_id)
        if order is None or order.user_id != user.id:
            raise NotFoundError("Order not found")

    details = ChatAccessDetails(plan_type=plan_type)
    reference = f"chat_{uuid.uuid4()}"

    init = paystack_service.initialize_transaction(
        email=user.email,
        amount=amount,
        reference=reference,
        metadata={"service": details.service_type, "planType": plan_type},
        callback_url=callback_url,
    )
    reference = init["reference"]

    try:
        transaction = PaymentTransaction(
            user_id=user.id,
            order_id=order_id,
            reference=reference,
            provider_transaction_id=init.get("provider_transaction_id"),
            amount=amount,
            status="pending",
            payment_method=details.payment_method,
            service_type=details.service_type,
            metadata_=encode_payment_details(details),
        )
        db.session.add(transaction)
        db.session.flush()

        user.payment_reference = reference
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error(
            f"Failed to record transaction {reference} for user {user.id}",
            exc_info=True,
        )
        raise

    logger.info(
        f"Initialized chat payment {reference} for user {user.id} "
        f"({amount}, {plan_type})"
    )
    return {
        "payment_url": init["payment_url"],
        "reference": reference,
        "amount": amount,
    }


# ──────────────────────────────────────────────
# Verify (client-initiated)
# ──────────────────────────────────────────────

def verify_chat_payment(user, reference):
    """Ask the gateway whether `reference` is paid and reconcile if so.

    Returns {"paid": bool, "status": str, "message": str}.
    Raises ValidationError for a missing reference or an amount mismatch,
    NotFoundError for a reference this user doesn't own.
    """
    if not reference or not isinstance(reference, str):
        raise ValidationError("Missing reference")

    transaction = PaymentTransaction.query.filter_by(reference=reference).first()
    if transaction is None or transaction.user_id != user.id:
        raise NotFoundError("Transaction not found")

    if transaction.is_successful:
        logger.info(f"Verify {reference}: already successful, nothing to do")
        return {
            "paid": True,
            "status": "success",
            "message": "Payment already verified and activated",
        }

    gateway_tx = paystack_service.verify_transaction(reference)
    gateway_status = gateway_tx.get("status")

    if gateway_status != "success":
        logger.info(f"Verify {reference}: gateway reports {gateway_status}")
        return {
            "paid": False,
            "status": gateway_status,
            "message": "Payment not yet completed",
        }

    if not amounts_match(transaction, gateway_tx.get("amount")):
        logger.error(
            f"Verify {reference}: amount mismatch "
            f"(expected {paystack_service.to_minor_units(transaction.amount)}, "
            f"got {gateway_tx.get('amount')})"
        )
        raise ValidationError("Amount verification failed", code="AMOUNT_MISMATCH")

    outcome = apply_charge_success(
        reference,
        source="verify",
        gateway_amount=gateway_tx.get("amount"),
        provider_transaction_id=gateway_tx.get("id"),
    )
    if outcome not in (GRANTED, ALREADY_PROCESSED):
        raise ValidationError("Verification failed", details={"outcome": outcome})

    return {
        "paid": True,
        "status": "success",
        "message": "Payment verified and chat access activated",
    }


# ──────────────────────────────────────────────
# Success transition (shared by verify + webhook)
# ──────────────────────────────────────────────

def apply_charge_success(reference, source, gateway_amount=None,
                         provider_transaction_id=None, now=None):
    """Mark `reference` successful and grant chat access, at most once.

    Runs in its own short database transaction: lock the transaction row,
    re-check status, update transaction + user + audit, commit.
    Any failure rolls back everything and re-raises.

    Returns GRANTED, ALREADY_PROCESSED, NOT_FOUND or AMOUNT_MISMATCH.
    """
    now = now or datetime.now(timezone.utc)
    try:
        transaction = (
            PaymentTransaction.query
            .filter_by(reference=reference)
            .with_for_update()
            .populate_existing()
            .first()
        )

        if transaction is None:
            db.session.rollback()
            logger.warning(f"[{source}] No transaction for reference {reference}, ignoring")
            return NOT_FOUND

        if transaction.is_successful:
            db.session.rollback()
            logger.info(f"[{source}] Transaction {reference} already successful, ignoring")
            return ALREADY_PROCESSED

        if not amounts_match(transaction, gateway_amount):
            db.session.rollback()
            logger.error(
                f"[{source}] Amount mismatch for {reference}: "
                f"expected {paystack_service.to_minor_units(transaction.amount)}, "
                f"got {gateway_amount}"
            )
            return AMOUNT_MISMATCH

        user = db.session.get(
            User, transaction.user_id, with_for_update=True, populate_existing=True
        )
        if user is None:
            db.session.rollback()
            logger.error(f"[{source}] Transaction {reference} points at a missing user")
            return NOT_FOUND

        details = decode_payment_details(transaction)
        plan_type = getattr(details, "plan_type", None)
        expiry = compute_access_expiry(plan_type, now)

        transaction.status = "success"
        transaction.paid_at = now
        transaction.verified_at = now
        if provider_transaction_id and not transaction.provider_transaction_id:
            transaction.provider_transaction_id = str(provider_transaction_id)
        transaction.metadata_ = {
            **(transaction.metadata_ or {}),
            "processed_via": source,
            "plan_type": plan_type,
        }

        user.has_chat_access = True
        user.payment_date = now
        user.access_expiry_date = expiry
        user.payment_reference = reference

        user_id = user.id
        log_audit("payment.succeeded", subject_user_id=user_id, metadata={
            "reference": reference,
            "amount": transaction.amount,
            "plan_type": plan_type,
            "access_expiry_date": expiry.isoformat(),
            "source": source,
        })

        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.error(f"[{source}] Failed to apply success for {reference}", exc_info=True)
        raise

    logger.info(
        f"[{source}] Granted chat access to user {user_id} "
        f"until {expiry.isoformat()} (plan {plan_type})"
    )
    return GRANTED


# ──────────────────────────────────────────────
# In-app purchases
# ──────────────────────────────────────────────

def record_iap_receipt(user, provider, receipt, product_id=None):
    """Queue an app-store receipt as a pending transaction.

    Receipts are not checked against Apple/Google here; the row waits for
    manual reconciliation. Returns the transaction reference.
    """
    if provider not in IAP_PROVIDERS:
        raise ValidationError(
            f"provider must be one of: {', '.join(IAP_PROVIDERS)}"
        )
    if not receipt or not isinstance(receipt, str):
        raise ValidationError("receipt is required")

    details = InAppPurchaseDetails(
        provider=provider, receipt=receipt, product_id=product_id
    )
    reference = f"iap_{int(time.time() * 1000)}_{user.id}"

    transaction = PaymentTransaction(
        user_id=user.id,
        reference=reference,
        amount=0,
        status="pending",
        payment_method=details.payment_method,
        service_type=details.service_type,
        metadata_=encode_payment_details(details),
    )
    db.session.add(transaction)
    db.session.commit()

    logger.info(f"Queued {provider} receipt {reference} for user {user.id}")
    return reference

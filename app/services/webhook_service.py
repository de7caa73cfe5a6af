"""Webhook service — dispatches verified Paystack events.

Paystack retries any delivery that doesn't get a 2xx, and may deliver the
same event more than once. Every handler is therefore idempotent: a
replayed event finds the state already applied and does nothing.

Returns (success: bool, message: str) like the route expects:
success=False only for genuine persistence failures.
"""

import logging

from app.extensions import db
from app.services import payment_service, subscription_service

logger = logging.getLogger(__name__)


def handle_webhook_event(event):
    """Route a verified event envelope {"event": ..., "data": {...}}."""
    event_type = event.get("event") if isinstance(event, dict) else None
    data = event.get("data") if isinstance(event, dict) else None
    if not isinstance(data, dict):
        data = {}

    handlers = {
        "charge.success": _handle_charge_success,
        "subscription.create": _handle_subscription_status,
        "subscription.enable": _handle_subscription_status,
        "subscription.disable": _handle_subscription_status,
        "subscription.not_renew": _handle_subscription_status,
        "invoice.payment_failed": _handle_invoice_payment_failed,
        "invoice.update": _handle_invoice_update,
        "invoice.create": _handle_invoice_logged,
    }

    handler = handlers.get(event_type)
    if handler is None:
        logger.info(f"Unhandled webhook event: {event_type}")
        return True, "ignored"

    logger.info(f"Processing Paystack webhook event: {event_type}")
    try:
        message = handler(event_type, data)
        db.session.commit()
    except Exception as e:
        logger.error(f"Error handling {event_type}: {e}", exc_info=True)
        db.session.rollback()
        return False, "Webhook processing failed"

    return True, message


# ──────────────────────────────────────────────
# Event Handlers
# ──────────────────────────────────────────────

def _handle_charge_success(event_type, data):
    """Grant chat access for a successful charge (commits on its own)."""
    reference = data.get("reference")
    if not reference:
        logger.warning("charge.success received without reference")
        return "ignored"

    return payment_service.apply_charge_success(
        reference,
        source="webhook",
        gateway_amount=data.get("amount"),
        provider_transaction_id=data.get("id"),
    )


def _handle_subscription_status(event_type, data):
    code = data.get("subscription_code")
    if not code:
        logger.warning(f"{event_type} received without subscription_code")
        return "ignored"

    status = data.get("status")
    if event_type == "subscription.not_renew" and not status:
        status = "non-renewing"

    changed = subscription_service.apply_gateway_status(
        code, status, next_payment_date=data.get("next_payment_date")
    )
    return "processed" if changed else "already_processed"


def _subscription_code_from_invoice(data):
    subscription = data.get("subscription")
    if isinstance(subscription, dict):
        return subscription.get("subscription_code")
    return subscription or data.get("subscription_code")


def _handle_invoice_payment_failed(event_type, data):
    code = _subscription_code_from_invoice(data)
    if not code:
        logger.warning("invoice.payment_failed received without subscription")
        return "ignored"
    changed = subscription_service.mark_past_due(code)
    return "processed" if changed else "already_processed"


def _handle_invoice_update(event_type, data):
    code = _subscription_code_from_invoice(data)
    if not code or not data.get("paid"):
        logger.info(f"invoice.update for {code}: not paid, nothing to do")
        return "ignored"
    changed = subscription_service.reactivate(code)
    return "processed" if changed else "already_processed"


def _handle_invoice_logged(event_type, data):
    logger.info(
        f"{event_type} for subscription {_subscription_code_from_invoice(data)}"
    )
    return "ignored"

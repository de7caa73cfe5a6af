"""Webhooks blueprint — /payments/subscription/webhook

Receives Paystack webhook events. Not session-authenticated; trust comes
from the x-paystack-signature header. Raw body is required for signature
verification.
"""

import json
import logging

from flask import Blueprint, current_app, request, jsonify

from app.services.paystack_service import SIGNATURE_HEADER, verify_webhook_signature
from app.services.webhook_service import handle_webhook_event

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/payments/subscription")


@webhooks_bp.route("/webhook", methods=["POST"])
def paystack_webhook():
    """Receive and process Paystack webhook events.

    1. Get raw body (required for signature verification)
    2. Verify signature when PAYSTACK_VERIFY_WEBHOOKS is on
       (500 if no secret is configured, 401 if the signature is bad)
    3. Pass to handle_webhook_event (idempotent per reference / code)
    4. Return 200 to acknowledge receipt, including ignored events
    """
    payload = request.get_data()

    # --- Verify signature ---
    if current_app.config.get("PAYSTACK_VERIFY_WEBHOOKS", True):
        if not current_app.config.get("PAYSTACK_WEBHOOK_SECRET"):
            logger.error("PAYSTACK_WEBHOOK_SECRET is not set")
            return jsonify({"status": "error", "message": "Server configuration error"}), 500

        signature = request.headers.get(SIGNATURE_HEADER)
        if not verify_webhook_signature(payload, signature):
            logger.warning(f"Invalid webhook signature: {signature!r}")
            return jsonify({"status": "error", "message": "Invalid signature"}), 401
    else:
        logger.warning("Webhook signature verification is disabled")

    try:
        event = json.loads(payload or b"{}")
    except ValueError:
        logger.warning("Webhook body is not valid JSON")
        return jsonify({"status": "error", "message": "Invalid payload"}), 400

    # --- Process event (idempotent) ---
    success, message = handle_webhook_event(event)

    if success:
        return jsonify({"status": "success", "result": message}), 200
    else:
        logger.error(f"Webhook processing failed: {message}")
        return jsonify({"status": "error", "message": message}), 500

"""Payments blueprint — /payments/*

Chat access payments and in-app-purchase receipts.

Routes:
- POST /payments/chat/initialize  — start a Paystack checkout for a plan
- POST /payments/chat/verify      — reconcile a reference with Paystack
- GET  /payments/chat/access      — current entitlement (expiry enforced)
- POST /payments/iap/verify       — queue an app-store receipt
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from app.extensions import limiter
from app.services import access_service, payment_service

logger = logging.getLogger(__name__)

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")


# ──────────────────────────────────────────────
# POST /payments/chat/initialize
# ──────────────────────────────────────────────

@payments_bp.route("/chat/initialize", methods=["POST"])
@login_required
@limiter.limit("20 per minute")
def initialize_chat_payment():
    """Body: {amount, planType, callbackUrl?, orderId?}."""
    data = request.get_json(silent=True) or {}
    result = payment_service.initialize_chat_payment(
        current_user,
        amount=data.get("amount"),
        plan_type=data.get("planType"),
        callback_url=data.get("callbackUrl"),
        order_id=data.get("orderId"),
    )
    return jsonify({"success": True, "data": result})


# ──────────────────────────────────────────────
# POST /payments/chat/verify
# ──────────────────────────────────────────────

@payments_bp.route("/chat/verify", methods=["POST"])
@login_required
def verify_chat_payment():
    """Body: {reference}. Returns paid=true once access is granted."""
    data = request.get_json(silent=True) or {}
    result = payment_service.verify_chat_payment(current_user, data.get("reference"))
    return jsonify({"success": True, **result})


# ──────────────────────────────────────────────
# GET /payments/chat/access
# ──────────────────────────────────────────────

@payments_bp.route("/chat/access")
@login_required
def chat_access():
    status = access_service.check_chat_access(current_user.id)
    return jsonify({"success": True, **status.to_dict()})


# ──────────────────────────────────────────────
# POST /payments/iap/verify
# ──────────────────────────────────────────────

@payments_bp.route("/iap/verify", methods=["POST"])
@login_required
def verify_iap():
    """Body: {provider: apple|google, receipt, productId?}."""
    data = request.get_json(silent=True) or {}
    reference = payment_service.record_iap_receipt(
        current_user,
        provider=data.get("provider"),
        receipt=data.get("receipt"),
        product_id=data.get("productId"),
    )
    return jsonify({
        "success": True,
        "message": "Receipt received and queued for verification",
        "data": {"reference": reference},
    })

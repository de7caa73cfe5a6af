"""Orders blueprint — /orders

Idempotent order creation. The optional `id` in the body is the
idempotency key; replays return the stored order with 200.
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from app.services.order_service import create_order

orders_bp = Blueprint("orders", __name__, url_prefix="/orders")


@orders_bp.route("", methods=["POST"])
@login_required
def create():
    """Body: {amount, id?}. 201 on creation, 200 on replay."""
    data = request.get_json(silent=True) or {}
    order, created = create_order(
        current_user.id, data.get("amount"), order_id=data.get("id")
    )
    return jsonify({"success": True, "data": order.to_dict()}), 201 if created else 200

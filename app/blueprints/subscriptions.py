"""Subscriptions blueprint — /payments/subscription/*

Routes:
- GET    /payments/subscription/plans      — active plans (public)
- POST   /payments/subscription/plans      — create a plan (admin)
- POST   /payments/subscription/subscribe  — subscribe with a card authorization
- GET    /payments/subscription/me         — current active subscription
- DELETE /payments/subscription/cancel     — cancel at period end or now

The webhook lives in the webhooks blueprint under the same prefix.
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from app.decorators import admin_required
from app.errors import NotFoundError
from app.services import subscription_service

subscriptions_bp = Blueprint(
    "subscriptions", __name__, url_prefix="/payments/subscription"
)


@subscriptions_bp.route("/plans")
def list_plans():
    plans = subscription_service.list_active_plans()
    return jsonify({"success": True, "data": [p.to_dict() for p in plans]})


@subscriptions_bp.route("/plans", methods=["POST"])
@admin_required
def create_plan():
    """Body: {name, amount, interval, description?, features?}."""
    data = request.get_json(silent=True) or {}
    plan = subscription_service.create_plan(
        name=data.get("name"),
        amount=data.get("amount"),
        interval=data.get("interval"),
        description=data.get("description"),
        features=data.get("features"),
    )
    return jsonify({"success": True, "data": plan.to_dict()}), 201


@subscriptions_bp.route("/subscribe", methods=["POST"])
@login_required
def subscribe():
    """Body: {planId, authorizationCode}."""
    data = request.get_json(silent=True) or {}
    subscription = subscription_service.subscribe(
        current_user,
        plan_id=data.get("planId"),
        authorization_code=data.get("authorizationCode"),
    )
    return jsonify({"success": True, "data": subscription.to_dict()}), 201


@subscriptions_bp.route("/me")
@login_required
def my_subscription():
    subscription = subscription_service.get_active_subscription(current_user.id)
    if subscription is None:
        raise NotFoundError("No active subscription found")
    return jsonify({"success": True, "data": subscription.to_dict()})


@subscriptions_bp.route("/cancel", methods=["DELETE"])
@login_required
def cancel():
    """Body: {cancelAtPeriodEnd?=true}."""
    data = request.get_json(silent=True) or {}
    cancel_at_period_end = data.get("cancelAtPeriodEnd", True) is not False
    subscription = subscription_service.cancel_subscription(
        current_user, cancel_at_period_end=cancel_at_period_end
    )
    message = (
        "Subscription will be cancelled at the end of the billing period"
        if cancel_at_period_end
        else "Subscription has been cancelled immediately"
    )
    return jsonify({
        "success": True,
        "data": subscription.to_dict(),
        "message": message,
    })

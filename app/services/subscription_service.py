"""Subscription service — recurring billing on top of Paystack plans.

Responsible for:
- Creating plans (admin) and listing active plans
- Subscribing a user (customer creation on first use)
- Cancelling at period end or immediately
- Applying webhook-driven status changes idempotently

Gateway calls happen first; rows are written only after the gateway
accepted the change.
"""

import logging
from datetime import datetime, timedelta, timezone

from app.errors import NotFoundError, ValidationError
from app.extensions import db
from app.models.subscription import Subscription, SubscriptionPlan
from app.services import paystack_service
from app.services.audit_service import log_audit
from app.services.order_service import parse_positive_int

logger = logging.getLogger(__name__)

INTERVAL_LENGTHS = {
    "daily": timedelta(days=1),
    "weekly": timedelta(weeks=1),
    "monthly": timedelta(days=30),
    "quarterly": timedelta(days=91),
    "biannually": timedelta(days=182),
    "annually": timedelta(days=365),
}

# Paystack subscription.status -> (local status, cancel_at_period_end)
GATEWAY_STATUS_MAP = {
    "active": ("active", False),
    "non-renewing": ("active", True),
    "attention": ("past_due", False),
    "completed": ("expired", False),
    "complete": ("expired", False),
    "cancelled": ("cancelled", False),
    "expired": ("expired", False),
    "past_due": ("past_due", False),
}


def parse_gateway_datetime(value):
    """Parse Paystack's ISO-8601 timestamps ("2024-05-19T07:00:00.000Z")."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable gateway timestamp: {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ──────────────────────────────────────────────
# Plans
# ──────────────────────────────────────────────

def list_active_plans():
    return (
        SubscriptionPlan.query
        .filter_by(is_active=True)
        .order_by(SubscriptionPlan.amount.asc())
        .all()
    )


def create_plan(name, amount, interval, description=None, features=None):
    """Create a plan at Paystack, then store it. Returns the SubscriptionPlan."""
    name = (name or "").strip() if isinstance(name, str) else ""
    if not name or amount is None or not interval:
        raise ValidationError("Name, amount, and interval are required")
    amount = parse_positive_int(amount)
    if interval not in SubscriptionPlan.INTERVALS:
        raise ValidationError(
            f"Invalid interval '{interval}'. Must be one of: "
            f"{', '.join(SubscriptionPlan.INTERVALS)}"
        )
    if features is not None and not isinstance(features, dict):
        raise ValidationError("features must be an object")

    gateway_plan = paystack_service.create_plan(
        name=name, amount=amount, interval=interval, description=description
    )

    plan = SubscriptionPlan(
        name=name,
        description=description,
        amount=amount,
        interval=interval,
        currency=gateway_plan.get("currency") or "NGN",
        paystack_plan_code=gateway_plan.get("plan_code"),
        features=features or {},
        is_active=True,
    )
    db.session.add(plan)
    db.session.commit()
    logger.info(f"Created subscription plan {plan.name} ({plan.paystack_plan_code})")
    return plan


# ──────────────────────────────────────────────
# Subscribe / read / cancel
# ──────────────────────────────────────────────

def get_active_subscription(user_id):
    return (
        Subscription.query
        .filter_by(user_id=user_id, status="active")
        .order_by(Subscription.current_period_end.desc())
        .first()
    )


def subscribe(user, plan_id, authorization_code, now=None):
    """Subscribe `user` to `plan_id` using a saved card authorization."""
    if not plan_id or not authorization_code:
        raise ValidationError("Plan ID and authorization code are required")

    plan = SubscriptionPlan.query.filter_by(id=plan_id, is_active=True).first()
    if plan is None:
        raise NotFoundError("Subscription plan not found or inactive")
    if not plan.paystack_plan_code:
        raise ValidationError("Subscription plan is not linked to the payment gateway")

    if not user.paystack_customer_code:
        first_name, _, last_name = (user.full_name or "").partition(" ")
        customer = paystack_service.create_customer(
            email=user.email,
            first_name=first_name or "User",
            last_name=last_name or None,
        )
        user.paystack_customer_code = customer.get("customer_code")
        db.session.commit()

    gateway_sub = paystack_service.create_subscription(
        customer_code=user.paystack_customer_code,
        plan_code=plan.paystack_plan_code,
        authorization_code=authorization_code,
    )

    now = now or datetime.now(timezone.utc)
    period_end = (
        parse_gateway_datetime(gateway_sub.get("next_payment_date"))
        or now + INTERVAL_LENGTHS.get(plan.interval, timedelta(days=30))
    )

    subscription = Subscription(
        user_id=user.id,
        plan_id=plan.id,
        paystack_subscription_code=gateway_sub["subscription_code"],
        paystack_customer_code=user.paystack_customer_code,
        status="active",
        current_period_start=now,
        current_period_end=period_end,
        metadata_={"email_token": gateway_sub.get("email_token")},
    )
    db.session.add(subscription)
    log_audit("subscription.created", actor_user_id=user.id, metadata={
        "plan_id": plan.id,
        "paystack_subscription_code": subscription.paystack_subscription_code,
    })
    db.session.commit()
    logger.info(
        f"User {user.id} subscribed to {plan.name} "
        f"({subscription.paystack_subscription_code})"
    )
    return subscription


def cancel_subscription(user, cancel_at_period_end=True, now=None):
    """Disable renewal at Paystack and record the cancellation locally."""
    subscription = get_active_subscription(user.id)
    if subscription is None:
        raise NotFoundError("No active subscription found")
    if not subscription.paystack_subscription_code:
        raise ValidationError("Invalid subscription")

    email_token = (subscription.metadata_ or {}).get("email_token")
    paystack_service.disable_subscription(
        subscription.paystack_subscription_code, email_token=email_token
    )

    now = now or datetime.now(timezone.utc)
    subscription.cancelled_at = now
    if cancel_at_period_end:
        subscription.cancel_at_period_end = True
    else:
        subscription.status = "cancelled"
        subscription.cancel_at_period_end = False

    log_audit("subscription.cancelled", actor_user_id=user.id, metadata={
        "paystack_subscription_code": subscription.paystack_subscription_code,
        "cancel_at_period_end": bool(cancel_at_period_end),
    })
    db.session.commit()
    return subscription


# ──────────────────────────────────────────────
# Webhook-driven updates (flush only, the webhook commits)
# ──────────────────────────────────────────────

def _locked_subscription(subscription_code):
    return (
        Subscription.query
        .filter_by(paystack_subscription_code=subscription_code)
        .with_for_update()
        .populate_existing()
        .first()
    )


def apply_gateway_status(subscription_code, gateway_status,
                         next_payment_date=None, now=None):
    """Sync a subscription from a subscription.* webhook.

    Returns True if the row changed, False for unknown codes, unknown
    statuses and replays of an already-applied state.
    """
    mapped = GATEWAY_STATUS_MAP.get((gateway_status or "").lower())
    if mapped is None:
        logger.warning(
            f"Unknown subscription status {gateway_status!r} for {subscription_code}"
        )
        return False
    status, cancel_at_period_end = mapped

    subscription = _locked_subscription(subscription_code)
    if subscription is None:
        logger.warning(f"No local subscription for code {subscription_code}, ignoring")
        return False

    period_end = parse_gateway_datetime(next_payment_date)
    changed = (
        subscription.status != status
        or bool(subscription.cancel_at_period_end) != cancel_at_period_end
        or (period_end is not None and _differs(subscription.current_period_end, period_end))
    )
    if not changed:
        logger.info(f"Subscription {subscription_code} already {status}, ignoring")
        return False

    old_status = subscription.status
    subscription.status = status
    subscription.cancel_at_period_end = cancel_at_period_end
    if period_end is not None:
        subscription.current_period_end = period_end
    if status == "cancelled" and subscription.cancelled_at is None:
        subscription.cancelled_at = now or datetime.now(timezone.utc)

    log_audit("subscription.updated", subject_user_id=subscription.user_id, metadata={
        "paystack_subscription_code": subscription_code,
        "old_status": old_status,
        "status": status,
    })
    db.session.flush()
    return True


def mark_past_due(subscription_code):
    """invoice.payment_failed: active -> past_due. Returns True if changed."""
    subscription = _locked_subscription(subscription_code)
    if subscription is None or subscription.status != "active":
        return False
    subscription.status = "past_due"
    log_audit("subscription.past_due", subject_user_id=subscription.user_id, metadata={
        "paystack_subscription_code": subscription_code,
    })
    db.session.flush()
    return True


def reactivate(subscription_code):
    """Paid invoice on a past_due subscription: past_due -> active."""
    subscription = _locked_subscription(subscription_code)
    if subscription is None or subscription.status != "past_due":
        return False
    subscription.status = "active"
    log_audit("subscription.reactivated", subject_user_id=subscription.user_id, metadata={
        "paystack_subscription_code": subscription_code,
    })
    db.session.flush()
    return True


def _differs(stored, incoming):
    if stored is None:
        return True
    if stored.tzinfo is None:
        stored = stored.replace(tzinfo=timezone.utc)
    return stored != incoming

"""Recurring billing models.

- SubscriptionPlan: a priced interval mirrored from a Paystack plan.
- Subscription: links a user to a plan via the Paystack subscription code.
  Status is synced from webhooks (subscription.* and invoice.* events).
"""

import uuid

from app.extensions import db


class SubscriptionPlan(db.Model):
    __tablename__ = "subscription_plans"

    INTERVALS = [
        "daily",
        "weekly",
        "monthly",
        "quarterly",
        "biannually",
        "annually",
    ]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    amount = db.Column(db.Integer, nullable=False)  # major units
    interval = db.Column(db.String(50), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="NGN")
    paystack_plan_code = db.Column(
        db.String(255), unique=True, nullable=True
    )  # e.g. "PLN_gx2wn530m0i3w3m"
    features = db.Column(db.JSON, default=dict)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    subscriptions = db.relationship(
        "Subscription", back_populates="plan", lazy="dynamic"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "amount": self.amount,
            "interval": self.interval,
            "currency": self.currency,
            "paystack_plan_code": self.paystack_plan_code,
            "features": self.features or {},
            "is_active": bool(self.is_active),
        }

    def __repr__(self):
        return f"<SubscriptionPlan {self.name} ({self.interval})>"


class Subscription(db.Model):
    __tablename__ = "subscriptions"

    # -- Valid statuses (synced from Paystack) --
    STATUSES = ["active", "cancelled", "expired", "past_due"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    plan_id = db.Column(
        db.String(36), db.ForeignKey("subscription_plans.id"), nullable=False
    )
    paystack_subscription_code = db.Column(
        db.String(255), unique=True, nullable=False
    )  # e.g. "SUB_vsyqdmlzble3uii"
    paystack_customer_code = db.Column(db.String(255), nullable=True)
    status = db.Column(
        db.String(50), nullable=False, default="active"
    )  # active | cancelled | expired | past_due
    current_period_start = db.Column(db.DateTime(timezone=True), nullable=True)
    current_period_end = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_at_period_end = db.Column(db.Boolean, default=False)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    metadata_ = db.Column("metadata", db.JSON, default=dict)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="subscriptions")
    plan = db.relationship("SubscriptionPlan", back_populates="subscriptions")

    def to_dict(self):
        def _iso(value):
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "user_id": self.user_id,
            "plan": self.plan.to_dict() if self.plan else None,
            "paystack_subscription_code": self.paystack_subscription_code,
            "status": self.status,
            "current_period_start": _iso(self.current_period_start),
            "current_period_end": _iso(self.current_period_end),
            "cancel_at_period_end": bool(self.cancel_at_period_end),
            "cancelled_at": _iso(self.cancelled_at),
        }

    def __repr__(self):
        return f"<Subscription {self.paystack_subscription_code} ({self.status})>"

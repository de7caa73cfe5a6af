"""User model.

Stores authentication credentials, profile info and the chat-access
entitlement. Flask-Login integration via UserMixin.

The entitlement columns (has_chat_access, payment_date, access_expiry_date,
payment_reference) are written only by payment_service and access_service.
"""

import uuid

from flask_login import UserMixin

from app.extensions import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255))
    is_admin = db.Column(db.Boolean, default=False)
    is_active = db.Column(db.Boolean, default=True)

    # --- Chat access entitlement ---
    has_chat_access = db.Column(db.Boolean, nullable=False, default=False)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=True)
    access_expiry_date = db.Column(
        db.DateTime(timezone=True), nullable=True
    )  # NULL with has_chat_access = perpetual grant
    payment_reference = db.Column(db.String(255), nullable=True)

    # --- Recurring billing ---
    paystack_customer_code = db.Column(db.String(255), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    orders = db.relationship("Order", back_populates="user", lazy="dynamic")
    payment_transactions = db.relationship(
        "PaymentTransaction", back_populates="user", lazy="dynamic"
    )
    subscriptions = db.relationship(
        "Subscription", back_populates="user", lazy="dynamic"
    )
    audit_events = db.relationship(
        "AuditEvent",
        foreign_keys="AuditEvent.actor_user_id",
        back_populates="actor",
        lazy="dynamic",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "is_admin": bool(self.is_admin),
            "has_chat_access": bool(self.has_chat_access),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.email}>"

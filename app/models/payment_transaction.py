"""Payment transaction model (ledger entry for one payment attempt).

Keyed for the gateway by `reference`, which is unique. Status moves
pending -> success at most once; success is absorbing. The metadata column
is only read through app.services.payment_details, which decodes it into a
typed variant per service_type / payment_method.
"""

import uuid

from app.extensions import db


class PaymentTransaction(db.Model):
    __tablename__ = "payment_transactions"

    STATUSES = ["pending", "success", "failed"]
    SERVICE_TYPES = ["chat_access"]
    PAYMENT_METHODS = ["paystack", "iap"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    order_id = db.Column(
        db.String(255), db.ForeignKey("orders.id"), nullable=True
    )
    reference = db.Column(db.String(255), unique=True, nullable=False)
    provider_transaction_id = db.Column(db.String(255), nullable=True)
    amount = db.Column(db.Integer, nullable=False)  # major units (e.g. NGN)
    currency = db.Column(db.String(3), nullable=False, default="NGN")
    status = db.Column(
        db.String(50), nullable=False, default="pending"
    )  # pending | success | failed
    payment_method = db.Column(
        db.String(50), nullable=False, default="paystack"
    )
    service_type = db.Column(
        db.String(50), nullable=False, default="chat_access"
    )
    metadata_ = db.Column("metadata", db.JSON, default=dict)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="payment_transactions")
    order = db.relationship("Order", back_populates="payment_transactions")

    @property
    def is_successful(self):
        return self.status == "success"

    def __repr__(self):
        return f"<PaymentTransaction {self.reference} ({self.status})>"

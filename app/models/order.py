"""Order model.

An order is the idempotency anchor for a payment intent. Its primary key is
the caller's idempotency key, so a second insert with the same id fails on
the primary key constraint instead of creating a duplicate.
"""

from app.extensions import db


class Order(db.Model):
    __tablename__ = "orders"

    STATUSES = ["pending", "paid", "cancelled"]

    id = db.Column(db.String(255), primary_key=True)  # e.g. "order_abc"
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False, index=True
    )
    amount = db.Column(db.Integer, nullable=False)  # minor currency units
    status = db.Column(db.String(50), nullable=False, default="pending")
    metadata_ = db.Column(
        "metadata", db.JSON, default=dict
    )  # named metadata_ to avoid the declarative attribute clash
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    user = db.relationship("User", back_populates="orders")
    payment_transactions = db.relationship(
        "PaymentTransaction", back_populates="order", lazy="dynamic"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "amount": self.amount,
            "status": self.status,
            "metadata": self.metadata_ or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Order {self.id} ({self.status})>"

"""Audit event model.

Append-only trail of entitlement changes. Two user columns:
- actor_user_id: who caused the change (None when Paystack or a sweep did)
- subject_user_id: whose access, order or subscription changed

Support answers "why does this user (not) have chat access?" by reading
the subject's events in created_at order.
"""

import uuid

from app.extensions import db


class AuditEvent(db.Model):
    __tablename__ = "audit_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    actor_user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=True
    )
    subject_user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=True, index=True
    )
    action = db.Column(
        db.String(255), nullable=False, index=True
    )  # e.g. "payment.succeeded", "access.expired"
    metadata_ = db.Column("metadata", db.JSON, default=dict)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    actor = db.relationship(
        "User", foreign_keys=[actor_user_id], back_populates="audit_events"
    )
    subject = db.relationship("User", foreign_keys=[subject_user_id])

    def __repr__(self):
        return f"<AuditEvent {self.action} subject={self.subject_user_id}>"

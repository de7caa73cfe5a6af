"""Audit helper shared by the payment, access and subscription services.

Flushes but does NOT commit: the audit row lands in the caller's
transaction so it commits or rolls back with the change it records.
"""

from app.extensions import db
from app.models.audit import AuditEvent


def log_audit(action, actor_user_id=None, subject_user_id=None, metadata=None):
    """Record an audit event.

    actor_user_id is None for gateway-initiated (webhook) and CLI changes.
    subject_user_id defaults to the actor.
    """
    event = AuditEvent(
        actor_user_id=actor_user_id,
        subject_user_id=subject_user_id or actor_user_id,
        action=action,
        metadata_=metadata or {},
    )
    db.session.add(event)
    db.session.flush()
    return event


def history_for(user_id, limit=50):
    """Newest-first audit trail for one user."""
    return (
        AuditEvent.query
        .filter_by(subject_user_id=user_id)
        .order_by(AuditEvent.created_at.desc())
        .limit(limit)
        .all()
    )

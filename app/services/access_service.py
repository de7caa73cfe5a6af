"""Access service — chat-access entitlement reads and expiry enforcement.

Every check reads the user row fresh; nothing is cached across requests.
A grant whose access_expiry_date has passed is revoked on read (flag
cleared, audit row written, committed) so the flag and the expiry never
disagree for longer than one request. `revoke_expired_access` does the same
in bulk for the CLI sweep. Both paths re-read the user under a row lock
before clearing the flag, so a grant committed concurrently is never lost.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from app.errors import NotFoundError
from app.extensions import db
from app.models.user import User
from app.services.audit_service import log_audit

logger = logging.getLogger(__name__)


def as_utc(value):
    """Attach UTC to naive datetimes (SQLite drops tzinfo on the way back)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class AccessStatus:
    has_access: bool
    payment_date: datetime | None = None
    expiry_date: datetime | None = None
    payment_reference: str | None = None

    def to_dict(self):
        return {
            "hasAccess": self.has_access,
            "paymentDate": self.payment_date.isoformat() if self.payment_date else None,
            "accessExpiryDate": self.expiry_date.isoformat() if self.expiry_date else None,
            "paymentReference": self.payment_reference,
        }


def is_grant_expired(user, now=None):
    expiry = as_utc(user.access_expiry_date)
    if expiry is None:
        return False
    return expiry <= (now or datetime.now(timezone.utc))


def check_chat_access(user_id, now=None):
    """Return the user's current AccessStatus, revoking an expired grant.

    Raises NotFoundError for an unknown user.
    """
    now = now or datetime.now(timezone.utc)
    user = db.session.get(User, user_id, populate_existing=True)
    if user is None:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")

    if user.has_chat_access and is_grant_expired(user, now):
        _revoke_if_expired(user_id, now)
        db.session.commit()

    return AccessStatus(
        has_access=bool(user.has_chat_access),
        payment_date=as_utc(user.payment_date),
        expiry_date=as_utc(user.access_expiry_date),
        payment_reference=user.payment_reference,
    )


def revoke_expired_access(now=None, dry_run=False):
    """Clear has_chat_access for every user whose grant has expired.

    Returns the list of affected user ids.
    """
    now = now or datetime.now(timezone.utc)
    candidates = (
        User.query
        .filter(User.has_chat_access.is_(True))
        .filter(User.access_expiry_date.isnot(None))
        .all()
    )
    expired_ids = [u.id for u in candidates if is_grant_expired(u, now)]

    if dry_run:
        return expired_ids

    revoked = [uid for uid in expired_ids if _revoke_if_expired(uid, now)]
    db.session.commit()
    return revoked


def _revoke_if_expired(user_id, now):
    """Lock the user row and revoke only if the grant is still expired.

    A payment can commit a fresh grant between the unlocked read and this
    point; the locked re-read sees it and leaves it alone.
    """
    user = db.session.get(
        User, user_id, with_for_update=True, populate_existing=True
    )
    if user is None or not user.has_chat_access or not is_grant_expired(user, now):
        return False

    user.has_chat_access = False
    log_audit("access.expired", subject_user_id=user.id, metadata={
        "payment_reference": user.payment_reference,
        "access_expiry_date": as_utc(user.access_expiry_date).isoformat(),
        "revoked_at": now.isoformat(),
    })
    logger.info(f"Chat access for user {user.id} expired, revoked")
    return True

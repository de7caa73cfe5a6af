"""Message service — direct messages between users.

All content is sanitized with bleach.clean() to strip HTML tags.
Callers are expected to have passed the chat access gate already.
"""

from datetime import datetime, timezone

import bleach
from sqlalchemy import or_

from app.errors import NotFoundError, ValidationError
from app.extensions import db
from app.models.message import Message
from app.models.user import User

MAX_MESSAGE_LENGTH = 5000


def _sanitize(text):
    """Strip all HTML tags from user input."""
    if text is None:
        return text
    return bleach.clean(text, tags=[], strip=True).strip()


def send_message(sender_id, receiver_id, content):
    if not isinstance(content, str):
        raise ValidationError("Message content is required")
    content = _sanitize(content)
    if not content:
        raise ValidationError("Message content is required")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationError(
            f"Message must be at most {MAX_MESSAGE_LENGTH} characters"
        )
    if sender_id == receiver_id:
        raise ValidationError("You cannot message yourself")
    if db.session.get(User, receiver_id) is None:
        raise NotFoundError("Recipient not found")

    message = Message(sender_id=sender_id, receiver_id=receiver_id, content=content)
    db.session.add(message)
    db.session.commit()
    return message


def get_conversation(user_id, other_user_id):
    """Messages between two users, oldest first. Marks incoming ones read."""
    messages = (
        Message.query
        .filter(or_(
            (Message.sender_id == user_id) & (Message.receiver_id == other_user_id),
            (Message.sender_id == other_user_id) & (Message.receiver_id == user_id),
        ))
        .order_by(Message.created_at.asc())
        .all()
    )

    now = datetime.now(timezone.utc)
    unread = [m for m in messages if m.receiver_id == user_id and m.read_at is None]
    for message in unread:
        message.read_at = now
    if unread:
        db.session.commit()
    return messages


def get_conversations(user_id):
    """Latest message per counterpart, newest conversation first."""
    messages = (
        Message.query
        .filter(or_(Message.sender_id == user_id, Message.receiver_id == user_id))
        .order_by(Message.created_at.desc())
        .all()
    )

    latest = {}
    for message in messages:
        other = message.receiver_id if message.sender_id == user_id else message.sender_id
        latest.setdefault(other, message)

    return [
        {"user_id": other, "last_message": message.to_dict()}
        for other, message in latest.items()
    ]


def get_unread_count(user_id):
    return Message.query.filter_by(receiver_id=user_id, read_at=None).count()

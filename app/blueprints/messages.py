"""Messages blueprint — /messages/*, /conversations

Every route is behind chat_access_required.
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user

from app.decorators import chat_access_required
from app.services import message_service

messages_bp = Blueprint("messages", __name__)


@messages_bp.route("/conversations")
@chat_access_required
def conversations():
    return jsonify({
        "success": True,
        "data": message_service.get_conversations(current_user.id),
    })


@messages_bp.route("/messages/unread/count")
@chat_access_required
def unread_count():
    return jsonify({
        "success": True,
        "count": message_service.get_unread_count(current_user.id),
    })


@messages_bp.route("/messages/<user_id>")
@chat_access_required
def conversation(user_id):
    messages = message_service.get_conversation(current_user.id, user_id)
    return jsonify({"success": True, "data": [m.to_dict() for m in messages]})


@messages_bp.route("/messages/<user_id>", methods=["POST"])
@chat_access_required
def send(user_id):
    """Body: {content}."""
    data = request.get_json(silent=True) or {}
    message = message_service.send_message(
        current_user.id, user_id, data.get("content")
    )
    return jsonify({"success": True, "data": message.to_dict()}), 201

"""
Admin-side mutations of stored conversations.

Every operation validates its input, mutates the store, commits, and returns
the result together with the delta events that live subscribers must see.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from support_relay.logging_config import get_logger
from support_relay.services.alert_service import alert_error
from support_relay.services.broadcast import (
    EVENT_ALL_MESSAGES_DELETED,
    EVENT_MESSAGE_DELETED,
    EVENT_MESSAGE_EDITED,
    EVENT_MESSAGE_READ,
    EVENT_MESSAGE_UPDATED,
    Emission,
    route_admin,
    route_delta,
    route_to_user,
)
from support_relay.services.conversation_store import ConversationStore, NotFoundError, parse_message_id
from support_relay.services.result import INTERNAL, INVALID_INPUT, NOT_FOUND, Result
from support_relay.services.serializers import now_iso, serialize_edit, serialize_message

logger = get_logger("moderation_service")

ACTION_UPDATED = "updated"
ACTION_DELETED = "deleted"
ACTION_EDITED = "edited"
ACTION_READ = "read"
ACTION_ALL_DELETED = "allDeleted"
ACTION_ALL_USERS_DELETED = "allMessagesAllUsers"


@dataclass
class ModerationOutcome:
    data: Any
    emissions: list[Emission] = field(default_factory=list)


def _run(db: Session, operation: str, fn: Callable[[ConversationStore], ModerationOutcome]) -> Result[ModerationOutcome]:
    """Run a store mutation as one unit of work and map failures to result codes."""
    try:
        outcome = fn(ConversationStore(db))
        db.commit()
        return Result.success(outcome)
    except NotFoundError as e:
        db.rollback()
        return Result.failure(e.message, NOT_FOUND)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"{operation} failed: {e}")
        alert_error(f"Moderation operation failed: {operation}", {"error": str(e)})
        return Result.failure(f"Error during {operation}", INTERNAL)


def update_message(db: Session, message_id, content: Optional[str]) -> Result[ModerationOutcome]:
    if not message_id or not content or not isinstance(content, str):
        return Result.failure("messageId and content are required", INVALID_INPUT)

    def _update(store: ConversationStore) -> ModerationOutcome:
        message = store.update(message_id, content)
        payload = serialize_message(message)
        delta = {
            "_id": payload["_id"],
            "content": payload["content"],
            "updatedAt": payload.get("updatedAt"),
            "action": ACTION_UPDATED,
            "timestamp": now_iso(),
        }
        return ModerationOutcome(
            data={"message": "Message updated successfully", "updatedMessage": payload},
            emissions=route_delta(EVENT_MESSAGE_UPDATED, message.user_id, delta),
        )

    return _run(db, "update message", _update)


def delete_message(db: Session, message_id) -> Result[ModerationOutcome]:
    if not message_id:
        return Result.failure("messageId is required", INVALID_INPUT)

    def _delete(store: ConversationStore) -> ModerationOutcome:
        user_id = store.remove_hard(message_id)
        message_key = str(parse_message_id(message_id))
        delta = {"_id": message_key, "action": ACTION_DELETED, "timestamp": now_iso()}
        logger.info("Message deleted", extra={"context": {"user_id": user_id, "message_id": message_key}})
        return ModerationOutcome(
            data={"success": True, "message": "Message deleted successfully", "messageId": message_key},
            emissions=route_delta(EVENT_MESSAGE_DELETED, user_id, delta),
        )

    return _run(db, "delete message", _delete)


def edit_message(
    db: Session,
    message_id,
    content: Optional[str],
    admin_id: Optional[str] = None,
    reason: Optional[str] = None,
) -> Result[ModerationOutcome]:
    if not message_id or not content or not isinstance(content, str):
        return Result.failure("messageId and content are required", INVALID_INPUT)

    def _edit(store: ConversationStore) -> ModerationOutcome:
        message = store.edit(message_id, content, edited_by=admin_id, reason=reason)
        payload = serialize_message(message)
        delta = {
            "_id": payload["_id"],
            "content": payload["content"],
            "isEdited": True,
            "editHistory": [serialize_edit(edit) for edit in message.edit_history],
            "editedBy": admin_id,
            "reason": reason,
            "updatedAt": payload.get("updatedAt"),
            "action": ACTION_EDITED,
            "timestamp": now_iso(),
        }
        return ModerationOutcome(
            data={"success": True, "message": "Message edited successfully", "editedMessage": payload},
            emissions=route_delta(EVENT_MESSAGE_EDITED, message.user_id, delta),
        )

    return _run(db, "edit message", _edit)


def mark_user_read(db: Session, user_id: Optional[str], admin_id: Optional[str] = None) -> Result[ModerationOutcome]:
    if not user_id:
        return Result.failure("userId is required", INVALID_INPUT)

    def _mark(store: ConversationStore) -> ModerationOutcome:
        count = store.mark_read_for_user(user_id)
        delta = {"userId": user_id, "adminId": admin_id, "count": count, "action": ACTION_READ, "timestamp": now_iso()}
        return ModerationOutcome(
            data={"success": True, "count": count},
            emissions=route_delta(EVENT_MESSAGE_READ, user_id, delta),
        )

    return _run(db, "mark messages read", _mark)


def mark_message_read(db: Session, message_id, admin_id: Optional[str] = None) -> Result[ModerationOutcome]:
    """Mark one message read. An unknown id succeeds with no data and no events."""
    if not message_id:
        return Result.failure("messageId is required", INVALID_INPUT)

    def _mark(store: ConversationStore) -> ModerationOutcome:
        message = store.mark_read_message(message_id)
        if message is None:
            return ModerationOutcome(data=None)
        payload = serialize_message(message)
        delta = {
            "messageId": payload["_id"],
            "userId": message.user_id,
            "adminId": admin_id,
            "action": ACTION_READ,
            "timestamp": now_iso(),
        }
        return ModerationOutcome(
            data=payload,
            emissions=route_delta(EVENT_MESSAGE_READ, message.user_id, delta),
        )

    return _run(db, "mark message read", _mark)


def delete_user_messages(db: Session, user_id: Optional[str]) -> Result[ModerationOutcome]:
    if not user_id:
        return Result.failure("userId is required", INVALID_INPUT)

    def _clear(store: ConversationStore) -> ModerationOutcome:
        count = store.clear(user_id)
        delta = {
            "userId": user_id,
            "action": ACTION_ALL_DELETED,
            "messageCount": count,
            "timestamp": now_iso(),
        }
        logger.info("Cleared user messages", extra={"context": {"user_id": user_id, "count": count}})
        return ModerationOutcome(
            data={"success": True, "userId": user_id, "deletedCount": count},
            emissions=route_delta(EVENT_ALL_MESSAGES_DELETED, user_id, delta),
        )

    return _run(db, "delete user messages", _clear)


def delete_all_messages(db: Session, admin_id: Optional[str]) -> Result[ModerationOutcome]:
    if not admin_id:
        return Result.failure("adminId is required for this operation", INVALID_INPUT)

    def _clear_all(store: ConversationStore) -> ModerationOutcome:
        counts = store.clear_all()
        timestamp = now_iso()

        emissions: list[Emission] = []
        for user_id, count in counts["user_counts"].items():
            emissions += route_to_user(
                EVENT_ALL_MESSAGES_DELETED,
                user_id,
                {
                    "userId": user_id,
                    "action": ACTION_ALL_DELETED,
                    "messageCount": count,
                    "adminId": admin_id,
                    "timestamp": timestamp,
                },
            )
        emissions += route_admin(
            EVENT_ALL_MESSAGES_DELETED,
            {
                "action": ACTION_ALL_USERS_DELETED,
                "totalMessageCount": counts["total"],
                "userCounts": counts["user_counts"],
                "adminId": admin_id,
                "timestamp": timestamp,
            },
        )

        logger.warning(
            "All messages deleted",
            extra={"context": {"admin_id": admin_id, "total": counts["total"]}},
        )
        return ModerationOutcome(
            data={
                "success": True,
                "totalMessagesDeleted": counts["total"],
                "userCounts": counts["user_counts"],
            },
            emissions=emissions,
        )

    return _run(db, "delete all messages", _clear_all)


def unread_counts(db: Session) -> Result[list[dict]]:
    try:
        counts = ConversationStore(db).unread_counts()
    except SQLAlchemyError as e:
        logger.error(f"Unread count query failed: {e}")
        return Result.failure("Error getting unread message counts", INTERNAL)
    return Result.success([{"userId": user_id, "unreadCount": count} for user_id, count in counts.items()])

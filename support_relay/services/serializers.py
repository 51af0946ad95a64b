"""Plain-dict views of stored records, shared by the HTTP and socket adapters."""

from datetime import datetime, timezone
from typing import Optional

from support_relay.models import Message, MessageEdit, User


def iso(value: Optional[datetime]) -> Optional[str]:
    if not isinstance(value, datetime):
        return None
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def serialize_edit(edit: MessageEdit) -> dict:
    return {
        "originalContent": edit.original_content,
        "editedAt": iso(edit.edited_at),
        "editedBy": edit.edited_by,
        "reason": edit.reason,
    }


def serialize_file(message: Message) -> Optional[dict]:
    if not message.file_data:
        return None
    return {
        "filename": message.file_name,
        "originalname": message.file_name,
        "mimetype": message.file_mimetype,
        "size": message.file_size,
        "data": message.file_data,
    }


def serialize_message(message: Message) -> dict:
    data = {
        "_id": str(message.id),
        "content": message.content,
        "timestamp": iso(message.timestamp),
        "senderType": message.sender_type,
        "isRead": bool(message.is_read),
        "isDeleted": bool(message.is_deleted),
        "isEdited": bool(message.is_edited),
    }
    if message.sender_id:
        data["senderId"] = message.sender_id
    if message.session_id:
        data["sessionId"] = message.session_id
    file_data = serialize_file(message)
    if file_data:
        data["file"] = file_data
    if message.updated_at:
        data["updatedAt"] = iso(message.updated_at)
    if message.deleted_at:
        data["deletedAt"] = iso(message.deleted_at)
    if message.is_edited:
        data["editHistory"] = [serialize_edit(edit) for edit in message.edit_history]
    return data


def serialize_user_summary(user: User) -> dict:
    return {
        "userId": user.user_id,
        "username": user.username,
        "createdAt": iso(user.created_at),
        "updatedAt": iso(user.updated_at),
    }


def serialize_user(user: User, messages: list[Message]) -> dict:
    data = serialize_user_summary(user)
    data["messages"] = [serialize_message(message) for message in messages]
    return data

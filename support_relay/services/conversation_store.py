"""Per-user ordered message log backed by SQLAlchemy."""

import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from support_relay.models import Message, MessageEdit, User
from support_relay.services.attachment_service import Attachment

SENDER_USER = "user"
SENDER_BOT = "bot"
SENDER_ADMIN = "admin"
SENDER_TYPES = {SENDER_USER, SENDER_BOT, SENDER_ADMIN}

_locks_guard = threading.Lock()
_user_locks: dict[str, threading.RLock] = {}


class NotFoundError(Exception):
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


@contextmanager
def user_lock(user_id: str) -> Iterator[None]:
    """Serialize appends to a single user's message sequence.

    Callers must check that the user exists first; entries live until
    ``forget_user_lock`` runs for that user.
    """
    with _locks_guard:
        lock = _user_locks.setdefault(user_id, threading.RLock())
    with lock:
        yield


def forget_user_lock(user_id: str) -> None:
    with _locks_guard:
        _user_locks.pop(user_id, None)


def forget_all_user_locks() -> None:
    with _locks_guard:
        _user_locks.clear()


def parse_message_id(message_id) -> Optional[int]:
    if isinstance(message_id, bool):
        return None
    if isinstance(message_id, int):
        return message_id
    try:
        return int(str(message_id).strip())
    except (TypeError, ValueError):
        return None


class ConversationStore:
    def __init__(self, db: Session):
        self.db = db

    # === USERS ===

    def find_user(self, user_id: str) -> Optional[User]:
        return self.db.query(User).filter(User.user_id == user_id).first()

    def get_user(self, user_id: str) -> User:
        user = self.find_user(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    # === MESSAGES ===

    def append(
        self,
        user_id: str,
        content: Optional[str],
        sender_type: str,
        sender_id: Optional[str] = None,
        attachment: Optional[Attachment] = None,
        session_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> Message:
        """Append a message to the user's sequence and assign its id."""
        if sender_type not in SENDER_TYPES:
            raise ValueError(f"Unknown sender type: {sender_type}")
        self.get_user(user_id)

        message = Message(
            user_id=user_id,
            content=content or "",
            sender_type=sender_type,
            sender_id=sender_id,
            session_id=session_id,
            timestamp=timestamp or datetime.now(timezone.utc),
            is_read=False,
            is_deleted=False,
            is_edited=False,
        )
        if attachment:
            message.file_name = attachment.filename
            message.file_mimetype = attachment.mimetype
            message.file_size = attachment.size
            message.file_data = attachment.data

        self.db.add(message)
        self.db.flush()  # Assign id now so ordering follows append order
        return message

    def history(self, user_id: str) -> list[Message]:
        self.get_user(user_id)
        return self.db.query(Message).filter(Message.user_id == user_id).order_by(Message.id).all()

    def get_message(self, message_id) -> Message:
        parsed_id = parse_message_id(message_id)
        message = self.db.get(Message, parsed_id) if parsed_id is not None else None
        if not message:
            raise NotFoundError("Message not found")
        return message

    def find_message_owner(self, message_id) -> Tuple[str, int]:
        """Return (user_id, position in the owner's history) for a message."""
        message = self.get_message(message_id)
        index = (
            self.db.query(func.count(Message.id))
            .filter(Message.user_id == message.user_id, Message.id < message.id)
            .scalar()
        )
        return message.user_id, int(index or 0)

    def update(self, message_id, content: str) -> Message:
        message = self.get_message(message_id)
        message.content = content
        message.updated_at = datetime.now(timezone.utc)
        self.db.flush()
        return message

    def remove_hard(self, message_id) -> str:
        """Physically delete a message. Returns the owner's user id."""
        message = self.get_message(message_id)
        user_id = message.user_id
        self.db.delete(message)
        self.db.flush()
        return user_id

    def edit(
        self,
        message_id,
        content: str,
        edited_by: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Message:
        """Record the current content in the edit history, then replace it."""
        message = self.get_message(message_id)
        now = datetime.now(timezone.utc)

        message.edit_history.append(
            MessageEdit(
                original_content=message.content or "",
                edited_at=now,
                edited_by=edited_by,
                reason=reason,
            )
        )
        message.content = content
        message.is_edited = True
        message.updated_at = now
        self.db.flush()
        return message

    # === READ STATE ===

    def mark_read_for_user(self, user_id: str) -> int:
        self.get_user(user_id)
        count = (
            self.db.query(Message)
            .filter(
                Message.user_id == user_id,
                Message.sender_type == SENDER_USER,
                Message.is_read.is_(False),
            )
            .update({Message.is_read: True}, synchronize_session=False)
        )
        self.db.flush()
        return count

    def mark_read_message(self, message_id) -> Optional[Message]:
        """Mark one message read. Nothing to mark is not an error."""
        try:
            message = self.get_message(message_id)
        except NotFoundError:
            return None
        message.is_read = True
        self.db.flush()
        return message

    def unread_counts(self) -> dict[str, int]:
        rows = (
            self.db.query(Message.user_id, func.count(Message.id))
            .filter(Message.sender_type == SENDER_USER, Message.is_read.is_(False))
            .group_by(Message.user_id)
            .all()
        )
        return {user_id: int(count) for user_id, count in rows}

    # === BULK DELETE ===

    def _delete_messages(self, query) -> None:
        ids = [row[0] for row in query.with_entities(Message.id).all()]
        if not ids:
            return
        self.db.query(MessageEdit).filter(MessageEdit.message_id.in_(ids)).delete(synchronize_session=False)
        self.db.query(Message).filter(Message.id.in_(ids)).delete(synchronize_session=False)
        self.db.flush()
        self.db.expire_all()

    def clear(self, user_id: str) -> int:
        """Empty a user's sequence. Returns how many messages were removed."""
        self.get_user(user_id)
        query = self.db.query(Message).filter(Message.user_id == user_id)
        count = query.count()
        self._delete_messages(query)
        return count

    def clear_all(self) -> dict:
        rows = self.db.query(Message.user_id, func.count(Message.id)).group_by(Message.user_id).all()
        user_counts = {user_id: int(count) for user_id, count in rows}
        self._delete_messages(self.db.query(Message))
        return {"user_counts": user_counts, "total": sum(user_counts.values())}

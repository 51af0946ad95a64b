from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from support_relay.logging_config import get_logger
from support_relay.models import Message, User
from support_relay.services.alert_service import alert_error
from support_relay.services.bot_engine import BotDecisionEngine
from support_relay.services.conversation_store import (
    ConversationStore,
    NotFoundError,
    forget_all_user_locks,
    forget_user_lock,
)
from support_relay.services.mute_store import MuteStoreError
from support_relay.services.result import INTERNAL, INVALID_INPUT, NOT_FOUND, Result
from support_relay.services.serializers import serialize_message, serialize_user, serialize_user_summary

logger = get_logger("user_service")


def list_users(db: Session) -> Result[list[dict]]:
    try:
        users = db.query(User).order_by(User.id).all()
    except SQLAlchemyError as e:
        logger.error(f"Listing users failed: {e}")
        alert_error("Listing users failed", {"error": str(e)})
        return Result.failure("Error fetching users", INTERNAL)
    return Result.success([serialize_user_summary(user) for user in users])


def get_or_create_user(db: Session, user_id: Optional[str], username: Optional[str]) -> Result[dict]:
    """Find a user by external id or create it on first contact."""
    if not user_id or not username:
        return Result.failure("userId and username are required", INVALID_INPUT)

    store = ConversationStore(db)
    try:
        user = store.find_user(user_id)
        if not user:
            user = User(user_id=user_id, username=username)
            db.add(user)
            db.commit()
            logger.info("User created", extra={"context": {"user_id": user_id}})
        return Result.success(serialize_user(user, store.history(user_id)))
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"get_or_create_user failed for {user_id}: {e}")
        alert_error("User lookup failed", {"user_id": user_id, "error": str(e)})
        return Result.failure("Error processing request", INTERNAL)


def get_user(db: Session, user_id: Optional[str]) -> Result[dict]:
    if not user_id:
        return Result.failure("userId is required", INVALID_INPUT)
    store = ConversationStore(db)
    try:
        user = store.get_user(user_id)
        return Result.success(serialize_user(user, store.history(user_id)))
    except NotFoundError as e:
        return Result.failure(e.message, NOT_FOUND)
    except SQLAlchemyError as e:
        logger.error(f"Fetching user {user_id} failed: {e}")
        alert_error("User lookup failed", {"user_id": user_id, "error": str(e)})
        return Result.failure("Error fetching user details", INTERNAL)


def get_history(db: Session, user_id: Optional[str]) -> Result[list[dict]]:
    if not user_id:
        return Result.failure("userId is required", INVALID_INPUT)
    try:
        messages = ConversationStore(db).history(user_id)
    except NotFoundError as e:
        return Result.failure(e.message, NOT_FOUND)
    except SQLAlchemyError as e:
        logger.error(f"Fetching history for {user_id} failed: {e}")
        alert_error("History lookup failed", {"user_id": user_id, "error": str(e)})
        return Result.failure("Error fetching chat history", INTERNAL)
    return Result.success([serialize_message(message) for message in messages])


def _forget_silence(engine: Optional[BotDecisionEngine], user_id: str) -> None:
    if engine is None:
        return
    try:
        engine.mute_store.clear(user_id)
    except MuteStoreError as exc:
        logger.warning(f"Could not clear silence window for {user_id}: {exc}")


def delete_user(db: Session, user_id: Optional[str], engine: Optional[BotDecisionEngine] = None) -> Result[dict]:
    if not user_id:
        return Result.failure("userId is required", INVALID_INPUT)
    store = ConversationStore(db)
    try:
        user = store.get_user(user_id)
        message_count = db.query(Message).filter(Message.user_id == user_id).count()
        db.delete(user)
        db.commit()
    except NotFoundError as e:
        return Result.failure(e.message, NOT_FOUND)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Deleting user {user_id} failed: {e}")
        alert_error("User deletion failed", {"user_id": user_id, "error": str(e)})
        return Result.failure("Error deleting user", INTERNAL)

    forget_user_lock(user_id)
    _forget_silence(engine, user_id)
    logger.info("User deleted", extra={"context": {"user_id": user_id, "messages": message_count}})
    return Result.success({"success": True, "userId": user_id, "deletedMessageCount": message_count})


def delete_all_users(db: Session, engine: Optional[BotDecisionEngine] = None) -> Result[dict]:
    store = ConversationStore(db)
    try:
        user_ids = [row[0] for row in db.query(User.user_id).all()]
        counts = store.clear_all()
        deleted_users = db.query(User).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Deleting all users failed: {e}")
        alert_error("Bulk user deletion failed", {"error": str(e)})
        return Result.failure("Error deleting users", INTERNAL)

    for user_id in user_ids:
        _forget_silence(engine, user_id)
    forget_all_user_locks()
    logger.warning(
        "All users deleted",
        extra={"context": {"users": deleted_users, "messages": counts["total"]}},
    )
    return Result.success(
        {"success": True, "deletedUserCount": deleted_users, "deletedMessageCount": counts["total"]}
    )

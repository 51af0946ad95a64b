from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from support_relay.logging_config import get_logger
from support_relay.services.alert_service import alert_error
from support_relay.services.attachment_service import Attachment
from support_relay.services.bot_engine import MSG_BOT_ERROR, BotDecisionEngine
from support_relay.services.broadcast import Emission, route_message
from support_relay.services.conversation_store import (
    SENDER_ADMIN,
    SENDER_BOT,
    SENDER_USER,
    ConversationStore,
    NotFoundError,
    user_lock,
)
from support_relay.services.mute_store import MuteStoreError
from support_relay.services.result import INTERNAL, INVALID_INPUT, NOT_FOUND, Result
from support_relay.services.serializers import serialize_message

logger = get_logger("ingest_service")

MSG_INGEST_FAILED = "Error processing chat"


@dataclass
class IngestOutcome:
    message: dict
    bot_message: Optional[dict] = None
    emissions: list[Emission] = field(default_factory=list)

    @property
    def sender_type(self) -> str:
        return self.message["senderType"]


def ingest(
    db: Session,
    engine: BotDecisionEngine,
    user_id: Optional[str],
    content: Optional[str],
    attachment: Optional[Attachment] = None,
    admin_id: Optional[str] = None,
    session_id: Optional[str] = None,
) -> Result[IngestOutcome]:
    """
    Store an inbound message and, for user messages, the bot's reply.

    Admin messages never reach the bot engine. The user message and its bot
    reply are appended under the user's lock within one transaction, so the
    reply always gets the larger id.
    """
    if not user_id or (not content and attachment is None):
        return Result.failure("userId and either message or file are required", INVALID_INPUT)
    for name, value in (("userId", user_id), ("message", content), ("adminId", admin_id), ("sessionId", session_id)):
        if value is not None and not isinstance(value, str):
            return Result.failure(f"{name} must be a string", INVALID_INPUT)

    store = ConversationStore(db)

    try:
        # Unknown ids never get a lock entry
        store.get_user(user_id)
        with user_lock(user_id):
            if admin_id:
                message = store.append(
                    user_id,
                    content,
                    SENDER_ADMIN,
                    sender_id=admin_id,
                    attachment=attachment,
                    session_id=session_id,
                )
                db.commit()
                payload = serialize_message(message)
                logger.info(
                    "Admin message stored",
                    extra={"context": {"user_id": user_id, "admin_id": admin_id, "message_id": payload["_id"]}},
                )
                return Result.success(IngestOutcome(message=payload, emissions=route_message(user_id, payload)))

            message = store.append(user_id, content, SENDER_USER, attachment=attachment, session_id=session_id)

            try:
                reply = engine.decide(user_id, content, has_attachment=attachment is not None)
            except MuteStoreError as exc:
                logger.warning(
                    "Mute store unavailable, sending fallback reply",
                    extra={"context": {"user_id": user_id, "error": str(exc)}},
                )
                reply = MSG_BOT_ERROR

            bot_message = None
            if reply is not None:
                bot_message = store.append(user_id, reply, SENDER_BOT)

            db.commit()

    except NotFoundError as e:
        db.rollback()
        return Result.failure(e.message, NOT_FOUND)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Ingest failed for user {user_id}: {e}")
        alert_error("Message ingest failed", {"user_id": user_id, "error": str(e)})
        return Result.failure(MSG_INGEST_FAILED, INTERNAL)

    payload = serialize_message(message)
    emissions = route_message(user_id, payload)
    bot_payload = None
    if bot_message is not None:
        bot_payload = serialize_message(bot_message)
        emissions += route_message(user_id, bot_payload)

    logger.info(
        "User message stored",
        extra={
            "context": {
                "user_id": user_id,
                "message_id": payload["_id"],
                "bot_message_id": bot_payload["_id"] if bot_payload else None,
                "silenced": reply is None,
            }
        },
    )
    return Result.success(IngestOutcome(message=payload, bot_message=bot_payload, emissions=emissions))

"""
Socket.IO event handlers.

Handlers are thin: each event payload is mapped onto the same services the
HTTP routes use, run in the threadpool with its own database session, and the
resulting emissions are published to the affected rooms. Failures go back to
the originating connection as an ``error`` event.
"""

import functools
import logging
from typing import Any, Callable, Optional

from starlette.concurrency import run_in_threadpool

from support_relay.database import SessionLocal
from support_relay.logging_config import LoggerAdapter, get_logger
from support_relay.services import moderation_service
from support_relay.services.bot_engine import BotDecisionEngine, get_bot_engine
from support_relay.services.broadcast import (
    ADMIN_ROOM,
    EVENT_ERROR,
    EVENT_JOINED,
    Broadcaster,
    SubscriberRegistry,
)
from support_relay.services.ingest_service import ingest
from support_relay.services.result import INTERNAL, INVALID_INPUT, Result

logger = get_logger("socket")

DEFAULT_ADMIN_SENDER = "admin-socket"
MSG_INTERNAL_ERROR = "Internal server error"

EVENT_DELETE_USER_MESSAGES_RESULT = "deleteAllUserMessagesResult"
EVENT_DELETE_ALL_MESSAGES_RESULT = "deleteAllMessagesResult"
EVENT_EDIT_MESSAGE_RESULT = "editMessageResult"


def _payload(data: Any) -> dict:
    return data if isinstance(data, dict) else {}


def register_socket_handlers(
    sio,
    registry: SubscriberRegistry,
    broadcaster: Broadcaster,
    engine_provider: Callable[[], BotDecisionEngine] = get_bot_engine,
    session_factory=SessionLocal,
) -> None:
    """Register every client→server event on the given Socket.IO server."""

    def _with_session(fn, *args, **kwargs) -> Result:
        db = session_factory()
        try:
            return fn(db, *args, **kwargs)
        finally:
            db.close()

    async def _call(fn, *args, **kwargs) -> Result:
        return await run_in_threadpool(_with_session, fn, *args, **kwargs)

    async def _emit_error(sid: str, result: Result) -> None:
        await sio.emit(EVENT_ERROR, {"message": result.error, "code": result.error_code}, to=sid)

    async def _handle(sid: str, event: str, result: Result, ack_event: Optional[str] = None) -> None:
        log = LoggerAdapter(logger, {"sid": sid, "event": event})
        if not result.ok:
            level = logging.INFO if result.is_client_error else logging.WARNING
            log.log(level, "Socket request failed", context={"error": result.error, "code": result.error_code})
            await _emit_error(sid, result)
            return
        await broadcaster.publish(result.value.emissions)
        if ack_event:
            await sio.emit(ack_event, result.value.data, to=sid)

    def _guarded(event: str, handler):
        """Report anything a handler raises back to the sender as an internal error."""

        @functools.wraps(handler)
        async def wrapper(sid, data=None):
            try:
                await handler(sid, data)
            except Exception:
                LoggerAdapter(logger, {"sid": sid, "event": event}).exception("Socket handler failed")
                await _emit_error(sid, Result.failure(MSG_INTERNAL_ERROR, INTERNAL))

        return wrapper

    async def connect(sid, environ, auth=None):
        registry.connect(sid)
        LoggerAdapter(logger, {"sid": sid}).info("Client connected")

    async def disconnect(sid, *args):
        registry.drop(sid)
        LoggerAdapter(logger, {"sid": sid}).info("Client disconnected")

    async def join(sid, data=None):
        data = _payload(data)
        user_id = data.get("userId")
        if user_id is not None and not isinstance(user_id, str):
            await _emit_error(sid, Result.failure("userId must be a string", INVALID_INPUT))
            return
        is_admin = bool(data.get("isAdmin"))
        rooms = await registry.join(sid, user_id=user_id, is_admin=is_admin)
        room = user_id if user_id else (ADMIN_ROOM if is_admin else None)
        await sio.emit(EVENT_JOINED, {"status": "success", "room": room, "rooms": rooms}, to=sid)

    async def send_message(sid, data=None):
        data = _payload(data)
        admin_id = data.get("adminId")
        if data.get("isAdmin") and not admin_id:
            admin_id = DEFAULT_ADMIN_SENDER
        result = await _call(
            ingest,
            engine_provider(),
            data.get("userId"),
            data.get("text"),
            admin_id=admin_id,
            session_id=data.get("sessionId"),
        )
        await _handle(sid, "sendMessage", result)

    async def mark_messages_read(sid, data=None):
        data = _payload(data)
        result = await _call(moderation_service.mark_user_read, data.get("userId"), data.get("adminId"))
        await _handle(sid, "markMessagesRead", result)

    async def mark_message_read(sid, data=None):
        data = _payload(data)
        result = await _call(moderation_service.mark_message_read, data.get("messageId"), data.get("adminId"))
        await _handle(sid, "markMessageRead", result)

    async def delete_all_user_messages(sid, data=None):
        data = _payload(data)
        result = await _call(moderation_service.delete_user_messages, data.get("userId"))
        await _handle(sid, "deleteAllUserMessages", result, ack_event=EVENT_DELETE_USER_MESSAGES_RESULT)

    async def delete_all_messages(sid, data=None):
        data = _payload(data)
        result = await _call(moderation_service.delete_all_messages, data.get("adminId"))
        await _handle(sid, "deleteAllMessages", result, ack_event=EVENT_DELETE_ALL_MESSAGES_RESULT)

    async def edit_message(sid, data=None):
        data = _payload(data)
        result = await _call(
            moderation_service.edit_message,
            data.get("messageId"),
            data.get("content"),
            data.get("adminId"),
            data.get("reason"),
        )
        await _handle(sid, "editMessage", result, ack_event=EVENT_EDIT_MESSAGE_RESULT)

    sio.on("connect", connect)
    sio.on("disconnect", disconnect)
    for event, handler in (
        ("join", join),
        ("sendMessage", send_message),
        ("markMessagesRead", mark_messages_read),
        ("markMessageRead", mark_message_read),
        ("deleteAllUserMessages", delete_all_user_messages),
        ("deleteAllMessages", delete_all_messages),
        ("editMessage", edit_message),
    ):
        sio.on(event, _guarded(event, handler))

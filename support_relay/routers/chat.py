from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from support_relay.config import settings
from support_relay.database import get_db
from support_relay.logging_config import get_logger
from support_relay.routers.deps import error_response, get_broadcaster, invalid_body_response
from support_relay.schemas.chat import (
    AdminActionRequest,
    ChatMessageRequest,
    HistoryRequest,
    MessageEditRequest,
    MessageUpdateRequest,
)
from support_relay.services import moderation_service, user_service
from support_relay.services.attachment_service import encode_attachment
from support_relay.services.bot_engine import BotDecisionEngine, get_bot_engine
from support_relay.services.broadcast import Broadcaster
from support_relay.services.conversation_store import SENDER_ADMIN
from support_relay.services.ingest_service import IngestOutcome, ingest

router = APIRouter(tags=["chat"])
logger = get_logger("chat_router")

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


def _file_data(message: Optional[dict]) -> Optional[str]:
    if not message or "file" not in message:
        return None
    return message["file"]["data"]


def _chat_response(outcome: IngestOutcome) -> dict:
    message = outcome.message
    if outcome.sender_type == SENDER_ADMIN:
        return {
            "userMessage": None,
            "adminMessage": message,
            "botMessage": None,
            "botResponse": None,
            "messageId": message["_id"],
            "fileData": _file_data(message),
        }
    bot_message = outcome.bot_message
    return {
        "userMessage": message,
        "botMessage": bot_message,
        "botResponse": bot_message["content"] if bot_message else None,
        "messageId": message["_id"],
        "fileData": _file_data(message),
    }


@router.post("/chat")
async def handle_chat(
    request: Request,
    db: Session = Depends(get_db),
    engine: BotDecisionEngine = Depends(get_bot_engine),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    """Handle an inbound chat message (multipart with optional `file`, or JSON)."""
    attachment = None
    content_type = request.headers.get("content-type", "")

    if content_type.startswith(FORM_CONTENT_TYPES):
        form = await request.form()
        try:
            fields = ChatMessageRequest.model_validate(
                {key: value for key, value in form.items() if isinstance(value, str)}
            )
        except ValidationError:
            return invalid_body_response()
        upload = form.get("file")
        if isinstance(upload, UploadFile) and upload.filename:
            raw = await upload.read()
            encoded = encode_attachment(upload.filename, upload.content_type, raw, settings.max_attachment_bytes)
            if not encoded.ok:
                logger.warning(
                    "Rejected attachment",
                    extra={"context": {"user_id": fields.user_id, "filename": upload.filename, "size": len(raw)}},
                )
                return error_response(encoded)
            attachment = encoded.value
    else:
        try:
            payload = await request.json()
        except ValueError:
            payload = {}
        try:
            fields = ChatMessageRequest.model_validate(payload if isinstance(payload, dict) else {})
        except ValidationError:
            logger.info("Rejected chat body", extra={"context": {"fields": sorted(payload)}})
            return invalid_body_response()

    result = await run_in_threadpool(
        ingest,
        db,
        engine,
        fields.user_id,
        fields.message,
        attachment=attachment,
        admin_id=fields.admin_id,
        session_id=fields.session_id,
    )
    if not result.ok:
        return error_response(result)

    await broadcaster.publish(result.value.emissions)
    return _chat_response(result.value)


@router.post("/chat/history")
async def get_chat_history(request: HistoryRequest, db: Session = Depends(get_db)):
    result = await run_in_threadpool(user_service.get_history, db, request.user_id)
    if not result.ok:
        return error_response(result)
    return result.value


@router.get("/chat/history/{user_id}")
async def get_chat_history_by_param(user_id: str, db: Session = Depends(get_db)):
    result = await run_in_threadpool(user_service.get_history, db, user_id)
    if not result.ok:
        return error_response(result)
    return result.value


@router.put("/chat/message/{message_id}")
async def update_message(
    message_id: str,
    request: Optional[MessageUpdateRequest] = None,
    db: Session = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    content = request.content if request else None
    result = await run_in_threadpool(moderation_service.update_message, db, message_id, content)
    if not result.ok:
        return error_response(result)
    await broadcaster.publish(result.value.emissions)
    return result.value.data


@router.delete("/chat/message/{message_id}")
async def delete_message(
    message_id: str,
    db: Session = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    result = await run_in_threadpool(moderation_service.delete_message, db, message_id)
    if not result.ok:
        return error_response(result)
    await broadcaster.publish(result.value.emissions)
    return result.value.data


@router.put("/chat/message/{message_id}/edit")
async def edit_message(
    message_id: str,
    request: Optional[MessageEditRequest] = None,
    db: Session = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    request = request or MessageEditRequest()
    result = await run_in_threadpool(
        moderation_service.edit_message,
        db,
        message_id,
        request.content,
        request.admin_id,
        request.reason,
    )
    if not result.ok:
        return error_response(result)
    await broadcaster.publish(result.value.emissions)
    return result.value.data


@router.delete("/chat/messages/all")
async def delete_all_messages(
    request: Optional[AdminActionRequest] = None,
    db: Session = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    admin_id = request.admin_id if request else None
    result = await run_in_threadpool(moderation_service.delete_all_messages, db, admin_id)
    if not result.ok:
        return error_response(result)
    await broadcaster.publish(result.value.emissions)
    return result.value.data


@router.delete("/chat/messages/user/{user_id}")
async def delete_all_user_messages(
    user_id: str,
    db: Session = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    result = await run_in_threadpool(moderation_service.delete_user_messages, db, user_id)
    if not result.ok:
        return error_response(result)
    await broadcaster.publish(result.value.emissions)
    return result.value.data


@router.put("/chat/read/message/{message_id}")
async def mark_message_read(
    message_id: str,
    request: Optional[AdminActionRequest] = None,
    db: Session = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    admin_id = request.admin_id if request else None
    result = await run_in_threadpool(moderation_service.mark_message_read, db, message_id, admin_id)
    if not result.ok:
        return error_response(result)
    await broadcaster.publish(result.value.emissions)
    # null when there was nothing to mark
    return result.value.data


@router.put("/chat/read/{user_id}")
async def mark_messages_read(
    user_id: str,
    request: Optional[AdminActionRequest] = None,
    db: Session = Depends(get_db),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    admin_id = request.admin_id if request else None
    result = await run_in_threadpool(moderation_service.mark_user_read, db, user_id, admin_id)
    if not result.ok:
        return error_response(result)
    await broadcaster.publish(result.value.emissions)
    return result.value.data


@router.get("/chat/unread-counts")
async def get_unread_counts(db: Session = Depends(get_db)):
    result = await run_in_threadpool(moderation_service.unread_counts, db)
    if not result.ok:
        return error_response(result)
    return result.value

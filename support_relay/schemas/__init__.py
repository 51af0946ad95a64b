from support_relay.schemas.chat import (
    AdminActionRequest,
    ChatMessageRequest,
    HistoryRequest,
    MessageEditRequest,
    MessageUpdateRequest,
    UserRequest,
)

__all__ = [
    "UserRequest",
    "HistoryRequest",
    "ChatMessageRequest",
    "MessageUpdateRequest",
    "MessageEditRequest",
    "AdminActionRequest",
]

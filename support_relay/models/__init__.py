from support_relay.models.message import Message
from support_relay.models.message_edit import MessageEdit
from support_relay.models.user import User

__all__ = [
    "User",
    "Message",
    "MessageEdit",
]

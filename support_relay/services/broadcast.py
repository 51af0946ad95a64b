"""
Live subscriber rooms and event routing.

Every connection may sit in one user room (named by the user id) and/or the
admin room. Stored messages and moderation deltas go to the owning user's
room and to the admin room; admin copies are annotated with ``userId`` so
observers can attribute them.
"""

import threading
from dataclasses import dataclass, field
from typing import Iterable, Optional

from support_relay.config import settings
from support_relay.logging_config import get_logger

logger = get_logger("broadcast")

ADMIN_ROOM = settings.admin_room

EVENT_JOINED = "joined"
EVENT_MESSAGE = "message"
EVENT_MESSAGE_READ = "messageRead"
EVENT_MESSAGE_UPDATED = "messageUpdated"
EVENT_MESSAGE_DELETED = "messageDeleted"
EVENT_MESSAGE_EDITED = "messageEdited"
EVENT_ALL_MESSAGES_DELETED = "allMessagesDeleted"
EVENT_ERROR = "error"


@dataclass(frozen=True)
class Emission:
    event: str
    room: str
    payload: dict = field(default_factory=dict)


def route_to_user(event: str, user_id: str, payload: dict) -> list[Emission]:
    return [Emission(event, user_id, dict(payload))]


def route_admin(event: str, payload: dict) -> list[Emission]:
    return [Emission(event, ADMIN_ROOM, dict(payload))]


def route_delta(event: str, user_id: str, payload: dict) -> list[Emission]:
    """Send an event to the user's room and an attributed copy to admins."""
    return route_to_user(event, user_id, payload) + route_admin(event, {**payload, "userId": user_id})


def route_message(user_id: str, message: dict) -> list[Emission]:
    # Admin-authored messages are echoed to the admin room as well, so every
    # observer sees what a colleague sent.
    return route_delta(EVENT_MESSAGE, user_id, message)


class SubscriberRegistry:
    """Tracks which rooms each live connection belongs to."""

    def __init__(self, sio):
        self.sio = sio
        self._connections: dict[str, dict] = {}
        self._lock = threading.Lock()

    def connect(self, sid: str) -> None:
        with self._lock:
            self._connections[sid] = {"user_id": None, "is_admin": False}

    async def join(self, sid: str, user_id: Optional[str] = None, is_admin: bool = False) -> list[str]:
        """Replace the connection's rooms with the requested user/admin rooms."""
        for room in list(self.sio.rooms(sid)):
            if room != sid:
                await self.sio.leave_room(sid, room)

        joined: list[str] = []
        if user_id:
            await self.sio.enter_room(sid, user_id)
            joined.append(user_id)
        if is_admin:
            await self.sio.enter_room(sid, ADMIN_ROOM)
            joined.append(ADMIN_ROOM)

        with self._lock:
            self._connections[sid] = {"user_id": user_id or None, "is_admin": bool(is_admin)}

        logger.info(
            "Connection joined rooms",
            extra={"context": {"sid": sid, "rooms": joined}},
        )
        return joined

    def drop(self, sid: str) -> None:
        with self._lock:
            self._connections.pop(sid, None)

    def snapshot(self) -> dict:
        with self._lock:
            entries = list(self._connections.values())
        return {
            "connections": len(entries),
            "admins": sum(1 for entry in entries if entry["is_admin"]),
            "users": len({entry["user_id"] for entry in entries if entry["user_id"]}),
        }


class Broadcaster:
    """Fire-and-forget delivery of emissions to Socket.IO rooms."""

    def __init__(self, sio):
        self.sio = sio

    async def publish(self, emissions: Iterable[Emission]) -> int:
        delivered = 0
        for emission in emissions:
            try:
                await self.sio.emit(emission.event, emission.payload, room=emission.room)
                delivered += 1
            except Exception as exc:
                logger.warning(
                    "Emit failed",
                    extra={"context": {"event": emission.event, "room": emission.room, "error": str(exc)}},
                )
        return delivered

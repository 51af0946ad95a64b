"""Storage for per-user bot silence windows.

A mute store maps a user id to the moment the bot may speak again. Entries
carry TTL semantics: an expired entry is treated as absent. The in-memory
store keeps entries for the life of the process; the Redis store relies on
key expiry and is shared by every process pointed at the same Redis.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Optional

import redis

from support_relay.config import Settings
from support_relay.logging_config import get_logger

logger = get_logger("mute_store")

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MuteStoreError(Exception):
    """Raised when the backing store cannot be read or written."""


class MuteStore(ABC):
    """Abstract base class for silence window storage."""

    @abstractmethod
    def get(self, user_id: str) -> Optional[datetime]:
        """Return the stored silenced-until moment, or None."""
        pass

    @abstractmethod
    def set(self, user_id: str, until: datetime) -> None:
        """Arm (or re-arm) the silence window for a user."""
        pass

    @abstractmethod
    def clear(self, user_id: str) -> None:
        pass


class InMemoryMuteStore(MuteStore):
    def __init__(self):
        self._entries: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> Optional[datetime]:
        with self._lock:
            return self._entries.get(user_id)

    def set(self, user_id: str, until: datetime) -> None:
        with self._lock:
            self._entries[user_id] = until

    def clear(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisMuteStore(MuteStore):
    def __init__(self, client: redis.Redis, clock: Clock = utcnow, prefix: str = "support_relay:mute"):
        self._client = client
        self._clock = clock
        self._prefix = prefix

    def _key(self, user_id: str) -> str:
        return f"{self._prefix}:{user_id}"

    def get(self, user_id: str) -> Optional[datetime]:
        try:
            raw = self._client.get(self._key(user_id))
        except redis.RedisError as exc:
            raise MuteStoreError(str(exc)) from exc
        if not raw:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return datetime.fromisoformat(raw)
        except ValueError:
            logger.warning("Discarding unparseable mute entry", extra={"context": {"user_id": user_id}})
            return None

    def set(self, user_id: str, until: datetime) -> None:
        ttl_seconds = max(int((until - self._clock()).total_seconds()), 1)
        try:
            self._client.set(self._key(user_id), until.isoformat(), ex=ttl_seconds)
        except redis.RedisError as exc:
            raise MuteStoreError(str(exc)) from exc

    def clear(self, user_id: str) -> None:
        try:
            self._client.delete(self._key(user_id))
        except redis.RedisError as exc:
            raise MuteStoreError(str(exc)) from exc


def build_mute_store(settings: Settings, clock: Clock = utcnow) -> MuteStore:
    """Create the mute store selected by MUTE_STORE_BACKEND."""
    backend = settings.mute_store_backend.strip().lower()
    if backend == "redis":
        client = redis.Redis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_timeout=settings.redis_socket_timeout_seconds,
            socket_connect_timeout=settings.redis_socket_timeout_seconds,
        )
        logger.info("Using Redis mute store", extra={"context": {"redis_url": settings.redis_url}})
        return RedisMuteStore(client, clock=clock, prefix=settings.mute_key_prefix)
    if backend != "memory":
        raise ValueError(f"Unknown mute store backend: {settings.mute_store_backend}")
    return InMemoryMuteStore()

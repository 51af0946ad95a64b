from datetime import timedelta
from unittest.mock import Mock, patch

import pytest
import redis

from support_relay.config import Settings
from support_relay.services.mute_store import (
    InMemoryMuteStore,
    MuteStoreError,
    RedisMuteStore,
    build_mute_store,
)


class TestInMemoryMuteStore:
    def test_set_get_clear(self, clock):
        store = InMemoryMuteStore()
        until = clock() + timedelta(minutes=30)

        store.set("u1", until)
        assert store.get("u1") == until
        assert len(store) == 1

        store.clear("u1")
        assert store.get("u1") is None
        assert len(store) == 0

    def test_clear_unknown_user_is_noop(self):
        store = InMemoryMuteStore()
        store.clear("missing")
        assert len(store) == 0

    def test_last_write_wins(self, clock):
        store = InMemoryMuteStore()
        store.set("u1", clock() + timedelta(minutes=5))
        store.set("u1", clock() + timedelta(minutes=30))
        assert store.get("u1") == clock() + timedelta(minutes=30)


class TestRedisMuteStore:
    def test_set_uses_key_prefix_and_ttl(self, clock):
        client = Mock()
        store = RedisMuteStore(client, clock=clock, prefix="test:mute")
        until = clock() + timedelta(minutes=30)

        store.set("u1", until)

        client.set.assert_called_once_with("test:mute:u1", until.isoformat(), ex=1800)

    def test_ttl_is_at_least_one_second(self, clock):
        client = Mock()
        store = RedisMuteStore(client, clock=clock, prefix="test:mute")

        store.set("u1", clock() - timedelta(seconds=5))

        assert client.set.call_args[1]["ex"] == 1

    def test_get_parses_stored_value(self, clock):
        until = clock() + timedelta(minutes=30)
        client = Mock()
        client.get.return_value = until.isoformat()
        store = RedisMuteStore(client, clock=clock, prefix="test:mute")

        assert store.get("u1") == until
        client.get.assert_called_once_with("test:mute:u1")

    def test_get_decodes_bytes(self, clock):
        until = clock() + timedelta(minutes=30)
        client = Mock()
        client.get.return_value = until.isoformat().encode("utf-8")
        store = RedisMuteStore(client, clock=clock)

        assert store.get("u1") == until

    def test_get_missing_key(self, clock):
        client = Mock()
        client.get.return_value = None
        assert RedisMuteStore(client, clock=clock).get("u1") is None

    def test_get_discards_garbage(self, clock):
        client = Mock()
        client.get.return_value = "not-a-date"
        assert RedisMuteStore(client, clock=clock).get("u1") is None

    def test_clear_deletes_key(self, clock):
        client = Mock()
        RedisMuteStore(client, clock=clock, prefix="test:mute").clear("u1")
        client.delete.assert_called_once_with("test:mute:u1")

    @pytest.mark.parametrize("method,args", [("get", ()), ("clear", ())])
    def test_redis_errors_are_wrapped(self, clock, method, args):
        client = Mock()
        client.get.side_effect = redis.ConnectionError("down")
        client.delete.side_effect = redis.ConnectionError("down")
        store = RedisMuteStore(client, clock=clock)

        with pytest.raises(MuteStoreError):
            getattr(store, method)("u1", *args)

    def test_set_error_is_wrapped(self, clock):
        client = Mock()
        client.set.side_effect = redis.TimeoutError("slow")
        store = RedisMuteStore(client, clock=clock)

        with pytest.raises(MuteStoreError):
            store.set("u1", clock() + timedelta(minutes=30))


class TestBuildMuteStore:
    def test_memory_backend(self):
        store = build_mute_store(Settings(mute_store_backend="memory"))
        assert isinstance(store, InMemoryMuteStore)

    @patch("support_relay.services.mute_store.redis.Redis.from_url")
    def test_redis_backend(self, mock_from_url):
        settings = Settings(mute_store_backend="Redis", redis_url="redis://cache:6379/1", mute_key_prefix="p")

        store = build_mute_store(settings)

        assert isinstance(store, RedisMuteStore)
        assert mock_from_url.call_args[0][0] == "redis://cache:6379/1"
        assert mock_from_url.call_args[1]["decode_responses"] is True

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            build_mute_store(Settings(mute_store_backend="memcached"))

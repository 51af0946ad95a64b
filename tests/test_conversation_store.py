import pytest

from support_relay.models import MessageEdit
from support_relay.services.attachment_service import Attachment
from support_relay.services.conversation_store import (
    SENDER_ADMIN,
    SENDER_BOT,
    SENDER_USER,
    ConversationStore,
    NotFoundError,
    parse_message_id,
)


@pytest.fixture
def store(db_session, make_user):
    make_user("u1")
    make_user("u2")
    return ConversationStore(db_session)


class TestParseMessageId:
    @pytest.mark.parametrize("raw,expected", [(7, 7), ("7", 7), (" 12 ", 12), ("abc", None), (None, None), (True, None)])
    def test_parse(self, raw, expected):
        assert parse_message_id(raw) == expected


class TestAppend:
    def test_ids_increase_in_append_order(self, store):
        first = store.append("u1", "one", SENDER_USER)
        second = store.append("u1", "two", SENDER_BOT)
        third = store.append("u2", "three", SENDER_USER)

        assert first.id < second.id < third.id

    def test_history_is_ordered_per_user(self, store, db_session):
        store.append("u1", "one", SENDER_USER)
        store.append("u2", "other", SENDER_USER)
        store.append("u1", "two", SENDER_ADMIN, sender_id="agent-7")
        db_session.commit()

        history = store.history("u1")

        assert [m.content for m in history] == ["one", "two"]
        assert history[1].sender_id == "agent-7"

    def test_new_message_defaults(self, store):
        message = store.append("u1", "hello", SENDER_USER)
        assert message.is_read is False
        assert message.is_deleted is False
        assert message.is_edited is False
        assert message.timestamp is not None

    def test_append_with_attachment(self, store):
        attachment = Attachment(filename="a.txt", mimetype="text/plain", size=2, data="data:text/plain;base64,aGk=")
        message = store.append("u1", None, SENDER_USER, attachment=attachment)

        assert message.content == ""
        assert message.file_name == "a.txt"
        assert message.file_data.startswith("data:text/plain;base64,")

    def test_unknown_user(self, store):
        with pytest.raises(NotFoundError):
            store.append("ghost", "hello", SENDER_USER)

    def test_unknown_sender_type(self, store):
        with pytest.raises(ValueError):
            store.append("u1", "hello", "robot")


class TestLookup:
    def test_find_message_owner(self, store):
        store.append("u1", "one", SENDER_USER)
        store.append("u2", "x", SENDER_USER)
        second = store.append("u1", "two", SENDER_USER)

        assert store.find_message_owner(str(second.id)) == ("u1", 1)

    def test_unknown_message(self, store):
        with pytest.raises(NotFoundError):
            store.get_message("999")
        with pytest.raises(NotFoundError):
            store.get_message("not-an-id")


class TestMutations:
    def test_update(self, store):
        message = store.append("u1", "one", SENDER_USER)
        updated = store.update(message.id, "uno")
        assert updated.content == "uno"
        assert updated.updated_at is not None

    def test_remove_hard_then_not_found(self, store):
        message = store.append("u1", "one", SENDER_USER)
        message_id = message.id

        assert store.remove_hard(str(message_id)) == "u1"
        with pytest.raises(NotFoundError):
            store.remove_hard(str(message_id))

    def test_edit_grows_history_by_one(self, store):
        message = store.append("u1", "first", SENDER_USER)

        store.edit(message.id, "second", edited_by="agent-1", reason="typo")
        edited = store.edit(message.id, "third")

        assert edited.content == "third"
        assert edited.is_edited is True
        assert [e.original_content for e in edited.edit_history] == ["first", "second"]
        assert edited.edit_history[0].edited_by == "agent-1"
        assert edited.edit_history[0].reason == "typo"


class TestReadState:
    def test_mark_read_for_user_is_idempotent(self, store, db_session):
        store.append("u1", "one", SENDER_USER)
        store.append("u1", "reply", SENDER_BOT)
        store.append("u1", "two", SENDER_USER)
        db_session.commit()

        assert store.mark_read_for_user("u1") == 2
        assert store.mark_read_for_user("u1") == 0

    def test_mark_read_message_unknown(self, store):
        assert store.mark_read_message("404") is None

    def test_unread_counts_only_user_messages(self, store, db_session):
        store.append("u1", "one", SENDER_USER)
        store.append("u1", "reply", SENDER_BOT)
        store.append("u2", "a", SENDER_USER)
        store.append("u2", "b", SENDER_USER)
        db_session.commit()

        assert store.unread_counts() == {"u1": 1, "u2": 2}


class TestBulkDelete:
    def test_clear_user(self, store, db_session):
        message = store.append("u1", "one", SENDER_USER)
        store.edit(message.id, "edited")
        store.append("u1", "two", SENDER_USER)
        store.append("u2", "keep", SENDER_USER)
        db_session.commit()

        assert store.clear("u1") == 2
        assert store.history("u1") == []
        assert len(store.history("u2")) == 1
        assert db_session.query(MessageEdit).count() == 0

    def test_clear_all_totals(self, store, db_session):
        store.append("u1", "one", SENDER_USER)
        store.append("u1", "two", SENDER_BOT)
        store.append("u2", "three", SENDER_USER)
        db_session.commit()

        counts = store.clear_all()

        assert counts == {"user_counts": {"u1": 2, "u2": 1}, "total": 3}
        assert store.history("u1") == [] and store.history("u2") == []

    def test_clear_all_empty(self, store):
        assert store.clear_all() == {"user_counts": {}, "total": 0}

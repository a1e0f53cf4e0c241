"""
Tests for ConversationManager, the conversation lifecycle.

The API client is mocked; storage is a real sqlite file under tmp_path so the
write-back on every mutation is exercised end to end.
"""

import pytest
from cfquery.config import CONVERSATIONS_KEY
from cfquery.conversations import ConversationManager
from cfquery.errors import ConversationNotFoundError, InvalidInputError, OperationError
from cfquery.models import Chat, Conversation, Message
from cfquery.storage import ConversationStore

MODEL = "@cf/meta/llama-3.1-8b-instruct"


@pytest.fixture
def manager(conversation_store, mock_client):
    return ConversationManager(conversation_store, mock_client)


def reload(conversation_store):
    return ConversationManager(ConversationStore(conversation_store.kv)).conversations


class TestAsk:
    def test_creates_conversation_with_first_chat(self, manager, mock_client):
        conversation = manager.ask("What is R2?", MODEL)

        mock_client.query.assert_called_once_with("What is R2?", MODEL)
        assert conversation.model == MODEL
        assert [(c.question, c.answer) for c in conversation.chats] == [("What is R2?", "Mock answer")]
        assert conversation.pinned is False

    def test_is_persisted(self, manager, conversation_store):
        conversation = manager.ask("What is R2?", MODEL)
        assert [c.id for c in reload(conversation_store)] == [conversation.id]

    def test_failed_query_creates_nothing(self, manager, mock_client, conversation_store):
        mock_client.query.side_effect = OperationError("Failed to query Cloudflare AI: boom")

        with pytest.raises(OperationError):
            manager.ask("hi", MODEL)

        assert manager.conversations == []
        assert conversation_store.kv.get_item(CONVERSATIONS_KEY) is None

    @pytest.mark.parametrize("prompt", ["", "   ", "\n"])
    def test_blank_prompt(self, manager, mock_client, prompt):
        with pytest.raises(InvalidInputError, match="Please enter a prompt"):
            manager.ask(prompt, MODEL)
        mock_client.query.assert_not_called()

    def test_missing_model(self, manager):
        with pytest.raises(InvalidInputError, match="Please select a model"):
            manager.ask("hi", "")


class TestFollowUp:
    def test_sends_history_and_new_question(self, manager, mock_client):
        conversation = manager.ask("first", MODEL)

        chat = manager.follow_up(conversation.id, "second")

        mock_client.query_with_history.assert_called_once_with(
            [
                Message(role="user", content="first"),
                Message(role="assistant", content="Mock answer"),
                Message(role="user", content="second"),
            ],
            MODEL,
        )
        assert chat.answer == "Mock follow-up answer"
        assert conversation.chats[-1] is chat

    def test_history_is_truncated(self, conversation_store, mock_client, chat_factory):
        conversation = Conversation(model=MODEL, chats=chat_factory(30))
        conversation_store.save_all([conversation])
        manager = ConversationManager(conversation_store, mock_client, max_history=25)

        manager.follow_up(conversation.id, "next")

        messages, model = mock_client.query_with_history.call_args.args
        assert len(messages) == 51
        assert messages[0].content == "question 5"
        assert messages[-1].content == "next"

    def test_appends_and_persists(self, manager, conversation_store):
        conversation = manager.ask("first", MODEL)
        before = conversation.updated_at

        manager.follow_up(conversation.id, "second")

        stored = reload(conversation_store)[0]
        assert [c.question for c in stored.chats] == ["first", "second"]
        assert stored.updated_at >= before

    def test_failed_follow_up_keeps_conversation_unchanged(self, manager, mock_client, conversation_store):
        conversation = manager.ask("first", MODEL)
        mock_client.query_with_history.side_effect = OperationError("nope")

        with pytest.raises(OperationError):
            manager.follow_up(conversation.id, "second")

        assert len(conversation.chats) == 1
        assert len(reload(conversation_store)[0].chats) == 1

    def test_blank_question(self, manager):
        conversation = manager.ask("first", MODEL)
        with pytest.raises(InvalidInputError):
            manager.follow_up(conversation.id, " ")

    def test_unknown_conversation(self, manager):
        with pytest.raises(ConversationNotFoundError):
            manager.follow_up("missing", "hi")


class TestLookup:
    def test_by_prefix(self, conversation_store, dated_conversations):
        conversation_store.save_all(dated_conversations)
        manager = ConversationManager(conversation_store)

        assert manager.get("conv-1").id == "conv-1"

    def test_ambiguous_prefix(self, conversation_store, dated_conversations):
        conversation_store.save_all(dated_conversations)
        manager = ConversationManager(conversation_store)

        with pytest.raises(ConversationNotFoundError, match="ambiguous"):
            manager.get("conv")

    @pytest.mark.parametrize("conversation_id", ["", "   "])
    def test_blank_id_is_rejected(self, conversation_store, dated_conversations, conversation_id):
        conversation_store.save_all(dated_conversations[:1])
        manager = ConversationManager(conversation_store)

        with pytest.raises(ConversationNotFoundError, match="Please enter a conversation id"):
            manager.get(conversation_id)

    def test_exact_id_beats_prefix(self, conversation_store):
        conversations = [
            Conversation(id="abc", model=MODEL, chats=[Chat(question="q", answer="a")]),
            Conversation(id="abcdef", model=MODEL, chats=[Chat(question="q", answer="a")]),
        ]
        conversation_store.save_all(conversations)

        assert ConversationManager(conversation_store).get("abc").id == "abc"


class TestOrdering:
    def test_pinned_first_then_newest(self, conversation_store, dated_conversations):
        dated_conversations[0].pinned = True
        conversation_store.save_all(dated_conversations)
        manager = ConversationManager(conversation_store)

        assert [c.id for c in manager.pinned()] == ["conv-0"]
        assert [c.id for c in manager.recent()] == ["conv-2", "conv-1"]
        assert [c.id for c in manager.conversations] == ["conv-0", "conv-2", "conv-1"]


class TestPinDeleteClear:
    def test_toggle_pin_persists(self, manager, conversation_store):
        conversation = manager.ask("first", MODEL)

        assert manager.toggle_pin(conversation.id).pinned is True
        assert reload(conversation_store)[0].pinned is True

        manager.toggle_pin(conversation.id)
        assert reload(conversation_store)[0].pinned is False

    def test_delete(self, manager, conversation_store):
        keep = manager.ask("keep", MODEL)
        drop = manager.ask("drop", MODEL)

        manager.delete(drop.id)

        assert [c.id for c in manager.conversations] == [keep.id]
        assert [c.id for c in reload(conversation_store)] == [keep.id]

    def test_delete_unknown(self, manager):
        with pytest.raises(ConversationNotFoundError):
            manager.delete("missing")

    def test_clear(self, manager, conversation_store):
        manager.ask("one", MODEL)
        manager.ask("two", MODEL)

        manager.clear()

        assert manager.conversations == []
        assert conversation_store.kv.get_item(CONVERSATIONS_KEY) is None


class TestSharedStore:
    """Two managers on one store stand in for two CLI processes."""

    @pytest.fixture
    def other(self, conversation_store, mock_client):
        return ConversationManager(ConversationStore(conversation_store.kv), mock_client)

    def test_concurrent_asks_keep_both(self, manager, other, conversation_store):
        manager.ask("from terminal A", MODEL)
        other.ask("from terminal B", MODEL)

        titles = sorted(c.title for c in reload(conversation_store))
        assert titles == ["from terminal A", "from terminal B"]

    def test_concurrent_follow_ups_keep_both_chats(self, manager, conversation_store, mock_client):
        conversation = manager.ask("first", MODEL)
        other = ConversationManager(ConversationStore(conversation_store.kv), mock_client)

        manager.follow_up(conversation.id, "from A")
        other.follow_up(conversation.id, "from B")

        stored = reload(conversation_store)[0]
        assert [c.question for c in stored.chats] == ["first", "from A", "from B"]

    def test_delete_keeps_conversations_saved_elsewhere(self, manager, other, conversation_store):
        drop = other.ask("drop", MODEL)
        stale = ConversationManager(ConversationStore(conversation_store.kv))
        kept = manager.ask("newer", MODEL)

        stale.delete(drop.id)

        assert [c.id for c in reload(conversation_store)] == [kept.id]

    def test_pin_keeps_chats_added_elsewhere(self, manager, conversation_store, mock_client):
        conversation = manager.ask("first", MODEL)
        other = ConversationManager(ConversationStore(conversation_store.kv), mock_client)
        manager.follow_up(conversation.id, "second")

        other.toggle_pin(conversation.id)

        stored = reload(conversation_store)[0]
        assert stored.pinned is True
        assert [c.question for c in stored.chats] == ["first", "second"]

    def test_pin_does_not_restore_deleted(self, manager, conversation_store, mock_client):
        conversation = manager.ask("first", MODEL)
        other = ConversationManager(ConversationStore(conversation_store.kv), mock_client)
        manager.delete(conversation.id)

        other.toggle_pin(conversation.id)

        assert reload(conversation_store) == []


class TestPersistenceRules:
    def test_corrupt_store_starts_fresh(self, conversation_store, mock_client):
        conversation_store.kv.set_item(CONVERSATIONS_KEY, "]]]")

        manager = ConversationManager(conversation_store, mock_client)

        assert manager.recovered_from_corruption is True
        assert manager.conversations == []
        manager.ask("after recovery", MODEL)
        assert len(reload(conversation_store)) == 1

# Tests for backend message projection.
# Created: 2026-10-19

from ollachat.llm.messages import prepare_backend_messages, turns_to_messages, wire_message
from ollachat.store.models import Turn


class TestWireMessage:
    def test_plain(self):
        assert wire_message("user", "Hi") == {"role": "user", "content": "Hi"}

    def test_images_stripped(self):
        message = wire_message("user", "Look", ["data:image/png;base64,AAAA", ""])
        assert message["images"] == ["AAAA"]


class TestTurnsToMessages:
    def test_history_with_open_turn(self):
        turns = [Turn(user="Hi", ai="Hello"), Turn(user="How are you?")]
        assert turns_to_messages(turns) == [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello"},
            {"role": "user", "content": "How are you?"},
        ]


class TestPrepareBackendMessages:
    def test_document_appended_to_last_message(self):
        messages = [{"role": "user", "content": "Summarize"}]
        prepared = prepare_backend_messages(messages, "\n\nDOC")
        assert prepared[-1]["content"] == "Summarize\n\nDOC"
        assert messages[-1]["content"] == "Summarize"

    def test_extra_keys_dropped(self):
        prepared = prepare_backend_messages([{"role": "user", "content": "Hi", "id": 7}])
        assert prepared == [{"role": "user", "content": "Hi"}]

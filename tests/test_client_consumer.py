# Tests for the Python client: session state and the stream consumer.
# Created: 2026-10-19

import asyncio
import base64

import pytest

from ollachat.client import ChatStreamConsumer, ConversationSession, ExchangeState, LocalTurn
from ollachat.exchange.framing import encode_event


@pytest.fixture
def session():
    return ConversationSession(model="llama3")


@pytest.fixture
def consumer(session, http_client):
    return ChatStreamConsumer(session, http_client)


# ============================================================================
# Session
# ============================================================================


class TestConversationSession:
    def test_append_and_fragments(self, session):
        index = session.append_turn("Hi")
        session.apply_fragment(index, "Hel")
        session.apply_fragment(index, "lo")
        assert session.turns[index].ai == "Hello"

    def test_adopt_chat_id_only_once(self, session):
        assert session.adopt_chat_id("first") is True
        assert session.adopt_chat_id("second") is False
        assert session.chat_id == "first"

    def test_annotation_kept_apart_from_text(self, session):
        index = session.append_turn("Hi")
        session.apply_fragment(index, "He")
        session.annotate(index, "[Generation stopped]")
        assert session.turns[index].ai == "He"
        assert session.turns[index].display_text == "He\n[Generation stopped]"

    def test_to_messages(self, session):
        session.append_turn("Hi")
        session.apply_fragment(0, "Hello")
        session.append_turn("Look", image="data:image/png;base64,AAAA")
        assert session.to_messages() == [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello"},
            {"role": "user", "content": "Look", "images": ["AAAA"]},
        ]

    def test_reconcile_mutates_in_place(self, session):
        session.append_turn("Hi")
        session.apply_fragment(0, "Hel")
        turns_list = session.turns
        turn = session.turns[0]
        session.reconcile(
            {
                "id": "srv-9",
                "name": "Hi",
                "messages": [
                    {"user": "Hi", "ai": "Hello", "datetime": "2026-01-01T00:00:00+00:00"},
                    {"user": "More", "ai": "Sure", "document": {"name": "a.txt", "text": ""}},
                ],
            }
        )
        assert session.turns is turns_list
        assert session.turns[0] is turn
        assert turn.ai == "Hello"
        assert turn.datetime == "2026-01-01T00:00:00+00:00"
        assert session.turns[1] == LocalTurn(user="More", ai="Sure", document_name="a.txt")
        assert session.chat_id == "srv-9"
        assert session.name == "Hi"


# ============================================================================
# Consumer
# ============================================================================


class TestChatStreamConsumer:
    @pytest.mark.asyncio
    async def test_completed_exchange(self, consumer, session, server):
        server.bodies = [encode_event("Hel") + encode_event("lo wörld") + encode_event("", True)]
        updates = []
        consumer.on_update = lambda s, i: updates.append(s.turns[i].ai)

        await consumer.send("Hi")
        assert await consumer.wait() == ExchangeState.COMPLETED
        assert session.turns[0].ai == "Hello wörld"
        assert session.chat_id == "srv-1"
        assert updates == ["Hel", "Hello wörld"]
        assert server.requests[0] == {
            "model": "llama3",
            "messages": [{"role": "user", "content": "Hi"}],
        }

    @pytest.mark.asyncio
    async def test_follow_up_sends_chat_id_and_history(self, consumer, session, server):
        server.bodies = [encode_event("Hello", True)]
        await consumer.send("Hi")
        await consumer.wait()
        await consumer.send("And?")
        await consumer.wait()
        assert server.requests[1]["chat_id"] == "srv-1"
        assert server.requests[1]["messages"] == [
            {"role": "user", "content": "Hi"},
            {"role": "assistant", "content": "Hello"},
            {"role": "user", "content": "And?"},
        ]

    @pytest.mark.asyncio
    async def test_existing_chat_id_not_replaced(self, http_client, server):
        session = ConversationSession(model="llama3", chat_id="mine")
        consumer = ChatStreamConsumer(session, http_client)
        server.bodies = [encode_event("ok", True)]
        await consumer.send("Hi")
        await consumer.wait()
        assert session.chat_id == "mine"

    @pytest.mark.asyncio
    async def test_stop_keeps_partial(self, consumer, session, server):
        server.bodies = [encode_event("He")]
        server.hang = True
        seen = asyncio.Event()
        consumer.on_update = lambda s, i: seen.set()

        await consumer.send("Hi")
        await asyncio.wait_for(seen.wait(), 1.0)
        await consumer.stop()

        assert consumer.state == ExchangeState.ABORTED
        assert session.turns[0].ai == "He"
        assert session.turns[0].note == "[Generation stopped]"
        assert session.chat_id == "srv-1"
        assert server.closed_streams == 1

    @pytest.mark.asyncio
    async def test_send_cancels_active_exchange_first(self, consumer, session, server):
        server.bodies = [encode_event("He"), encode_event("Done", True)]
        server.hang = True
        seen = asyncio.Event()
        consumer.on_update = lambda s, i: seen.set()

        await consumer.send("Tell me a story")
        await asyncio.wait_for(seen.wait(), 1.0)
        await consumer.send("Tell me a story")
        assert await consumer.wait() == ExchangeState.COMPLETED

        assert [t.ai for t in session.turns] == ["He", "Done"]
        assert session.turns[0].note == "[Generation stopped]"
        assert server.closed_streams >= 1
        assert server.requests[1]["chat_id"] == "srv-1"

    @pytest.mark.asyncio
    async def test_error_before_stream(self, consumer, session, server):
        server.status = 404
        server.error = {"detail": "model 'ghost' not found", "code": "model_not_found"}
        await consumer.send("Hi")
        assert await consumer.wait() == ExchangeState.ERRORED
        assert session.turns[0].note == "Error: model 'ghost' not found"
        assert consumer.last_error == "model 'ghost' not found"
        assert session.chat_id is None

    @pytest.mark.asyncio
    async def test_malformed_frame(self, consumer, session, server):
        server.bodies = [encode_event("Par") + b"{broken\n" + encode_event("never", True)]
        await consumer.send("Hi")
        assert await consumer.wait() == ExchangeState.ERRORED
        assert session.turns[0].ai == "Par"
        assert session.turns[0].note.startswith("Error: Malformed stream frame")

    @pytest.mark.asyncio
    async def test_document_is_base64_encoded(self, consumer, session, server):
        server.bodies = [encode_event("ok", True)]
        await consumer.send("Summarize", document=("notes.txt", b"some notes"))
        await consumer.wait()
        assert server.requests[0]["document"] == {
            "name": "notes.txt",
            "data": base64.b64encode(b"some notes").decode(),
        }
        assert session.turns[0].document_name == "notes.txt"


class TestHelpers:
    @pytest.mark.asyncio
    async def test_list_chats(self, consumer):
        chats = await consumer.list_chats()
        assert [c["id"] for c in chats] == ["srv-1"]

    @pytest.mark.asyncio
    async def test_list_models(self, consumer):
        assert await consumer.list_models() == ["llama3"]

    @pytest.mark.asyncio
    async def test_load_chat_reconciles(self, consumer, session, server):
        server.stored_chat = {
            "id": "srv-1",
            "name": "Hi",
            "messages": [{"user": "Hi", "ai": "Hello"}],
        }
        await consumer.load_chat("srv-1")
        assert session.chat_id == "srv-1"
        assert [(t.user, t.ai) for t in session.turns] == [("Hi", "Hello")]

    @pytest.mark.asyncio
    async def test_load_chat_without_id(self, consumer):
        with pytest.raises(ValueError):
            await consumer.load_chat()

# Tests for the save-once completion finalizer.
# Created: 2026-10-19

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from ollachat.errors import PersistenceFailure
from ollachat.exchange.finalizer import (
    CompletionFinalizer,
    FinalizeReason,
    TurnState,
    annotation_for,
)
from ollachat.store.models import Turn


def _mock_store(result=True):
    store = MagicMock()
    store.finalize_open_turn = AsyncMock(return_value=result)
    return store


class TestAnnotation:
    def test_completed_has_none(self):
        assert annotation_for(FinalizeReason.COMPLETED) is None

    def test_client_disconnect(self):
        assert annotation_for(FinalizeReason.CLIENT_DISCONNECTED) == "Client Disconnected"

    def test_stopped(self):
        assert annotation_for(FinalizeReason.STOPPED) == "Stopped by user"

    def test_upstream_error_uses_message(self):
        assert annotation_for(FinalizeReason.UPSTREAM_ERROR, "boom") == "boom"

    def test_error_without_message_uses_reason(self):
        assert annotation_for(FinalizeReason.MALFORMED_FRAME) == "malformed_frame"


class TestCompletionFinalizer:
    @pytest.mark.asyncio
    async def test_completion_saves_text(self):
        store = _mock_store()
        finalizer = CompletionFinalizer(store, "c1", 0, lambda: "Hello")
        task = finalizer.finalize(FinalizeReason.COMPLETED)
        assert task is not None
        await finalizer.wait()
        store.finalize_open_turn.assert_awaited_once_with("c1", "Hello", None, turn_index=0)
        assert finalizer.saved is True
        assert finalizer.state == TurnState.FINALIZED

    @pytest.mark.asyncio
    async def test_latch_flips_before_any_await(self):
        finalizer = CompletionFinalizer(_mock_store(), "c1", 0, lambda: "")
        finalizer.finalize(FinalizeReason.COMPLETED)
        assert finalizer.is_finalized
        await finalizer.wait()

    @pytest.mark.asyncio
    async def test_two_triggers_same_tick_one_write(self):
        store = _mock_store()
        finalizer = CompletionFinalizer(store, "c1", 2, lambda: "partial")
        first = finalizer.finalize(FinalizeReason.COMPLETED)
        second = finalizer.finalize(FinalizeReason.CLIENT_DISCONNECTED)
        assert first is not None
        assert second is None
        await finalizer.wait()
        store.finalize_open_turn.assert_awaited_once_with("c1", "partial", None, turn_index=2)
        assert finalizer.reason == FinalizeReason.COMPLETED

    @pytest.mark.asyncio
    async def test_snapshot_taken_at_finalize_time(self):
        parts = ["He"]
        store = _mock_store()
        finalizer = CompletionFinalizer(store, "c1", 0, lambda: "".join(parts))
        finalizer.finalize(FinalizeReason.CLIENT_DISCONNECTED)
        parts.append("llo")
        await finalizer.wait()
        store.finalize_open_turn.assert_awaited_once_with(
            "c1", "He", "Client Disconnected", turn_index=0
        )

    @pytest.mark.asyncio
    async def test_write_survives_cancelled_trigger(self):
        store = MagicMock()
        written = asyncio.Event()

        async def slow_finalize(*args, **kwargs):
            await asyncio.sleep(0.01)
            written.set()
            return True

        store.finalize_open_turn = slow_finalize
        finalizer = CompletionFinalizer(store, "c1", 0, lambda: "He")

        async def relay():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                finalizer.finalize(FinalizeReason.CLIENT_DISCONNECTED)
                raise

        task = asyncio.create_task(relay())
        await asyncio.sleep(0)
        task.cancel()
        await asyncio.wait([task])
        await asyncio.wait_for(written.wait(), 1.0)
        assert finalizer.saved is True

    @pytest.mark.asyncio
    async def test_persistence_failure_is_logged_not_raised(self, caplog):
        store = MagicMock()
        store.finalize_open_turn = AsyncMock(side_effect=PersistenceFailure("disk full"))
        finalizer = CompletionFinalizer(store, "c1", 0, lambda: "x")
        finalizer.finalize(FinalizeReason.COMPLETED)
        await finalizer.wait()
        assert finalizer.saved is False
        assert "Failed to persist" in caplog.text

    @pytest.mark.asyncio
    async def test_wait_without_finalize(self):
        finalizer = CompletionFinalizer(_mock_store(), "c1", 0, lambda: "")
        await finalizer.wait()
        assert finalizer.state == TurnState.OPEN

    @pytest.mark.asyncio
    async def test_against_real_store(self, store):
        chat_id = await store.create(Turn(user="Hi"))
        finalizer = CompletionFinalizer(store, chat_id, 0, lambda: "He")
        finalizer.finalize(FinalizeReason.CLIENT_DISCONNECTED)
        finalizer.finalize(FinalizeReason.COMPLETED)
        await finalizer.wait()
        chat = await store.get(chat_id)
        assert chat.messages[0].ai == "He\n[Error: Client Disconnected]"
        assert not chat.messages[0].is_open

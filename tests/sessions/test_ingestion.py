# tests/sessions/test_ingestion.py
"""
Tests for StreamingIngestionController.

These tests verify:
- The request payload for a new turn (priming + window + user message)
- Both messages are committed before the request is issued
- Cumulative deltas, completion, failure and cancellation settling
- The post-turn hook (stats + summarization)
- Turns stay bound to the session that started them
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from chatstore.exceptions import (AuthenticationError, ProviderError,
                                  RequestCancelledError)
from chatstore.memory.context_builder import build_context
from chatstore.memory.summarizer import SummarizationEngine
from chatstore.models import PRIMING_CONTEXT, Role
from chatstore.prompts import ERROR_MESSAGE, UNAUTHORIZED_MESSAGE
from chatstore.providers.base import StreamDelta
from chatstore.sessions.cancellation import CancellationRegistry
from chatstore.sessions.ingestion import (StreamingIngestionController,
                                          is_unauthorized)
from chatstore.sessions.manager import SessionStore
from tests.fakes import FakeProvider, add_history, spin


@pytest.fixture
def engine() -> MagicMock:
    return MagicMock(spec=SummarizationEngine)


@pytest.fixture
def controller(store: SessionStore, provider: FakeProvider, registry: CancellationRegistry,
               engine: MagicMock) -> StreamingIngestionController:
    return StreamingIngestionController(store, provider, registry, engine)


def priming_pairs():
    return [(m.role, m.content) for m in PRIMING_CONTEXT]


# =============================================================================
# REQUEST CONSTRUCTION
# =============================================================================


class TestSubmitRequest:
    """Tests for what gets sent and committed."""

    @pytest.mark.asyncio
    async def test_first_message_sends_priming_and_user_message_only(
            self, store: SessionStore, provider: FakeProvider, controller: StreamingIngestionController):
        config = store.get_config()
        assert config.history_message_count == 4
        assert config.compress_message_length_threshold == 1000

        await controller.submit("hello")

        sent = provider.stream_requests[0]
        assert [(m.role, m.content) for m in sent] == priming_pairs() + [("user", "hello")]

    @pytest.mark.asyncio
    async def test_bot_message_id_is_user_id_plus_one(self, store: SessionStore, controller):
        await controller.submit("hello")

        user, bot = store.current_session().messages
        assert user.role == Role.USER
        assert bot.role == Role.ASSISTANT
        assert bot.id == user.id + 1

    @pytest.mark.asyncio
    async def test_consecutive_turns_get_increasing_ids(self, store: SessionStore, controller):
        await controller.submit("one")
        await controller.submit("two")

        ids = [m.id for m in store.current_session().messages]
        assert ids == sorted(ids)
        assert len(set(ids)) == 4

    @pytest.mark.asyncio
    async def test_messages_committed_before_request(self, store: SessionStore, provider: FakeProvider,
                                                     controller: StreamingIngestionController):
        gate = asyncio.Event()
        provider.queue_stream(gate, StreamDelta("done", done=True))

        task = asyncio.create_task(controller.submit("hello"))
        assert await spin(lambda: len(provider.stream_requests) == 1)

        pending = store.current_session().messages
        assert [m.content for m in pending] == ["hello", ""]
        assert pending[1].streaming is True
        assert controller.registry.has(store.current_session().id, pending[1].id)

        gate.set()
        await task

    @pytest.mark.asyncio
    async def test_history_window_is_sent(self, store: SessionStore, provider: FakeProvider, controller):
        session = store.current_session()
        add_history(store, session.id, ("user", "earlier"), ("assistant", "reply"))

        await controller.submit("next")

        sent = provider.stream_requests[0]
        assert [m.content for m in sent[3:]] == ["earlier", "reply", "next"]

    @pytest.mark.asyncio
    async def test_send_bot_messages_false_drops_assistant_turns(
            self, store: SessionStore, provider: FakeProvider, controller):
        session = store.current_session()
        add_history(store, session.id, ("user", "earlier"), ("assistant", "reply"))
        store.update_config(lambda c: setattr(c, "send_bot_messages", False))

        await controller.submit("next")

        sent = provider.stream_requests[0]
        assert all(m.role != Role.ASSISTANT for m in sent)
        assert [m.content for m in sent][-2:] == ["earlier", "next"]


# =============================================================================
# STREAM SETTLING
# =============================================================================


class TestStreaming:
    """Tests for delta application and the three ways a turn settles."""

    @pytest.mark.asyncio
    async def test_cumulative_deltas_and_completion(self, store: SessionStore, provider: FakeProvider,
                                                    registry: CancellationRegistry, controller):
        provider.queue_stream(
            StreamDelta("Tur"),
            StreamDelta("Turn 1"),
            StreamDelta("Turn 1 of 5...", done=True),
        )
        seen = []

        def capture() -> None:
            messages = store.current_session().messages
            if len(messages) == 2:
                seen.append((messages[1].content, messages[1].streaming))

        store.subscribe(capture)
        bot = await controller.submit("go")

        assert ("Tur", True) in seen
        assert ("Turn 1", True) in seen
        assert seen.index(("Tur", True)) < seen.index(("Turn 1", True))
        assert bot.content == "Turn 1 of 5..."
        assert bot.streaming is False
        assert bot.is_error is False
        assert not registry.has(store.current_session().id, bot.id)
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_stream_ending_without_done_completes_with_last_content(
            self, store: SessionStore, provider: FakeProvider, controller):
        provider.queue_stream(StreamDelta("partial"), StreamDelta("partial answer"))

        bot = await controller.submit("go")

        assert bot.content == "partial answer"
        assert bot.streaming is False

    @pytest.mark.asyncio
    async def test_unauthorized_mid_stream(self, store: SessionStore, provider: FakeProvider,
                                           registry: CancellationRegistry, controller):
        provider.queue_stream(StreamDelta("Tur"), AuthenticationError("fake"))

        bot = await controller.submit("hello")

        user, stored_bot = store.current_session().messages
        assert stored_bot.content == UNAUTHORIZED_MESSAGE
        assert user.is_error and stored_bot.is_error
        assert stored_bot.streaming is False
        assert bot.content == UNAUTHORIZED_MESSAGE
        assert len(registry) == 0

        context = build_context(store.current_session(), store.get_config())
        assert [(m.role, m.content) for m in context] == priming_pairs()

    @pytest.mark.asyncio
    async def test_status_401_provider_error_counts_as_unauthorized(self, store, provider: FakeProvider, controller):
        provider.queue_stream(ProviderError("fake", "denied", status_code=401))

        bot = await controller.submit("hello")

        assert bot.content == UNAUTHORIZED_MESSAGE

    @pytest.mark.asyncio
    async def test_transport_failure_appends_error_suffix(self, store: SessionStore, provider: FakeProvider,
                                                          registry: CancellationRegistry, controller, engine):
        provider.queue_stream(StreamDelta("Half an answer"), ProviderError("fake", "boom", status_code=500))

        bot = await controller.submit("hello")

        assert bot.content == "Half an answer\n\n" + ERROR_MESSAGE
        assert bot.is_error is True
        assert store.current_session().messages[0].is_error is True
        assert len(registry) == 0
        engine.summarize_session.assert_not_called()

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_settled_as_failure(self, store, provider: FakeProvider, controller):
        provider.queue_stream(RuntimeError("socket closed"))

        bot = await controller.submit("hello")

        assert bot.content == "\n\n" + ERROR_MESSAGE
        assert bot.is_error is True

    @pytest.mark.asyncio
    async def test_failure_when_request_cannot_start(self, store: SessionStore, provider: FakeProvider, controller):
        provider.start_error = ProviderError("fake", "client missing")

        bot = await controller.submit("hello")

        assert bot.is_error is True
        assert bot.streaming is False
        assert len(controller.registry) == 0

    @pytest.mark.asyncio
    async def test_stop_keeps_partial_content_without_error(self, store: SessionStore, provider: FakeProvider,
                                                            registry: CancellationRegistry, controller, engine):
        gate = asyncio.Event()
        provider.queue_stream(StreamDelta("Partial"), gate, StreamDelta("late", done=True))
        task = asyncio.create_task(controller.submit("hello"))

        def bot_content():
            messages = store.current_session().messages
            return messages[1].content if len(messages) == 2 else None

        assert await spin(lambda: bot_content() == "Partial")
        session_id = store.current_session().id
        bot_id = store.current_session().messages[1].id

        assert controller.stop(session_id, bot_id) is True
        bot = await task
        gate.set()
        await asyncio.sleep(0)

        assert bot.content == "Partial"
        assert bot.streaming is False
        assert bot.is_error is False
        assert store.current_session().messages[0].is_error is False
        assert len(registry) == 0
        assert provider.streams[0].cancelled is True
        engine.summarize_session.assert_not_called()

    @pytest.mark.asyncio
    async def test_stop_unknown_message(self, controller):
        assert controller.stop(1, 2) is False

    @pytest.mark.asyncio
    async def test_cancelled_error_from_stream_is_not_a_failure(self, store, provider: FakeProvider, controller):
        provider.queue_stream(StreamDelta("so far"), RequestCancelledError())

        bot = await controller.submit("hello")

        assert bot.content == "so far"
        assert bot.is_error is False
        assert bot.streaming is False

    @pytest.mark.asyncio
    async def test_cancelled_submit_task_settles_turn(self, store: SessionStore, provider: FakeProvider,
                                                      registry: CancellationRegistry, controller):
        gate = asyncio.Event()
        provider.queue_stream(StreamDelta("Tur"), gate, StreamDelta("Turn", done=True))

        task = asyncio.create_task(controller.submit("hello"))
        assert await spin(lambda: len(registry) == 1 and store.current_session().messages[-1].content == "Tur")
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        bot = store.current_session().messages[-1]
        assert bot.content == "Tur"
        assert bot.streaming is False
        assert bot.is_error is False
        assert len(registry) == 0
        stream = provider.streams[0]
        assert stream.cancelled is True
        assert await spin(lambda: stream._pump.done())


# =============================================================================
# POST-TURN HOOK AND SESSION TARGETING
# =============================================================================


class TestPostTurn:
    """Tests for the completion hook and session targeting."""

    @pytest.mark.asyncio
    async def test_completion_updates_stats_and_triggers_summarization(
            self, store: SessionStore, provider: FakeProvider, controller, engine):
        provider.queue_stream(StreamDelta("four words right here", done=True))

        await controller.submit("hello")

        session = store.current_session()
        assert session.stat.char_count == len("four words right here")
        assert session.stat.word_count == 4
        assert session.stat.token_count == len("four words right here") // 4
        engine.summarize_session.assert_called_once_with(session.id)

    @pytest.mark.asyncio
    async def test_turn_lands_in_original_session_after_switch(
            self, store: SessionStore, provider: FakeProvider, controller):
        gate = asyncio.Event()
        provider.queue_stream(StreamDelta("par"), gate, StreamDelta("full answer", done=True))
        origin_id = store.current_session().id
        task = asyncio.create_task(controller.submit("hello"))
        assert await spin(lambda: len(provider.stream_requests) == 1)

        other = store.create_session()
        assert store.current_session().id == other.id
        gate.set()
        bot = await task

        assert bot.content == "full answer"
        assert [m.content for m in store.get_session(origin_id).messages] == ["hello", "full answer"]
        assert store.get_session(other.id).messages == []

    @pytest.mark.asyncio
    async def test_session_removed_mid_stream(self, store: SessionStore, provider: FakeProvider, controller, engine):
        gate = asyncio.Event()
        provider.queue_stream(gate, StreamDelta("answer", done=True))
        store.create_session()
        origin_id = store.current_session().id
        task = asyncio.create_task(controller.submit("hello"))
        assert await spin(lambda: len(provider.stream_requests) == 1)

        store.remove_session(store.session_index(origin_id))
        gate.set()

        assert await task is None
        assert len(controller.registry) == 0
        engine.summarize_session.assert_not_called()

    @pytest.mark.asyncio
    async def test_submit_to_explicit_session(self, store: SessionStore, controller):
        background = store.current_session()
        store.create_session()

        await controller.submit("hello", session_id=background.id)

        assert len(store.get_session(background.id).messages) == 2
        assert store.current_session().messages == []

    @pytest.mark.asyncio
    async def test_concurrent_streams_in_two_sessions(self, store: SessionStore, provider: FakeProvider,
                                                      registry: CancellationRegistry, controller):
        gate_a, gate_b = asyncio.Event(), asyncio.Event()
        provider.queue_stream(StreamDelta("a1"), gate_a, StreamDelta("answer a", done=True))
        provider.queue_stream(StreamDelta("b1"), gate_b, StreamDelta("answer b", done=True))
        session_a = store.current_session()
        session_b = store.create_session()

        task_a = asyncio.create_task(controller.submit("question a", session_id=session_a.id))
        task_b = asyncio.create_task(controller.submit("question b", session_id=session_b.id))
        assert await spin(lambda: len(registry) == 2)

        gate_b.set()
        await task_b
        assert store.get_session(session_b.id).messages[1].content == "answer b"
        assert store.get_session(session_a.id).messages[1].streaming is True

        gate_a.set()
        await task_a
        assert store.get_session(session_a.id).messages[1].content == "answer a"


class TestIsUnauthorized:
    """Tests for is_unauthorized."""

    def test_authentication_error(self):
        assert is_unauthorized(AuthenticationError("p"))

    def test_status_code(self):
        assert is_unauthorized(ProviderError("p", "x", status_code=401))
        assert not is_unauthorized(ProviderError("p", "x", status_code=500))

    def test_plain_exception(self):
        assert not is_unauthorized(RuntimeError("x"))

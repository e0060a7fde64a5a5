# tests/test_models.py
"""
Tests for the chatstore.models module.

Tests Role, Message id sequencing, the priming context, ChatStat,
ChatSession invariants and the snapshot models.
"""

import pytest
from pydantic import ValidationError

from chatstore.config.models import ChatConfig
from chatstore.models import (PRIMING_CONTEXT, ChatSession, ChatStat, Message,
                              Role, StoreSnapshot, StoreState,
                              create_empty_session, create_message,
                              priming_messages)
from chatstore.prompts import DEFAULT_TOPIC


class TestRole:
    """Tests for the Role enum."""

    def test_role_values(self):
        assert Role.SYSTEM.value == "system"
        assert Role.USER.value == "user"
        assert Role.ASSISTANT.value == "assistant"

    @pytest.mark.parametrize("raw, expected", [
        ("USER", Role.USER),
        ("Assistant", Role.ASSISTANT),
        ("agent", Role.ASSISTANT),
    ])
    def test_role_case_insensitive(self, raw, expected):
        assert Role(raw) == expected

    def test_unknown_role(self):
        with pytest.raises(ValueError):
            Role("tool")


class TestMessage:
    """Tests for the Message model."""

    def test_defaults(self):
        message = create_message(content="hi")

        assert message.role == Role.USER
        assert message.streaming is False
        assert message.is_error is False
        assert message.date != ""

    def test_ids_strictly_increase(self):
        ids = [Message().id for _ in range(50)]
        assert ids == sorted(set(ids))

    def test_explicit_id_advances_sequence(self):
        far_ahead = Message().id + 10_000_000
        Message(id=far_ahead)
        assert Message().id > far_ahead

    def test_role_stored_as_value(self):
        message = Message(role=Role.ASSISTANT, content="x")
        assert message.role == "assistant"
        assert message.model_dump()["role"] == "assistant"


class TestPriming:
    """Tests for the fixed priming context."""

    def test_priming_roles(self):
        assert [m.role for m in PRIMING_CONTEXT] == ["system", "user", "assistant"]

    def test_priming_messages_are_copies(self):
        copies = priming_messages()
        copies[0].content = "changed"

        assert PRIMING_CONTEXT[0].content != "changed"
        assert [m.id for m in copies] == [m.id for m in PRIMING_CONTEXT]


class TestChatStat:

    def test_record(self):
        stat = ChatStat()
        stat.record("hello big world")
        stat.record("")

        assert stat.char_count == 15
        assert stat.word_count == 3
        assert stat.token_count == 3


class TestChatSession:
    """Tests for the ChatSession model."""

    def test_new_session(self):
        session = create_empty_session()

        assert session.topic == DEFAULT_TOPIC
        assert session.messages == []
        assert session.last_summarize_index == 0
        assert session.send_memory is True
        assert len(session.context) == len(PRIMING_CONTEXT)

    def test_session_ids_unique(self):
        first, second = ChatSession(), ChatSession()
        assert second.id > first.id

    def test_last_summarize_index_clamped(self):
        session = ChatSession(messages=[Message(), Message()], last_summarize_index=9)
        assert session.last_summarize_index == 2

    def test_negative_last_summarize_index_rejected(self):
        with pytest.raises(ValidationError):
            ChatSession(last_summarize_index=-1)

    def test_find_message(self):
        target = Message(content="target")
        session = ChatSession(messages=[Message(), target])

        assert session.find_message(target.id) is target
        assert session.find_message(-1) is None


class TestSnapshotModels:

    def test_default_state_holds_one_session(self):
        state = StoreState()

        assert len(state.sessions) == 1
        assert state.current_session_index == 0
        assert isinstance(state.config, ChatConfig)

    def test_snapshot_round_trip(self):
        state = StoreState(sessions=[ChatSession(topic="A"), ChatSession(topic="B")], current_session_index=1)
        snapshot = StoreSnapshot(version=2, state=state)

        restored = StoreSnapshot.model_validate(snapshot.model_dump(mode="json"))

        assert restored.version == 2
        assert [s.topic for s in restored.state.sessions] == ["A", "B"]
        assert restored.state.current_session_index == 1

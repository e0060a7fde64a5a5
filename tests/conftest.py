# tests/conftest.py
"""
Shared fixtures for the chatstore test-suite.
"""

import pytest

from chatstore.config.models import ChatConfig
from chatstore.sessions.cancellation import CancellationRegistry
from chatstore.sessions.manager import SessionStore
from chatstore.storage.volatile import VolatileSnapshotStorage
from tests.fakes import FakeProvider


@pytest.fixture
def provider() -> FakeProvider:
    """A scripted completion service."""
    return FakeProvider()


@pytest.fixture
def store() -> SessionStore:
    """An in-memory store without a storage backend."""
    return SessionStore()


@pytest.fixture
def storage() -> VolatileSnapshotStorage:
    return VolatileSnapshotStorage()


@pytest.fixture
def registry() -> CancellationRegistry:
    return CancellationRegistry()


@pytest.fixture
def chat_config() -> ChatConfig:
    return ChatConfig()

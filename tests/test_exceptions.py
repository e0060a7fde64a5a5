# tests/test_exceptions.py
"""
Tests for the chatstore.exceptions module.

Tests the exception hierarchy, attributes and message formatting.
"""

import pytest

from chatstore.exceptions import (AuthenticationError, ChatStoreError,
                                  ConfigError, MigrationError, ProviderError,
                                  RequestCancelledError, SessionNotFoundError,
                                  SnapshotStorageError, StorageError)


@pytest.mark.parametrize("exc_class", [
    ConfigError,
    ProviderError,
    AuthenticationError,
    RequestCancelledError,
    StorageError,
    SnapshotStorageError,
    MigrationError,
])
def test_hierarchy(exc_class):
    assert issubclass(exc_class, ChatStoreError)


def test_storage_subclasses():
    assert issubclass(SnapshotStorageError, StorageError)
    assert issubclass(MigrationError, StorageError)
    assert issubclass(AuthenticationError, ProviderError)


def test_default_messages():
    assert str(ChatStoreError()) == "An unspecified error occurred in chatstore."
    assert str(RequestCancelledError()) == "Request was cancelled."


def test_provider_error():
    error = ProviderError("openai", "rate limited", status_code=429)

    assert error.provider_name == "openai"
    assert error.status_code == 429
    assert str(error) == "Error with provider 'openai': rate limited"


def test_authentication_error_carries_401():
    error = AuthenticationError("openai")
    assert error.status_code == 401
    assert "Authentication failed." in str(error)


def test_migration_error():
    error = MigrationError(1, "Step failed.")
    assert error.from_version == 1
    assert str(error) == "Step failed. Stored version: 1"


def test_session_not_found():
    error = SessionNotFoundError(42)
    assert error.session_id == 42
    assert "42" in str(error)
    with pytest.raises(ChatStoreError):
        raise error

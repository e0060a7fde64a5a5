# src/chatstore/exceptions.py
"""
Custom exceptions for the chatstore library.

This module defines a hierarchy of custom exception classes so that callers
(UI layers, tests, provider adapters) can tell transport failures, auth
failures, cancellations and storage problems apart.
"""

from typing import Optional


class ChatStoreError(Exception):
    """Base class for all chatstore specific errors."""
    def __init__(self, message: str = "An unspecified error occurred in chatstore."):
        super().__init__(message)

class ConfigError(ChatStoreError):
    """Raised for errors related to settings loading or validation."""
    def __init__(self, message: str = "Configuration error."):
        super().__init__(message)

class ProviderError(ChatStoreError):
    """
    Raised for errors originating from the completion service (HTTP errors,
    connection issues, malformed responses).

    Attributes:
        provider_name: Name of the provider that failed.
        status_code: HTTP-style status code when the transport reported one.
    """
    def __init__(self, provider_name: str = "Unknown", message: str = "Provider error.",
                 status_code: Optional[int] = None):
        self.provider_name = provider_name
        self.status_code = status_code
        super().__init__(f"Error with provider '{provider_name}': {message}")

class AuthenticationError(ProviderError):
    """Raised when the completion service rejects the request as unauthorized (HTTP 401)."""
    def __init__(self, provider_name: str = "Unknown", message: str = "Authentication failed."):
        super().__init__(provider_name, message, status_code=401)

class RequestCancelledError(ChatStoreError):
    """
    Raised by a completion stream after its cancel handle was used.
    Not a failure: the turn is settled with whatever content had streamed.
    """
    def __init__(self, message: str = "Request was cancelled."):
        super().__init__(message)

class StorageError(ChatStoreError):
    """Base class for errors related to storage operations."""
    def __init__(self, message: str = "Storage error."):
        super().__init__(message)

class SnapshotStorageError(StorageError):
    """Raised when a store snapshot cannot be read, written or removed."""
    def __init__(self, message: str = "Snapshot storage error."):
        super().__init__(message)

class MigrationError(StorageError):
    """Raised when a persisted snapshot cannot be brought to the current schema version."""
    def __init__(self, from_version: int = 0, message: str = "Snapshot migration failed."):
        self.from_version = from_version
        super().__init__(f"{message} Stored version: {from_version}")

class SessionNotFoundError(ChatStoreError):
    """Raised when a session id does not match any session held by the store."""
    def __init__(self, session_id: int, message: str = "Session not found."):
        self.session_id = session_id
        super().__init__(f"{message} Session ID: '{session_id}'")

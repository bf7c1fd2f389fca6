"""Abstract base class for key-value persistence backends.

This module defines the interface the chat client uses to persist its
session list and settings. The abstraction hides:
- Storage format (in-memory dict, SQLite table, etc.)
- Persistence mechanism (file, database, in-memory)
- Connection management

Values are opaque JSON blobs; callers own their serialization.
"""

from abc import ABC, abstractmethod
from typing import Any

# Keys used by the chat client
CHATS_KEY = "openllama_chats"
SETTINGS_KEY = "openllama_settings"


class KeyValueStore(ABC):
    """Abstract key-value store.

    Supports async context manager protocol for proper resource cleanup:
        async with store:
            await store.save("key", "{}")
    """

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the store."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the store gracefully."""

    @abstractmethod
    async def load(self, key: str) -> str | None:
        """Return the value previously saved under ``key``, or None if absent."""

    @abstractmethod
    async def save(self, key: str, value: str) -> None:
        """Persist ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``; missing keys are ignored."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""

    async def __aenter__(self) -> "KeyValueStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()

"""Key-value persistence for openllama.

Stores the session list and settings as JSON blobs.
"""

from .base import CHATS_KEY, SETTINGS_KEY, KeyValueStore
from .factory import create_key_value_store
from .in_memory import InMemoryKeyValueStore

__all__ = [
    "CHATS_KEY",
    "SETTINGS_KEY",
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "create_key_value_store",
]

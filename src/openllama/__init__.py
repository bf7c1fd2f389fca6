"""
OpenLlama: a streaming chat client for local and OpenAI-compatible language models.

This package follows Parnas's information hiding principles,
where each module hides a specific design decision.
"""

__version__ = "0.1.0"

from .backends import BackendAdapter, ErrorAnnotation, select_adapter
from .generation import GenerationController, GenerationState, GenerationStats
from .session import Attachment, ChatSession, Message, Role, SessionStore
from .settings import Backend, GenerationSettings
from .storage import KeyValueStore, create_key_value_store

__all__ = [
    "Attachment",
    "Backend",
    "BackendAdapter",
    "ChatSession",
    "ErrorAnnotation",
    "GenerationController",
    "GenerationSettings",
    "GenerationState",
    "GenerationStats",
    "KeyValueStore",
    "Message",
    "Role",
    "SessionStore",
    "create_key_value_store",
    "select_adapter",
]

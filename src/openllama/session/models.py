"""Data models for chat sessions.

These models define the structure of conversations, messages and
attachments, independent of the storage backend used.
"""

from datetime import datetime
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def new_id() -> str:
    """Mint a fresh identifier for sessions, messages and attachments."""
    return uuid4().hex


class AttachmentKind(str, Enum):
    """Kinds of attachment a message can carry."""

    IMAGE = "image"
    FILE = "file"


class Role(str, Enum):
    """Role of a message sender."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Attachment(BaseModel):
    """A file or image attached to a message.

    Image attachments carry a ``data:`` URL (base64), file attachments
    carry their text content.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    kind: AttachmentKind = Field(description="'image' or 'file'")
    name: str = Field(description="Original file name")
    mime_type: str = Field(default="application/octet-stream")
    data: str = Field(description="Data URL for images, text for files")
    preview: str | None = Field(default=None, description="Preview source for images")


class Message(BaseModel):
    """A single message in a conversation.

    Only ``content`` of an assistant message that is still receiving
    fragments is ever mutated after creation.
    """

    id: str = Field(default_factory=new_id)
    role: Role
    content: str = ""
    attachments: list[Attachment] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=datetime.now)


class ChatSession(BaseModel):
    """A conversation with a single model."""

    id: str = Field(default_factory=new_id)
    title: str = "New Chat"
    model_id: str
    messages: list[Message] = Field(default_factory=list)
    updated_at: datetime = Field(default_factory=datetime.now)

    def append(self, message: Message) -> None:
        """Append a message; messages are never reordered or removed."""
        self.messages.append(message)

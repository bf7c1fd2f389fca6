"""Chat sessions: data models, the in-memory session list and attachments."""

from .attachments import attachment_from_path
from .models import Attachment, AttachmentKind, ChatSession, Message, Role, new_id
from .store import SessionStore, group_sessions_by_date

__all__ = [
    "Attachment",
    "AttachmentKind",
    "ChatSession",
    "Message",
    "Role",
    "SessionStore",
    "attachment_from_path",
    "group_sessions_by_date",
    "new_id",
]

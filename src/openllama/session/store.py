"""In-memory session list with persistence through a key-value store.

The store is the single owner of the session list. Every mutation ends
with ``publish`` (or ``save``), which reorders the list most-recently
updated first, notifies listeners and writes the list back to the
key-value store.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from pydantic import TypeAdapter, ValidationError

from ..storage import CHATS_KEY, KeyValueStore
from .models import ChatSession

logger = logging.getLogger(__name__)

SessionListener = Callable[[list[ChatSession]], None]

_SESSION_LIST = TypeAdapter(list[ChatSession])

DATE_GROUPS = ("Today", "Yesterday", "Previous 7 Days", "Older")


class SessionStore:
    """Ordered list of chat sessions, newest first."""

    def __init__(self, store: KeyValueStore | None = None):
        self._store = store
        self._sessions: list[ChatSession] = []
        self._listeners: list[SessionListener] = []

    @property
    def sessions(self) -> list[ChatSession]:
        """Snapshot of the session list, most recently updated first."""
        return list(self._sessions)

    def __len__(self) -> int:
        return len(self._sessions)

    def get(self, session_id: str) -> ChatSession | None:
        for session in self._sessions:
            if session.id == session_id:
                return session
        return None

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener called with the new list after every publish.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def load(self) -> list[ChatSession]:
        """Restore the session list from the key-value store."""
        if self._store is None:
            return self.sessions
        raw = await self._store.load(CHATS_KEY)
        if raw is None:
            self._sessions = []
        else:
            try:
                loaded = _SESSION_LIST.validate_json(raw)
            except ValidationError as e:
                logger.warning("Discarding unreadable saved sessions: %s", e)
                loaded = []
            self._sessions = sorted(loaded, key=lambda s: s.updated_at, reverse=True)
        logger.debug("Loaded %d sessions", len(self._sessions))
        self._notify()
        return self.sessions

    async def save(self) -> None:
        """Write the current list to the key-value store."""
        if self._store is None:
            return
        await self._store.save(CHATS_KEY, _SESSION_LIST.dump_json(self._sessions).decode("utf-8"))

    async def create_session(self, model_id: str, title: str = "New Chat") -> ChatSession:
        """Create an empty session at the front of the list."""
        session = ChatSession(model_id=model_id, title=title)
        self._sessions.insert(0, session)
        self._notify()
        await self.save()
        return session

    async def publish(self, session: ChatSession) -> None:
        """Move ``session`` to the front, notify listeners and persist.

        Sessions deleted in the meantime are not brought back.
        """
        if self.get(session.id) is None:
            logger.debug("Not publishing deleted session %s", session.id)
            return
        self._sessions = [session] + [s for s in self._sessions if s.id != session.id]
        self._notify()
        await self.save()

    async def rename(self, session_id: str, title: str) -> ChatSession | None:
        session = self.get(session_id)
        if session is None:
            return None
        session.title = title
        self._notify()
        await self.save()
        return session

    async def delete(self, session_id: str) -> bool:
        """Delete a whole session. Returns False if it did not exist."""
        before = len(self._sessions)
        self._sessions = [s for s in self._sessions if s.id != session_id]
        if len(self._sessions) == before:
            return False
        self._notify()
        await self.save()
        return True

    def _notify(self) -> None:
        snapshot = self.sessions
        for listener in list(self._listeners):
            listener(snapshot)


def group_sessions_by_date(
    sessions: list[ChatSession],
    now: datetime | None = None
) -> dict[str, list[ChatSession]]:
    """Bucket sessions by last update for display.

    Args:
        sessions: Sessions to group (order is preserved within a group)
        now: Reference time (defaults to the current time)

    Returns:
        Mapping of 'Today', 'Yesterday', 'Previous 7 Days' and 'Older'
        to their sessions
    """
    current = now or datetime.now()
    today = current.replace(hour=0, minute=0, second=0, microsecond=0)
    yesterday = today - timedelta(days=1)
    last_week = today - timedelta(days=7)

    groups: dict[str, list[ChatSession]] = {name: [] for name in DATE_GROUPS}
    for session in sessions:
        updated = session.updated_at
        if updated.tzinfo is not None and today.tzinfo is None:
            updated = updated.astimezone().replace(tzinfo=None)
        if updated >= today:
            groups["Today"].append(session)
        elif updated >= yesterday:
            groups["Yesterday"].append(session)
        elif updated >= last_week:
            groups["Previous 7 Days"].append(session)
        else:
            groups["Older"].append(session)
    return groups

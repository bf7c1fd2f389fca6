"""Drive one generation per user turn.

The controller appends the user message, streams the selected backend's
fragments into a single assistant message, keeps throughput statistics
and owns the cancellation event. Only one generation may be active in the
whole process; the active flag is the concurrency contract that keeps
transcript mutation free of interleaving.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from contextlib import aclosing
from datetime import datetime
from enum import Enum

from ..backends import BackendAdapter, is_error_annotation, select_adapter
from ..session import Attachment, ChatSession, Message, Role, SessionStore
from ..settings import Backend, GenerationSettings
from .stats import GenerationStats

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 30
ATTACHMENT_ONLY_TITLE = "New Attachment"

AdapterSelector = Callable[[Backend], BackendAdapter]
FragmentListener = Callable[[ChatSession, Message, GenerationStats], None]


class GenerationState(str, Enum):
    """Lifecycle of a generation."""

    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


def derive_title(text: str) -> str:
    """Session title from the first message text.

    First 30 characters, with '...' appended when truncated; attachment-only
    sends get a fixed title.
    """
    if not text.strip():
        return ATTACHMENT_ONLY_TITLE
    if len(text) > TITLE_MAX_CHARS:
        return text[:TITLE_MAX_CHARS] + "..."
    return text


class GenerationController:
    """Runs generations against the session store.

    Usage:
        controller = GenerationController(store, settings)
        controller.subscribe(lambda session, message, stats: ...)
        reply = await controller.submit(session.id, "Hello")
        # from elsewhere, while streaming:
        controller.stop()
    """

    def __init__(
        self,
        sessions: SessionStore,
        settings: GenerationSettings | None = None,
        adapter_selector: AdapterSelector = select_adapter,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the controller.

        Args:
            sessions: Session store mutated by generations
            settings: Initial settings; replace ``controller.settings`` to
                change them for later generations
            adapter_selector: Maps a backend to a fresh adapter
            clock: Monotonic time source in seconds
        """
        self._sessions = sessions
        self.settings = settings or GenerationSettings()
        self._select_adapter = adapter_selector
        self._clock = clock

        self._state = GenerationState.IDLE
        self._cancel: asyncio.Event | None = None
        self._active_session_id: str | None = None
        self._stats: GenerationStats | None = None
        self._last_outcome: GenerationState | None = None
        self._staged: list[Attachment] = []
        self._listeners: list[FragmentListener] = []

    @property
    def state(self) -> GenerationState:
        return self._state

    @property
    def is_active(self) -> bool:
        """True while a generation holds the cancellation token."""
        return self._cancel is not None

    @property
    def active_session_id(self) -> str | None:
        return self._active_session_id

    @property
    def stats(self) -> GenerationStats | None:
        """Statistics of the current or most recent generation."""
        return self._stats

    @property
    def last_outcome(self) -> GenerationState | None:
        """Terminal state of the most recent generation."""
        return self._last_outcome

    @property
    def staged_attachments(self) -> list[Attachment]:
        return list(self._staged)

    def stage_attachment(self, attachment: Attachment) -> None:
        """Stage an attachment for the next submit."""
        self._staged.append(attachment)

    def remove_attachment(self, attachment_id: str) -> bool:
        before = len(self._staged)
        self._staged = [a for a in self._staged if a.id != attachment_id]
        return len(self._staged) != before

    def subscribe(self, listener: FragmentListener) -> Callable[[], None]:
        """Call ``listener`` after every applied fragment.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def stop(self) -> bool:
        """Request cancellation of the active generation.

        Returns:
            False if nothing was generating
        """
        if self._cancel is None:
            return False
        logger.debug("Stop requested for session %s", self._active_session_id)
        self._cancel.set()
        return True

    async def submit(self, session_id: str, text: str) -> Message | None:
        """Send a user message and stream the reply into the session.

        Silently ignored (returns None, changes nothing) when there is no
        text and no staged attachment, when the session does not exist, or
        when any generation is already active.

        Args:
            session_id: Session to append to
            text: Message text

        Returns:
            The assistant message, or None if the submit was ignored or the
            backend produced nothing
        """
        if not text.strip() and not self._staged:
            return None
        if self._cancel is not None:
            logger.debug("Ignoring submit while a generation is active")
            return None
        session = self._sessions.get(session_id)
        if session is None:
            return None

        # Claim the token before the first suspension point
        cancel = asyncio.Event()
        self._cancel = cancel
        self._active_session_id = session.id
        settings = self.settings
        self._set_state(GenerationState.SENDING)

        try:
            user_message = Message(role=Role.USER, content=text, attachments=list(self._staged))
            self._staged = []
            if not session.messages:
                session.title = derive_title(text)
            session.append(user_message)
            session.updated_at = datetime.now()
            await self._sessions.publish(session)

            return await self._stream(session, settings, cancel)
        finally:
            self._cancel = None
            self._active_session_id = None
            self._set_state(GenerationState.IDLE)

    async def _stream(
        self,
        session: ChatSession,
        settings: GenerationSettings,
        cancel: asyncio.Event,
    ) -> Message | None:
        transcript = list(session.messages)
        start = self._clock()
        self._stats = GenerationStats.start(start)
        self._set_state(GenerationState.STREAMING)

        assistant: Message | None = None
        count = 0
        outcome = GenerationState.COMPLETED

        try:
            async with self._select_adapter(settings.backend) as adapter:
                fragments = adapter.generate(transcript, session.model_id, settings, cancel)
                async with aclosing(fragments):
                    async for fragment in fragments:
                        if cancel.is_set():
                            break
                        if assistant is None:
                            assistant = Message(role=Role.ASSISTANT, content=fragment)
                            session.append(assistant)
                        else:
                            assistant.content += fragment
                        if is_error_annotation(fragment):
                            outcome = GenerationState.FAILED

                        count += 1
                        self._stats = GenerationStats.compute(start, count, self._clock())
                        await self._sessions.publish(session)
                        self._emit(session, assistant, self._stats)
        except Exception:
            logger.exception("Generation for session %s failed", session.id)
            outcome = GenerationState.FAILED

        if cancel.is_set():
            outcome = GenerationState.CANCELLED
        self._last_outcome = outcome
        self._set_state(outcome)
        logger.debug(
            "Generation finished: %s, %d fragments in %.1fs",
            outcome.value, count, self._stats.elapsed_seconds
        )
        return assistant

    def _emit(self, session: ChatSession, message: Message, stats: GenerationStats) -> None:
        for listener in list(self._listeners):
            listener(session, message, stats)

    def _set_state(self, state: GenerationState) -> None:
        if state is not self._state:
            logger.debug("Generation state %s -> %s", self._state.value, state.value)
        self._state = state

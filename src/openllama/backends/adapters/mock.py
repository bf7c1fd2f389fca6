"""Offline backend that streams canned replies.

The reply text depends only on the last message and the model id; only
the pacing between fragments is random.
"""

import asyncio
import random
import re
from collections.abc import AsyncIterator

from ...session import Message
from ...settings import GenerationSettings
from ..base import BackendAdapter

GREETING_REPLY = "Hello! I am running on the **{model_id}** model (Mock Mode). How can I help you today?"
CODE_REPLY = 'Here is a Python snippet:\n\n```python\nprint("Hello World")\n```'
ATTACHMENT_REPLY = (
    "I see you uploaded {count} attachment(s). In mock mode, I can't analyze them, "
    "but they are properly passed in the message structure."
)
ECHO_REPLY = 'I received your message: "{content}". (Mock Response)'

# Checked in order; the first trigger found in the message wins
TRIGGERS: list[tuple[str, str]] = [
    ("hello", GREETING_REPLY),
    ("hi", GREETING_REPLY),
    ("code", CODE_REPLY),
]

# Zero-width split point in front of every run of spaces/newlines
_FRAGMENT_BOUNDARY = re.compile(r"(?<![ \n])(?=[ \n])")


def build_mock_reply(last_message: Message, model_id: str) -> str:
    """Pick the canned reply for ``last_message``."""
    if last_message.attachments:
        return ATTACHMENT_REPLY.format(count=len(last_message.attachments))

    lowered = last_message.content.lower()
    for trigger, template in TRIGGERS:
        if trigger in lowered:
            return template.format(model_id=model_id)

    return ECHO_REPLY.format(content=last_message.content)


def split_fragments(text: str) -> list[str]:
    """Split ``text`` immediately before each whitespace run.

    Joining the result gives back ``text`` unchanged.
    """
    return [part for part in _FRAGMENT_BOUNDARY.split(text) if part]


class MockAdapter(BackendAdapter):
    """Mock backend for tests and offline demos.

    Hidden design decisions:
    - Trigger phrases and canned replies
    - Fragment boundaries
    - Simulated "thinking" and typing delays
    """

    def __init__(
        self,
        initial_delay: float = 0.6,
        min_delay: float = 0.01,
        max_delay: float = 0.04,
        rng: random.Random | None = None,
    ):
        """Initialize mock backend.

        Args:
            initial_delay: Seconds to wait before the first fragment
            min_delay: Lower bound of the per-fragment delay in seconds
            max_delay: Upper bound of the per-fragment delay in seconds
            rng: Random source for delays (defaults to module random)
        """
        if min_delay > max_delay:
            raise ValueError("min_delay must not exceed max_delay")
        self._initial_delay = initial_delay
        self._min_delay = min_delay
        self._max_delay = max_delay
        self._rng = rng or random.Random()

    async def generate(
        self,
        transcript: list[Message],
        model_id: str,
        settings: GenerationSettings,
        cancel: asyncio.Event,
    ) -> AsyncIterator[str]:
        if not transcript:
            return

        await asyncio.sleep(self._initial_delay)
        if cancel.is_set():
            return

        reply = build_mock_reply(transcript[-1], model_id)
        for fragment in split_fragments(reply):
            await asyncio.sleep(self._rng.uniform(self._min_delay, self._max_delay))
            if cancel.is_set():
                return
            yield fragment

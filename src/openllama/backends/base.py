"""Contract every generation backend implements."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import Any

from ..session import Message
from ..settings import GenerationSettings


class BackendAdapter(ABC):
    """Abstract base class for generation backends.

    This module hides the design decision of where text is generated.
    Implementations must handle backend-specific details like:
    - Request/prompt construction from the transcript
    - Transport (HTTP stream, in-process runtime, synthetic timer)
    - Turning failures into in-band error annotations

    Every adapter honours the same contract: ``generate`` returns a lazy,
    finite async iterator of non-empty text fragments that are meant to be
    concatenated in order. The iterator ends early, without raising, once
    ``cancel`` is set, and never yields after observing it.

    Supports async context manager protocol for proper resource cleanup:
        async with adapter:
            async for fragment in adapter.generate(...):
                ...
    """

    @abstractmethod
    def generate(
        self,
        transcript: list[Message],
        model_id: str,
        settings: GenerationSettings,
        cancel: asyncio.Event,
    ) -> AsyncIterator[str]:
        """Stream the assistant reply to ``transcript``.

        Args:
            transcript: Conversation so far, oldest first, ending with the
                user message being answered
            model_id: Model to generate with
            settings: Settings snapshot for this generation
            cancel: Set by the caller to stop the stream

        Returns:
            Async iterator of text fragments. Failures arrive as a final
            ErrorAnnotation fragment instead of an exception.
        """

    async def close(self) -> None:
        """Release any resources held by the adapter."""

    async def __aenter__(self) -> "BackendAdapter":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

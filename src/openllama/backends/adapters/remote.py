"""Backend for OpenAI-compatible chat-completions servers.

Works against llama.cpp's server, vLLM, Ollama's OpenAI endpoint and
similar. The streamed response is parsed by hand rather than through the
OpenAI SDK so that llama.cpp-specific sampling fields (min_p, mirostat,
repeat_penalty, ...) are sent verbatim and partial reads stay visible to
the cancellation checks.
"""

import asyncio
import codecs
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

from ...session import AttachmentKind, Message
from ...settings import GenerationSettings
from ..base import BackendAdapter
from ..models import ErrorAnnotation

logger = logging.getLogger(__name__)

COMPLETIONS_PATH = "/chat/completions"
DATA_PREFIX = "data: "
DONE_PAYLOAD = "[DONE]"

DEFAULT_TIMEOUT = httpx.Timeout(connect=10.0, read=300.0, write=30.0, pool=10.0)


def build_completions_url(api_url: str) -> str:
    """Resolve the chat-completions endpoint for an API base.

    Trailing slashes are trimmed and the path is only appended when the
    base does not already end with it, so the result is idempotent.
    """
    base = api_url.rstrip("/")
    if base.endswith(COMPLETIONS_PATH):
        return base
    return base + COMPLETIONS_PATH


def _message_to_api_format(message: Message) -> dict[str, Any]:
    """Convert a message to the OpenAI vision message format.

    File attachments are folded into the first text part; image
    attachments become ``image_url`` parts.
    """
    if not message.attachments:
        return {"role": message.role.value, "content": message.content}

    parts: list[dict[str, Any]] = []
    if message.content:
        parts.append({"type": "text", "text": message.content})

    for attachment in message.attachments:
        if attachment.kind is AttachmentKind.IMAGE:
            parts.append({
                "type": "image_url",
                "image_url": {"url": attachment.data}
            })
        else:
            file_text = f"\n[File: {attachment.name}]\n{attachment.data}\n"
            text_part = next((p for p in parts if p["type"] == "text"), None)
            if text_part is not None:
                text_part["text"] += file_text
            else:
                parts.append({"type": "text", "text": file_text})

    return {"role": message.role.value, "content": parts}


def build_request_body(
    transcript: list[Message],
    model_id: str,
    settings: GenerationSettings,
) -> dict[str, Any]:
    """Build the JSON body for a streamed chat completion."""
    messages = [{"role": "system", "content": settings.system_prompt}]
    messages.extend(_message_to_api_format(m) for m in transcript)

    body: dict[str, Any] = {
        "model": model_id,
        "messages": messages,
        "stream": True,
        "temperature": settings.temperature,
        "top_p": settings.top_p,
        "max_tokens": settings.max_tokens,
        "presence_penalty": settings.presence_penalty,
        "frequency_penalty": settings.frequency_penalty,
        "top_k": settings.top_k,
        "min_p": settings.min_p,
        "repeat_penalty": settings.repeat_penalty,
        "repeat_last_n": settings.repeat_last_n,
        "mirostat": settings.mirostat,
        "mirostat_tau": settings.mirostat_tau,
        "mirostat_eta": settings.mirostat_eta,
        "cache_prompt": True,
    }
    if settings.has_seed:
        body["seed"] = settings.seed
    return body


def build_headers(settings: GenerationSettings) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {settings.api_key or 'no-key'}",
    }


class EventStreamParser:
    """Incremental parser for ``data:`` lines of a server-sent event stream.

    Bytes may be split anywhere, including inside a UTF-8 sequence or a
    line; incomplete trailing input is kept until the next ``feed``.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.done = False

    def feed(self, chunk: bytes) -> list[str]:
        """Consume a chunk and return the content deltas it completed.

        After a ``[DONE]`` payload, ``done`` is set and further lines are
        ignored.
        """
        if self.done:
            return []

        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = self._buffer.split("\n")

        deltas: list[str] = []
        for line in lines:
            payload = self._payload(line)
            if payload is None:
                continue
            if payload == DONE_PAYLOAD:
                self.done = True
                break
            delta = self._extract_delta(payload)
            if delta:
                deltas.append(delta)
        return deltas

    @staticmethod
    def _payload(line: str) -> str | None:
        trimmed = line.strip()
        if not trimmed.startswith(DATA_PREFIX):
            return None
        return trimmed[len(DATA_PREFIX):]

    @staticmethod
    def _extract_delta(payload: str) -> str | None:
        try:
            event = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed stream payload: %.200s", payload)
            return None
        try:
            content = event["choices"][0]["delta"].get("content")
        except (KeyError, IndexError, TypeError, AttributeError):
            return None
        return content if isinstance(content, str) else None


class RemoteAPIAdapter(BackendAdapter):
    """OpenAI-compatible HTTP backend.

    Hidden design decisions:
    - Endpoint URL resolution
    - Message format conversion (text, vision parts, inlined files)
    - Server-sent event parsing
    - Mapping HTTP and transport failures to error annotations
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: httpx.Timeout | float | None = None,
    ):
        """Initialize remote backend.

        Args:
            client: Shared HTTP client, owned and closed by the caller.
                When omitted, each generation opens and closes its own client.
            timeout: Timeout for clients created by this adapter
        """
        self._client = client
        self._timeout = timeout if timeout is not None else DEFAULT_TIMEOUT

    async def generate(
        self,
        transcript: list[Message],
        model_id: str,
        settings: GenerationSettings,
        cancel: asyncio.Event,
    ) -> AsyncIterator[str]:
        url = build_completions_url(settings.api_url)
        body = build_request_body(transcript, model_id, settings)
        headers = build_headers(settings)

        client = self._client or httpx.AsyncClient(timeout=self._timeout)
        try:
            async with client.stream("POST", url, json=body, headers=headers) as response:
                if not response.is_success:
                    detail = (await response.aread()).decode("utf-8", errors="replace")
                    logger.warning("Completion request failed with HTTP %s", response.status_code)
                    yield ErrorAnnotation(f"**API Error**: {response.status_code}\n`{detail}`")
                    return

                parser = EventStreamParser()
                async for chunk in response.aiter_bytes():
                    if cancel.is_set():
                        return
                    for delta in parser.feed(chunk):
                        if cancel.is_set():
                            return
                        yield delta
                    if parser.done:
                        return
        except httpx.HTTPError as e:
            logger.warning("Completion stream to %s failed: %s", url, e)
            yield ErrorAnnotation(f"\n\n**Connection Error**: {str(e) or type(e).__name__}")
        except Exception as e:
            # Raised while building the request: bad URL, unencodable header
            logger.warning("Completion request to %s could not be sent: %s", url, e)
            yield ErrorAnnotation(f"\n\n**Connection Error**: {str(e) or type(e).__name__}")
        finally:
            if self._client is None:
                await client.aclose()

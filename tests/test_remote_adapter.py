"""Tests for the OpenAI-compatible HTTP backend."""
import asyncio
import json

import httpx
import pytest

from openllama.backends import RemoteAPIAdapter
from openllama.backends.adapters.remote import (
    EventStreamParser,
    build_completions_url,
    build_headers,
    build_request_body,
)
from openllama.backends.models import is_error_annotation
from openllama.generation import GenerationController, GenerationState
from openllama.session import Attachment, AttachmentKind, Role
from openllama.settings import Backend


def _event(content: str) -> str:
    return "data: " + json.dumps({"choices": [{"delta": {"content": content}}]}) + "\n\n"


async def _stream_body(chunks: list[bytes]):
    for chunk in chunks:
        yield chunk


def _adapter(handler) -> tuple[RemoteAPIAdapter, httpx.AsyncClient]:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RemoteAPIAdapter(client=client), client


async def _collect(fragments) -> list[str]:
    return [fragment async for fragment in fragments]


class TestCompletionsUrl:
    """Tests for endpoint resolution."""

    def test_appends_path(self):
        assert build_completions_url("http://x/v1") == "http://x/v1/chat/completions"

    def test_full_endpoint_unchanged(self):
        assert build_completions_url("http://x/v1/chat/completions") == "http://x/v1/chat/completions"

    def test_trailing_slash_trimmed(self):
        assert build_completions_url("http://x/v1/") == "http://x/v1/chat/completions"

    def test_idempotent(self):
        """Test that resolving twice gives the same endpoint."""
        once = build_completions_url("http://x/v1")
        assert build_completions_url(once) == once


class TestRequestBody:
    """Tests for request construction."""

    def test_system_prompt_leads(self, settings, user_message):
        body = build_request_body([user_message("hi")], "m", settings)

        assert body["messages"][0] == {"role": "system", "content": settings.system_prompt}
        assert body["messages"][1] == {"role": "user", "content": "hi"}
        assert body["stream"] is True
        assert body["cache_prompt"] is True
        assert body["model"] == "m"

    def test_seed_omitted_when_unset(self, settings, user_message):
        """Test that the default seed of -1 is not sent."""
        body = build_request_body([user_message("hi")], "m", settings)
        assert "seed" not in body

    def test_seed_sent_when_set(self, settings, user_message):
        seeded = settings.model_copy(update={"seed": 42})
        body = build_request_body([user_message("hi")], "m", seeded)
        assert body["seed"] == 42

    def test_sampling_fields_forwarded(self, settings, user_message):
        body = build_request_body([user_message("hi")], "m", settings)

        assert body["min_p"] == settings.min_p
        assert body["repeat_last_n"] == settings.repeat_last_n
        assert body["mirostat_tau"] == settings.mirostat_tau

    def test_image_becomes_image_part(self, settings, user_message):
        image = Attachment(kind=AttachmentKind.IMAGE, name="cat.png", mime_type="image/png",
                           data="data:image/png;base64,AAAA")
        body = build_request_body([user_message("what is this?", [image])], "m", settings)

        assert body["messages"][1]["content"] == [
            {"type": "text", "text": "what is this?"},
            {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
        ]

    def test_file_merged_into_text_part(self, settings, user_message):
        file = Attachment(kind=AttachmentKind.FILE, name="notes.txt", data="line one")
        body = build_request_body([user_message("summarize", [file])], "m", settings)

        assert body["messages"][1]["content"] == [
            {"type": "text", "text": "summarize\n[File: notes.txt]\nline one\n"},
        ]

    def test_file_without_text_gets_own_part(self, settings, user_message):
        """Test that attachment-only messages have no empty text part."""
        file = Attachment(kind=AttachmentKind.FILE, name="a.py", data="pass")
        body = build_request_body([user_message("", [file])], "m", settings)

        assert body["messages"][1]["content"] == [
            {"type": "text", "text": "\n[File: a.py]\npass\n"},
        ]

    def test_placeholder_bearer_token(self, settings):
        assert build_headers(settings)["Authorization"] == "Bearer no-key"

    def test_bearer_token(self, settings):
        keyed = settings.model_copy(update={"api_key": "sk-test"})
        assert build_headers(keyed)["Authorization"] == "Bearer sk-test"


class TestEventStreamParser:
    """Tests for incremental server-sent event parsing."""

    def test_line_split_across_chunks(self):
        """Test that a data line split mid-way is parsed once complete."""
        raw = b'data: {"choices":[{"delta":{"content":"Hi"}}]}\n\ndata: [DONE]\n\n'
        parser = EventStreamParser()

        first = parser.feed(raw[:20])
        second = parser.feed(raw[20:])

        assert first == []
        assert second == ["Hi"]
        assert parser.done

    def test_multibyte_character_split(self):
        raw = _event("héllo").encode()
        cut = raw.index("é".encode()) + 1
        parser = EventStreamParser()

        assert parser.feed(raw[:cut]) + parser.feed(raw[cut:]) == ["héllo"]

    def test_malformed_json_skipped(self):
        parser = EventStreamParser()
        deltas = parser.feed(b"data: {not json\n" + _event("ok").encode())
        assert deltas == ["ok"]

    def test_non_data_lines_ignored(self):
        parser = EventStreamParser()
        deltas = parser.feed(b": keep-alive\nevent: ping\n" + _event("x").encode())
        assert deltas == ["x"]

    def test_role_only_and_empty_deltas_skipped(self):
        parser = EventStreamParser()
        raw = (
            'data: {"choices":[{"delta":{"role":"assistant"}}]}\n'
            'data: {"choices":[{"delta":{"content":""}}]}\n'
            'data: {"choices":[]}\n'
        )
        assert parser.feed(raw.encode()) == []

    def test_lines_after_done_ignored(self):
        parser = EventStreamParser()
        deltas = parser.feed(("data: [DONE]\n" + _event("late")).encode())

        assert deltas == []
        assert parser.feed(_event("later").encode()) == []


class TestRemoteAPIAdapter:
    """Tests for RemoteAPIAdapter against a mocked transport."""

    @pytest.mark.asyncio
    async def test_streams_deltas(self, settings, user_message, never_cancelled):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            body = [_event("Hel").encode(), _event("lo").encode(), b"data: [DONE]\n\n"]
            return httpx.Response(200, content=_stream_body(body))

        adapter, client = _adapter(handler)
        async with client:
            fragments = await _collect(adapter.generate([user_message("hi")], "m", settings, never_cancelled))

        assert fragments == ["Hel", "lo"]
        assert seen["url"] == "http://llm.test/v1/chat/completions"
        assert seen["body"]["messages"][-1]["content"] == "hi"

    @pytest.mark.asyncio
    async def test_http_error_becomes_annotation(self, settings, user_message, never_cancelled):
        adapter, client = _adapter(lambda request: httpx.Response(500, text="model not loaded"))
        async with client:
            fragments = await _collect(adapter.generate([user_message("hi")], "m", settings, never_cancelled))

        assert fragments == ["**API Error**: 500\n`model not loaded`"]
        assert is_error_annotation(fragments[0])

    @pytest.mark.asyncio
    async def test_connection_error_becomes_annotation(self, settings, user_message, never_cancelled):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        adapter, client = _adapter(handler)
        async with client:
            fragments = await _collect(adapter.generate([user_message("hi")], "m", settings, never_cancelled))

        assert fragments == ["\n\n**Connection Error**: connection refused"]
        assert is_error_annotation(fragments[0])

    @pytest.mark.asyncio
    async def test_invalid_url_becomes_annotation(self, settings, user_message, never_cancelled):
        adapter, client = _adapter(lambda request: httpx.Response(200, content=_event("ok").encode()))
        broken = settings.model_copy(update={"api_url": "http://[::1/v1"})
        async with client:
            fragments = await _collect(adapter.generate([user_message("hi")], "m", broken, never_cancelled))

        assert len(fragments) == 1
        assert fragments[0].startswith("\n\n**Connection Error**: ")
        assert is_error_annotation(fragments[0])

    @pytest.mark.asyncio
    async def test_unencodable_api_key_becomes_annotation(self, settings, user_message, never_cancelled):
        adapter, client = _adapter(lambda request: httpx.Response(200, content=_event("ok").encode()))
        keyed = settings.model_copy(update={"api_key": "clé"})
        async with client:
            fragments = await _collect(adapter.generate([user_message("hi")], "m", keyed, never_cancelled))

        assert len(fragments) == 1
        assert fragments[0].startswith("\n\n**Connection Error**: ")
        assert is_error_annotation(fragments[0])

    @pytest.mark.asyncio
    async def test_request_failure_leaves_readable_reply(self, session_store, settings):
        """Test that a request that cannot be sent still yields an assistant message."""
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        adapter = RemoteAPIAdapter(client=client)
        session = await session_store.create_session("m")
        controller = GenerationController(
            session_store,
            settings.model_copy(update={"backend": Backend.API, "api_url": "http://[::1/v1"}),
            adapter_selector=lambda backend: adapter,
        )

        async with client:
            reply = await controller.submit(session.id, "hi")

        assert reply is not None
        assert "**Connection Error**" in reply.content
        assert [m.role for m in session.messages] == [Role.USER, Role.ASSISTANT]
        assert controller.last_outcome is GenerationState.FAILED

    @pytest.mark.asyncio
    async def test_deltas_are_not_error_annotations(self, settings, user_message, never_cancelled):
        adapter, client = _adapter(lambda request: httpx.Response(200, content=_event("ok").encode()))
        async with client:
            fragments = await _collect(adapter.generate([user_message("hi")], "m", settings, never_cancelled))

        assert fragments == ["ok"]
        assert not is_error_annotation(fragments[0])

    @pytest.mark.asyncio
    async def test_cancel_stops_after_current_fragment(self, settings, user_message):
        body = [_event("one").encode(), _event("two").encode(), _event("three").encode()]
        adapter, client = _adapter(lambda request: httpx.Response(200, content=_stream_body(body)))
        cancel = asyncio.Event()
        received = []

        async with client:
            async for fragment in adapter.generate([user_message("hi")], "m", settings, cancel):
                received.append(fragment)
                cancel.set()

        assert received == ["one"]

    @pytest.mark.asyncio
    async def test_shared_client_left_open(self, settings, user_message, never_cancelled):
        """Test that an injected client is not closed by the adapter."""
        adapter, client = _adapter(lambda request: httpx.Response(200, content=_event("ok").encode()))
        async with client:
            async with adapter:
                await _collect(adapter.generate([user_message("hi")], "m", settings, never_cancelled))
            assert not client.is_closed

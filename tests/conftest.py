"""Pytest configuration and shared fixtures."""
import asyncio
import time
from collections.abc import Callable

import pytest

from openllama.backends import MockAdapter
from openllama.session import Message, Role, SessionStore
from openllama.settings import Backend, GenerationSettings
from openllama.storage import InMemoryKeyValueStore


@pytest.fixture
def settings():
    """Settings for the mock backend."""
    return GenerationSettings(backend=Backend.MOCK, api_url="http://llm.test/v1")


@pytest.fixture
def kv_store():
    """Return an in-memory key-value store."""
    return InMemoryKeyValueStore()


@pytest.fixture
async def session_store(kv_store):
    """Return a session store persisted to the in-memory key-value store."""
    store = SessionStore(kv_store)
    await store.load()
    return store


@pytest.fixture
def fast_mock():
    """Return a mock adapter factory without noticeable delays."""
    def factory(*_args) -> MockAdapter:
        return MockAdapter(initial_delay=0, min_delay=0, max_delay=0.001)
    return factory


@pytest.fixture
def user_message():
    """Build a user message."""
    def build(content: str, attachments=None) -> Message:
        return Message(role=Role.USER, content=content, attachments=attachments or [])
    return build


class FakePipeline:
    """Local pipeline double that pushes canned pieces from its worker thread."""

    def __init__(self, pieces: list[str], delay: float = 0.0, error: Exception | None = None):
        self.pieces = pieces
        self.delay = delay
        self.error = error
        self.prompts: list[str] = []
        self.options: list[dict] = []
        self.stopped_early = False

    def generate(self, prompt: str, on_text: Callable[[str], None], should_stop: Callable[[], bool], **options) -> None:
        self.prompts.append(prompt)
        self.options.append(options)
        for piece in self.pieces:
            if should_stop():
                self.stopped_early = True
                return
            if self.delay:
                time.sleep(self.delay)
            on_text(piece)
        if self.error is not None:
            raise self.error


@pytest.fixture
def fake_pipeline_loader():
    """Return a factory of loaders that record the pipelines they built."""
    def make(pieces: list[str], **kwargs):
        def loader(model_id: str) -> FakePipeline:
            pipeline = FakePipeline(pieces, **kwargs)
            loader.loaded.append(model_id)
            loader.pipelines.append(pipeline)
            return pipeline
        loader.loaded = []
        loader.pipelines = []
        return loader

    return make


@pytest.fixture
def never_cancelled():
    return asyncio.Event()

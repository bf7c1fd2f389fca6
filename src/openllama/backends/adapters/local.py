"""In-process backend running a local text-generation model.

The model runtime pushes decoded text through a callback on a worker
thread; the adapter turns that into the same pull-based fragment stream
the other backends produce.
"""

import asyncio
import logging
import threading
from collections.abc import AsyncIterator, Callable
from typing import Any, Protocol

from ...session import AttachmentKind, Message
from ...settings import GenerationSettings
from ..base import BackendAdapter
from ..bridge import FragmentBridge
from ..models import ErrorAnnotation

logger = logging.getLogger(__name__)

END_OF_TURN = "</s>"
DEFAULT_MAX_NEW_TOKENS = 1024


class LocalPipeline(Protocol):
    """A loaded model able to stream a completion for a raw prompt."""

    def generate(
        self,
        prompt: str,
        on_text: Callable[[str], None],
        should_stop: Callable[[], bool],
        **options: Any,
    ) -> None:
        """Run generation to completion, calling ``on_text`` for each piece.

        Blocking; called from a worker thread. Generation should end early
        once ``should_stop()`` returns True.
        """
        ...


PipelineLoader = Callable[[str], LocalPipeline]


def load_transformers_pipeline(model_id: str) -> LocalPipeline:
    """Load ``model_id`` with Hugging Face transformers."""
    from .transformers_runtime import TransformersPipeline
    return TransformersPipeline.load(model_id)


class LocalModelRuntime:
    """Holds the one loaded local model and the id it was built from.

    Lifecycle: empty until first use, loaded lazily for a model id, reused
    while the same id is requested, replaced when a different id is
    requested, emptied again by ``unload``.
    """

    def __init__(self, loader: PipelineLoader | None = None):
        self._loader = loader or load_transformers_pipeline
        self._pipeline: LocalPipeline | None = None
        self._model_id: str | None = None

    @property
    def model_id(self) -> str | None:
        """Id of the currently loaded model, if any."""
        return self._model_id

    def is_loaded(self, model_id: str) -> bool:
        return self._pipeline is not None and self._model_id == model_id

    async def ensure_loaded(self, model_id: str) -> LocalPipeline:
        """Return the pipeline for ``model_id``, loading it if needed."""
        if self._pipeline is not None and self._model_id == model_id:
            return self._pipeline

        logger.info("Loading local model %s (replacing %s)", model_id, self._model_id)
        pipeline = await asyncio.to_thread(self._loader, model_id)
        self._pipeline = pipeline
        self._model_id = model_id
        return pipeline

    def unload(self) -> None:
        """Drop the loaded model."""
        self._pipeline = None
        self._model_id = None


_process_runtime: LocalModelRuntime | None = None


def process_runtime() -> LocalModelRuntime:
    """The runtime shared by every local adapter in this process."""
    global _process_runtime
    if _process_runtime is None:
        _process_runtime = LocalModelRuntime()
    return _process_runtime


def _flatten_attachments(message: Message) -> str:
    files = [a for a in message.attachments if a.kind is AttachmentKind.FILE]
    if not files:
        return message.content
    blocks = "\n".join(f"--- {f.name} ---\n{f.data}\n---" for f in files)
    return f"{message.content}\n\nAttached Files:\n{blocks}"


def build_local_prompt(transcript: list[Message], settings: GenerationSettings) -> str:
    """Render the transcript as a Zephyr-style chat prompt.

    Image attachments are dropped; local models here are text-only.
    """
    prompt = ""
    if settings.system_prompt:
        prompt += f"<|system|>\n{settings.system_prompt}{END_OF_TURN}\n"
    for message in transcript:
        prompt += f"<|{message.role.value}|>\n{_flatten_attachments(message)}{END_OF_TURN}\n"
    prompt += "<|assistant|>\n"
    return prompt


def generation_options(settings: GenerationSettings) -> dict[str, Any]:
    return {
        "max_new_tokens": settings.max_tokens or DEFAULT_MAX_NEW_TOKENS,
        "temperature": settings.temperature,
        "top_p": settings.top_p,
        "top_k": settings.top_k,
        "repetition_penalty": settings.repeat_penalty,
    }


class InProcessModelAdapter(BackendAdapter):
    """Local model backend.

    Hidden design decisions:
    - Which runtime loads the model and when it is (re)loaded
    - Chat prompt template
    - Bridging the runtime's push callback to a pull-based stream
    """

    def __init__(self, runtime: LocalModelRuntime | None = None):
        """Initialize local backend.

        Args:
            runtime: Model runtime to use (defaults to the process-wide one)
        """
        self._runtime = runtime or process_runtime()
        self._runs: set[asyncio.Task[None]] = set()

    @property
    def runtime(self) -> LocalModelRuntime:
        return self._runtime

    async def generate(
        self,
        transcript: list[Message],
        model_id: str,
        settings: GenerationSettings,
        cancel: asyncio.Event,
    ) -> AsyncIterator[str]:
        stop = threading.Event()
        try:
            if not self._runtime.is_loaded(model_id):
                yield f"*Initializing {model_id}...*\n"
            pipeline = await self._runtime.ensure_loaded(model_id)
            if cancel.is_set():
                return

            prompt = build_local_prompt(transcript, settings)
            bridge = FragmentBridge()
            loop = asyncio.get_running_loop()

            def on_text(text: str) -> None:
                loop.call_soon_threadsafe(bridge.push, text)

            run = asyncio.create_task(
                self._run(pipeline, prompt, generation_options(settings), on_text, stop, bridge)
            )
            self._runs.add(run)
            run.add_done_callback(self._runs.discard)

            while True:
                fragment = await bridge.next()
                if fragment is None or cancel.is_set():
                    break
                yield fragment

            if bridge.error is not None and not cancel.is_set():
                yield ErrorAnnotation(f"Error: {bridge.error}")
        except Exception as e:
            logger.warning("Local generation with %s failed: %s", model_id, e)
            yield ErrorAnnotation(f"Error: {e}")
        finally:
            stop.set()

    @staticmethod
    async def _run(
        pipeline: LocalPipeline,
        prompt: str,
        options: dict[str, Any],
        on_text: Callable[[str], None],
        stop: threading.Event,
        bridge: FragmentBridge,
    ) -> None:
        try:
            await asyncio.to_thread(pipeline.generate, prompt, on_text, stop.is_set, **options)
        except Exception as e:
            logger.warning("Local model run failed: %s", e)
            bridge.finish(e)
        else:
            bridge.finish()

    async def close(self) -> None:
        """Wait for background runs; the loaded model stays in the runtime."""
        if self._runs:
            await asyncio.gather(*self._runs, return_exceptions=True)

"""Hugging Face transformers runtime for the local backend.

Imported lazily so the rest of the package works without torch and
transformers installed (``pip install openllama[local]``).
"""

from collections.abc import Callable
from typing import Any

import torch
from transformers import StoppingCriteria, StoppingCriteriaList, TextStreamer, pipeline


class _CallbackStreamer(TextStreamer):
    """Forward each finalized piece of decoded text to a callback."""

    def __init__(self, tokenizer: Any, on_text: Callable[[str], None]):
        super().__init__(tokenizer, skip_prompt=True, skip_special_tokens=True)
        self._on_text = on_text

    def on_finalized_text(self, text: str, stream_end: bool = False) -> None:
        if text:
            self._on_text(text)


class _StopWhen(StoppingCriteria):
    """Stop generation once a flag flips."""

    def __init__(self, should_stop: Callable[[], bool]):
        self._should_stop = should_stop

    def __call__(self, input_ids: torch.LongTensor, scores: torch.FloatTensor, **kwargs: Any) -> torch.BoolTensor:
        return torch.full(
            (input_ids.shape[0],),
            self._should_stop(),
            dtype=torch.bool,
            device=input_ids.device,
        )


class TransformersPipeline:
    """A ``text-generation`` pipeline that streams through callbacks."""

    def __init__(self, text_pipeline: Any):
        self._pipeline = text_pipeline

    @classmethod
    def load(cls, model_id: str) -> "TransformersPipeline":
        return cls(pipeline("text-generation", model=model_id))

    def generate(
        self,
        prompt: str,
        on_text: Callable[[str], None],
        should_stop: Callable[[], bool],
        **options: Any,
    ) -> None:
        temperature = options.pop("temperature", 0.0)
        do_sample = temperature > 0
        if do_sample:
            options["temperature"] = temperature
        else:
            options.pop("top_p", None)
            options.pop("top_k", None)

        self._pipeline(
            prompt,
            do_sample=do_sample,
            streamer=_CallbackStreamer(self._pipeline.tokenizer, on_text),
            stopping_criteria=StoppingCriteriaList([_StopWhen(should_stop)]),
            return_full_text=False,
            **options,
        )

"""Generation settings and the model catalogue."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Backend(str, Enum):
    """Backends a generation can run on."""

    API = "api"
    LOCAL = "local"
    MOCK = "mock"


# Names older settings blobs used for the in-process backend
BACKEND_ALIASES = {
    "browser": Backend.LOCAL,
    "browser-model": Backend.LOCAL,
    "remote": Backend.API,
}


def parse_backend(value: "str | Backend") -> Backend:
    """Resolve a backend name, accepting legacy aliases.

    Raises:
        ValueError: If the name is not a known backend
    """
    if isinstance(value, Backend):
        return value
    name = value.strip().lower()
    if name in BACKEND_ALIASES:
        return BACKEND_ALIASES[name]
    try:
        return Backend(name)
    except ValueError:
        raise ValueError(
            f"Unsupported backend: {value}. "
            f"Supported backends: api, local, mock"
        ) from None


# Seed value meaning "let the backend pick"
SEED_UNSET = -1


class GenerationSettings(BaseModel):
    """Sampling parameters, system prompt and backend selection.

    Frozen so that a generation always works on the snapshot taken when
    it started, even if the user edits settings mid-stream.
    """

    model_config = ConfigDict(frozen=True)

    # Backend
    backend: Backend = Backend.API
    api_url: str = Field(default="http://localhost:8080/v1", description="OpenAI-compatible API base")
    api_key: str = ""
    default_model: str = "local-model"
    system_prompt: str = "You are a helpful AI assistant."

    # Sampling
    temperature: float = Field(default=0.8, ge=0.0, le=2.0)
    top_p: float = Field(default=0.95, ge=0.0, le=1.0)
    top_k: int = Field(default=40, ge=0)
    min_p: float = Field(default=0.05, ge=0.0, le=1.0)
    max_tokens: int = Field(default=4096, ge=1)

    # Penalties
    repeat_penalty: float = 1.1
    repeat_last_n: int = 64
    presence_penalty: float = 0.0
    frequency_penalty: float = 0.0

    # Advanced
    seed: int = SEED_UNSET
    mirostat: int = Field(default=0, ge=0, le=2, description="0 = off, 1 = mirostat, 2 = mirostat 2.0")
    mirostat_tau: float = 5.0
    mirostat_eta: float = 0.1

    @field_validator("backend", mode="before")
    @classmethod
    def _resolve_backend_alias(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_backend(value)
        return value

    @property
    def has_seed(self) -> bool:
        return self.seed != SEED_UNSET


class ModelInfo(BaseModel):
    """Entry of the model catalogue."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    context_window: int
    backend: Backend = Backend.API


DEFAULT_MODELS: list[ModelInfo] = [
    # Served by an OpenAI-compatible endpoint (llama.cpp server etc.)
    ModelInfo(
        id="local-model",
        name="Current Local Model (GGUF)",
        description="The model currently loaded in llama.cpp",
        context_window=8192,
    ),
    ModelInfo(
        id="llama-3-8b-instruct",
        name="Llama 3 (8B)",
        description="Meta Llama 3",
        context_window=8192,
    ),
    ModelInfo(
        id="mistral-7b-instruct",
        name="Mistral 7B",
        description="Mistral AI",
        context_window=4096,
    ),
    # Run in-process
    ModelInfo(
        id="TinyLlama/TinyLlama-1.1B-Chat-v1.0",
        name="TinyLlama 1.1B (Local)",
        description="Runs in-process (~2GB download)",
        context_window=2048,
        backend=Backend.LOCAL,
    ),
    ModelInfo(
        id="Qwen/Qwen1.5-0.5B-Chat",
        name="Qwen 1.5 0.5B (Local)",
        description="Fast in-process model (~1GB download)",
        context_window=4096,
        backend=Backend.LOCAL,
    ),
]


def find_model(model_id: str) -> ModelInfo | None:
    """Look up a catalogue entry by id."""
    for model in DEFAULT_MODELS:
        if model.id == model_id:
            return model
    return None

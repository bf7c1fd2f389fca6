"""Configuration factory functions for CLI.

Centralizes creation of the key-value store and generation settings from
environment variables. Hides configuration details from command
implementations.
"""

import os
from typing import Any

from ..settings import GenerationSettings, load_settings, parse_backend
from ..storage import KeyValueStore, create_key_value_store

# Environment variable -> GenerationSettings field
_SETTINGS_ENV = {
    "OPENLLAMA_BACKEND": "backend",
    "OPENLLAMA_API_URL": "api_url",
    "OPENLLAMA_API_KEY": "api_key",
    "OPENLLAMA_MODEL": "default_model",
    "OPENLLAMA_SYSTEM_PROMPT": "system_prompt",
}


def get_store(backend: str | None = None, path: str | None = None) -> KeyValueStore:
    """Create the key-value store from arguments or environment variables.

    Returns:
        Key-value store instance (not yet connected)

    Environment variables:
        OPENLLAMA_STORE: Store backend, 'memory' or 'sqlite' (default: sqlite)
        OPENLLAMA_STORE_PATH: SQLite database path (default: ~/.openllama/openllama.db)
    """
    store_backend = (backend or os.getenv("OPENLLAMA_STORE", "sqlite")).lower()
    if store_backend == "sqlite":
        store_path = path or os.getenv(
            "OPENLLAMA_STORE_PATH",
            os.path.join(os.path.expanduser("~"), ".openllama", "openllama.db")
        )
        return create_key_value_store("sqlite", path=store_path)
    return create_key_value_store(store_backend)


def env_overrides() -> dict[str, Any]:
    """Settings fields set through environment variables.

    Environment variables:
        OPENLLAMA_BACKEND: api, local or mock
        OPENLLAMA_API_URL: OpenAI-compatible API base URL
        OPENLLAMA_API_KEY: API key sent as bearer token
        OPENLLAMA_MODEL: Default model id
        OPENLLAMA_SYSTEM_PROMPT: System prompt
    """
    overrides: dict[str, Any] = {}
    for env_name, field_name in _SETTINGS_ENV.items():
        value = os.getenv(env_name)
        if value:
            overrides[field_name] = value
    if "backend" in overrides:
        overrides["backend"] = parse_backend(overrides["backend"])
    return overrides


async def get_settings(store: KeyValueStore, **overrides: Any) -> GenerationSettings:
    """Resolve settings: saved settings, then environment, then explicit overrides.

    Args:
        store: Connected key-value store holding saved settings
        **overrides: Field values that win over everything else (None is ignored)

    Returns:
        Settings snapshot for this run
    """
    saved = await load_settings(store) or GenerationSettings()

    updates = env_overrides()
    updates.update({k: v for k, v in overrides.items() if v is not None})
    if "backend" in updates:
        updates["backend"] = parse_backend(updates["backend"])
    return GenerationSettings.model_validate({**saved.model_dump(), **updates})

from .models import (
    DEFAULT_MODELS,
    SEED_UNSET,
    Backend,
    GenerationSettings,
    ModelInfo,
    find_model,
    parse_backend,
)
from .persistence import load_settings, save_settings

__all__ = [
    "DEFAULT_MODELS",
    "SEED_UNSET",
    "Backend",
    "GenerationSettings",
    "ModelInfo",
    "find_model",
    "load_settings",
    "parse_backend",
    "save_settings",
]

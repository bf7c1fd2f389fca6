"""Generation pipeline: the controller and its live statistics."""

from .controller import (
    ATTACHMENT_ONLY_TITLE,
    GenerationController,
    GenerationState,
    derive_title,
)
from .stats import GenerationStats

__all__ = [
    "ATTACHMENT_ONLY_TITLE",
    "GenerationController",
    "GenerationState",
    "GenerationStats",
    "derive_title",
]

"""Load and save generation settings through a key-value store."""

import logging

from pydantic import ValidationError

from ..storage import SETTINGS_KEY, KeyValueStore
from .models import GenerationSettings

logger = logging.getLogger(__name__)


async def load_settings(store: KeyValueStore) -> GenerationSettings | None:
    """Load previously saved settings.

    Returns:
        The saved settings, or None when nothing was saved or the saved
        blob no longer validates.
    """
    raw = await store.load(SETTINGS_KEY)
    if raw is None:
        return None
    try:
        return GenerationSettings.model_validate_json(raw)
    except ValidationError as e:
        logger.warning("Ignoring invalid saved settings: %s", e)
        return None


async def save_settings(store: KeyValueStore, settings: GenerationSettings) -> None:
    """Persist settings as a JSON blob."""
    await store.save(SETTINGS_KEY, settings.model_dump_json())

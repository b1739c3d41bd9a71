from __future__ import annotations

from tagmap.core.config import Settings, get_settings
from tagmap.providers.storage.base import ImageStorage
from tagmap.providers.storage.local import LocalImageStorage


def get_image_storage(settings: Settings | None = None) -> ImageStorage:
    settings = settings or get_settings()
    return LocalImageStorage(settings.image_base_url)

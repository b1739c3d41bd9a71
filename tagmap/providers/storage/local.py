from __future__ import annotations

import logging
from uuid import uuid4


logger = logging.getLogger(__name__)


def generate_file_names(count: int, tag_id: str) -> list[str]:
    # Object names are scoped under the tag id so deletes can be checked per tag.
    return [f"{tag_id}/{uuid4().hex[:8]}" for _ in range(count)]


class LocalImageStorage:
    """Issues upload URLs under a base URL and tracks them in memory.

    Stand-in for a bucket-backed collaborator: it never touches file bytes.
    """

    def __init__(self, base_url: str) -> None:
        self._base_url = base_url.rstrip("/")
        self._issued: set[str] = set()

    async def issue_upload_urls(self, count: int, tag_id: str) -> list[str]:
        if count <= 0:
            return []
        urls = [f"{self._base_url}/{name}" for name in generate_file_names(count, tag_id)]
        self._issued.update(urls)
        return urls

    async def delete_images(self, tag_id: str, urls: list[str]) -> bool:
        prefix = f"{self._base_url}/{tag_id}/"
        foreign = [url for url in urls if not url.startswith(prefix)]
        if foreign:
            logger.warning("image_delete_rejected tag_id=%s foreign=%s", tag_id, len(foreign))
            return False
        for url in urls:
            self._issued.discard(url)
        return True

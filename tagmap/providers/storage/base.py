from __future__ import annotations

from typing import Protocol


class ImageStorage(Protocol):
    async def issue_upload_urls(self, count: int, tag_id: str) -> list[str]:
        ...

    async def delete_images(self, tag_id: str, urls: list[str]) -> bool:
        ...

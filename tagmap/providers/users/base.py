from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol


class UserDirectory(Protocol):
    async def get_display_name(self, uid: str) -> str:
        ...

    async def get_display_names(self, uids: Iterable[str]) -> dict[str, str]:
        # One lookup per page of tags; every requested uid gets an entry.
        ...

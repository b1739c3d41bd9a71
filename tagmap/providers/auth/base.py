from __future__ import annotations

from typing import Protocol

from tagmap.domain.schemas import Caller


class AuthVerifier(Protocol):
    async def verify_caller(self, credential: str | None) -> Caller:
        ...


def strip_bearer(credential: str | None) -> str | None:
    # Accept either a raw token or an Authorization header value.
    if credential is None:
        return None
    value = credential.strip()
    parts = value.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    if len(parts) == 1:
        return parts[0]
    return None
